"""Root logging configuration for BgUpload processes (CLI, host bridge)."""

from __future__ import annotations

import logging

from pythonjsonlogger import json as jsonlogger

from shared.log import ROOT_LOGGER_NAME, TRACE


def configure_logging(log_level: str = "info", json_output: bool = False, debug: bool = False) -> None:
    """Configure root logger with plain or structured JSON output.

    JSON format: {"ts": "...", "level": "...", "name": "...", "msg": "..."}

    Args:
        log_level: Logging level string (e.g., "info", "debug", "trace").
        json_output: Emit one JSON object per record instead of plain text.
        debug: Let every BgUpload record through, down to TRACE, whatever
            the root level.
    """
    if log_level.lower() == "trace":
        level = TRACE
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    if json_output:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "ts",
                "levelname": "level",
                "message": "msg",
            },
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    # Clear any existing handlers to avoid duplicate output
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    logging.getLogger(ROOT_LOGGER_NAME).setLevel(TRACE if debug else logging.NOTSET)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
