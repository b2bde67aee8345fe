"""
BgUpload logging helpers.

Every component logs through the stdlib logger ``BgUpload.<component>`` with
messages prefixed ``[BgUpload <component>]`` so a host log stream can be
grepped per component. A TRACE level (5) sits below DEBUG for per-item chatter.

This module provides a factory to create log functions with a component prefix,
eliminating the need to repeat the logger lookup in every module.

Usage:
    from shared.log import create_logger
    log_trace, log_debug, log_info, log_warn, log_error = create_logger("Dispatcher")
    log_info("Claimed 3 items")  # -> [BgUpload Dispatcher] Claimed 3 items
"""

import logging

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

ROOT_LOGGER_NAME = "BgUpload"


def create_logger(component: str = ""):
    """Create log functions for a component.

    Args:
        component: Component name suffix. If provided, prefix becomes
                   "[BgUpload {component}]" and the logger is
                   "BgUpload.{component}", otherwise "[BgUpload]" / "BgUpload".

    Returns:
        Tuple of (log_trace, log_debug, log_info, log_warn, log_error) functions.
    """
    prefix = f"[BgUpload {component}]" if component else "[BgUpload]"
    name = f"{ROOT_LOGGER_NAME}.{component}" if component else ROOT_LOGGER_NAME
    logger = logging.getLogger(name)

    def log_trace(msg): logger.log(TRACE, f"{prefix} {msg}")
    def log_debug(msg): logger.debug(f"{prefix} {msg}")
    def log_info(msg): logger.info(f"{prefix} {msg}")
    def log_warn(msg): logger.warning(f"{prefix} {msg}")
    def log_error(msg): logger.error(f"{prefix} {msg}")

    return log_trace, log_debug, log_info, log_warn, log_error
