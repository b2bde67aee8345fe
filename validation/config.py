"""
Configuration validation for BgUpload.

Provides a pydantic v2 settings model for the upload queue with fail-fast
validation and sensible defaults. Values come from keyword arguments first,
then BGU_-prefixed environment variables, then the defaults below.
"""

import logging
import os
from typing import Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger('BgUpload.config')


def _default_data_dir() -> str:
    return os.path.join(os.path.expanduser('~'), '.bgupload', 'data')


class UploaderConfig(BaseSettings):
    """
    BgUpload configuration with validation.

    Queue tunables:
        data_dir: Directory for queue.db and stats.json (default: ~/.bgupload/data)
        max_attempts: Failed attempts before an item is terminally failed (default: 5, range: 1-50)
        capacity: Maximum retained items (default: 10000)
        stale_after: Seconds an in-flight item may go unacknowledged (default: 120.0)
        backoff_base: Base retry delay in seconds, 0 disables backoff (default: 5.0)
        backoff_cap: Maximum retry delay in seconds (default: 300.0)

    Dispatch tunables:
        batch_size: Items claimed per store round trip (default: 10, range: 1-100)
        fan_out: Concurrent uploads per wake (default: 2, range: 1-16)

    Wake tunables:
        safety_margin_ratio: Share of the wake budget held in reserve (default: 0.15)
        min_safety_margin / max_safety_margin: Reserve bounds in seconds (default: 0.5 / 5.0)
        default_budget: Budget for processQueue calls without one (default: 25.0)

    HTTP uploader (optional):
        upload_url: Default destination when items carry none
        upload_token: Bearer token sent with uploads
        connect_timeout / read_timeout: Seconds (default: 5.0 / 20.0)
    """

    model_config = SettingsConfigDict(env_prefix='BGU_', extra='ignore')

    data_dir: str = Field(default_factory=_default_data_dir)

    max_attempts: int = Field(default=5, ge=1, le=50)
    capacity: int = Field(default=10000, ge=1)
    stale_after: float = Field(default=120.0, ge=1.0)
    backoff_base: float = Field(default=5.0, ge=0.0, le=3600.0)
    backoff_cap: float = Field(default=300.0, ge=0.0, le=86400.0)

    batch_size: int = Field(default=10, ge=1, le=100)
    fan_out: int = Field(default=2, ge=1, le=16)

    safety_margin_ratio: float = Field(default=0.15, gt=0.0, lt=0.5)
    min_safety_margin: float = Field(default=0.5, ge=0.0, le=30.0)
    max_safety_margin: float = Field(default=5.0, ge=0.0, le=60.0)
    default_budget: float = Field(default=25.0, gt=0.0, le=600.0)

    upload_url: Optional[str] = None
    upload_token: Optional[str] = None
    connect_timeout: float = Field(default=5.0, ge=0.5, le=60.0)
    read_timeout: float = Field(default=20.0, ge=1.0, le=300.0)

    log_level: str = 'info'
    json_logs: bool = False
    debug_logging: bool = False

    @field_validator('data_dir', mode='after')
    @classmethod
    def validate_data_dir(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('data_dir is required')
        return os.path.expanduser(v)

    @field_validator('upload_url', mode='after')
    @classmethod
    def validate_upload_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate upload_url is an HTTP/HTTPS URL when set."""
        if v is None or v == '':
            return None
        if not v.startswith(('http://', 'https://')):
            raise ValueError('upload_url must start with http:// or https://')
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        valid = ('trace', 'debug', 'info', 'warning', 'error')
        if isinstance(v, str) and v.lower() in valid:
            return v.lower()
        raise ValueError(f"log_level must be one of {valid}, got: {v}")

    @model_validator(mode='after')
    def validate_ranges(self) -> 'UploaderConfig':
        if self.backoff_cap < self.backoff_base:
            raise ValueError('backoff_cap must be >= backoff_base')
        if self.min_safety_margin > self.max_safety_margin:
            raise ValueError('min_safety_margin must be <= max_safety_margin')
        return self

    def log_config(self) -> None:
        """Log configuration with masked token for security."""
        if self.upload_token and len(self.upload_token) > 8:
            masked = self.upload_token[:4] + '****' + self.upload_token[-4:]
        elif self.upload_token:
            masked = '****'
        else:
            masked = None
        log.info(
            f"BgUpload config: data_dir={self.data_dir}, "
            f"max_attempts={self.max_attempts}, capacity={self.capacity}, "
            f"stale_after={self.stale_after}s, "
            f"backoff={self.backoff_base}s..{self.backoff_cap}s, "
            f"batch_size={self.batch_size}, fan_out={self.fan_out}, "
            f"upload_url={self.upload_url}, token={masked}"
        )
        if self.debug_logging:
            log.warning("Debug logging enabled: BgUpload loggers emit TRACE records")


def validate_config(config_dict: dict) -> tuple[Optional[UploaderConfig], Optional[str]]:
    """
    Validate configuration dictionary and return UploaderConfig or error message.

    Args:
        config_dict: Dictionary containing configuration values

    Returns:
        Tuple of (UploaderConfig, None) on success,
        or (None, error_message) on validation failure
    """
    try:
        config = UploaderConfig(**config_dict)
        return (config, None)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            field = '.'.join(str(loc) for loc in error['loc'])
            msg = error['msg']
            errors.append(f"{field}: {msg}" if field else msg)
        error_message = '; '.join(errors)
        return (None, error_message)


__all__ = ['UploaderConfig', 'validate_config', 'ValidationError']
