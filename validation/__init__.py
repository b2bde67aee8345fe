"""
Validation module for BgUpload.

Provides configuration validation, enqueue metadata normalization and
upload error classification.
"""

from validation.metadata import normalize_metadata
from validation.errors import classify_exception, classify_http_error
from validation.config import UploaderConfig, validate_config

__all__ = [
    'normalize_metadata',
    'classify_exception',
    'classify_http_error',
    'UploaderConfig',
    'validate_config',
]
