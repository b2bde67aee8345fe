"""Per-item upload failure types raised by upload operations."""


class UploadFailure(Exception):
    """An upload attempt failed. Counts toward the item's retry budget."""
    pass


class TransientError(UploadFailure):
    """Retry-able errors (network, timeout, 429, 5xx)"""
    pass


class PermanentError(UploadFailure):
    """Non-retry-able errors (4xx except 429, missing content, bad data)"""
    pass
