"""
Upload metadata normalization.

Metadata is an ordered string-to-string mapping attached at enqueue time and
passed through to the upload operation (form fields for the HTTP uploader).
Values are never truncated: a shortened checksum or destination URL would be
worse than a refused enqueue.
"""

import unicodedata
from typing import Mapping, Optional

MAX_KEYS = 64
MAX_KEY_LENGTH = 128
MAX_VALUE_LENGTH = 4096


def _strip_control(text: str) -> str:
    """NFC-normalize and drop control (Cc) and format (Cf) characters."""
    text = unicodedata.normalize('NFC', text)
    return ''.join(
        char for char in text
        if unicodedata.category(char) not in ('Cc', 'Cf')
    )


def normalize_metadata(metadata: Optional[Mapping]) -> dict[str, str]:
    """
    Normalize enqueue metadata, preserving key order.

    Keys and values are converted to str and stripped of control characters.
    Keys are also trimmed of surrounding whitespace.

    Args:
        metadata: Mapping of keys to values, or None

    Returns:
        New dict of str -> str

    Raises:
        ValueError: too many keys, empty or duplicate key after
            normalization, or a key/value over the length limit
    """
    if not metadata:
        return {}
    if len(metadata) > MAX_KEYS:
        raise ValueError(f"metadata has {len(metadata)} keys (max {MAX_KEYS})")

    normalized: dict[str, str] = {}
    for raw_key, raw_value in metadata.items():
        key = _strip_control(str(raw_key)).strip()
        if not key:
            raise ValueError(f"metadata key {raw_key!r} is empty after normalization")
        if len(key) > MAX_KEY_LENGTH:
            raise ValueError(f"metadata key {key[:20]!r}... exceeds {MAX_KEY_LENGTH} characters")
        if key in normalized:
            raise ValueError(f"duplicate metadata key after normalization: {key!r}")

        value = '' if raw_value is None else _strip_control(str(raw_value))
        if len(value) > MAX_VALUE_LENGTH:
            raise ValueError(f"metadata value for {key!r} exceeds {MAX_VALUE_LENGTH} characters")

        normalized[key] = value

    return normalized
