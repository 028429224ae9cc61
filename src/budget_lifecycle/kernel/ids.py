"""
ID generation and normalization

New documents get UUIDv7-like identifiers (time-ordered), so listings sorted
by id come out in creation order. Identifiers arriving from callers are
normalized from string or native forms and rejected when malformed.
"""

import re
import secrets
import time
import uuid
from typing import Any

from budget_lifecycle.kernel.errors import ValidationError

ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,63}$")


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier (time-ordered UUID)

    First 48 bits: Unix timestamp in milliseconds, the rest random.

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_48 = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_12 = secrets.randbits(12)
    rand_62 = secrets.randbits(62)

    time_high = (timestamp_48 >> 32) & 0xFFFF
    time_mid = (timestamp_48 >> 16) & 0xFFFF
    time_low = timestamp_48 & 0xFFFF
    version_and_rand = 0x7000 | rand_12
    clock_seq_and_variant = 0x8000 | ((rand_62 >> 48) & 0x3FFF)
    node = rand_62 & 0xFFFFFFFFFFFF

    return (
        f"{time_high:04x}{time_mid:04x}-"
        f"{time_low:04x}-"
        f"{version_and_rand:04x}-"
        f"{clock_seq_and_variant:04x}-"
        f"{node:012x}"
    )


def normalize_id(value: Any, field: str = "id") -> str:
    """
    Normalize an identifier from string or native id forms

    Accepts plain strings, uuid.UUID instances, and objects or mappings that
    carry an ``id`` attribute/key (e.g. an already-loaded document).

    Args:
        value: Raw identifier
        field: Field name used in the error message

    Returns:
        Canonical string identifier

    Raises:
        ValidationError: If the value is missing or malformed
    """
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, dict) and "id" in value:
        value = value["id"]
    elif not isinstance(value, str) and hasattr(value, "id"):
        value = getattr(value, "id")

    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)

    candidate = value.strip()
    if not ID_PATTERN.match(candidate):
        raise ValidationError(f"Invalid {field} format: {value!r}", field=field)
    return candidate
