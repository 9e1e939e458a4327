"""Shared utility functions."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

# No 0/O or 1/I so references survive being read out over the phone.
REFERENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERENCE_PREFIX = "CC-"
REFERENCE_LENGTH = 8


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_booking_reference() -> str:
    """Return a random human-facing booking reference such as ``CC-7KQ2M9XA``."""
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))
    return f"{REFERENCE_PREFIX}{suffix}"


def first_name(full_name: str | None, default: str = "there") -> str:
    """Return the first word of a customer name for greetings."""
    if not full_name or not full_name.strip():
        return default
    return full_name.strip().split()[0]
