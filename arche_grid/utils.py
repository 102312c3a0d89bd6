"""
Shared Utilities

Timestamps, identifiers and small formatting helpers used across modules.
"""

import secrets
import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(dt: datetime = None) -> str:
    """
    Format a datetime as ISO 8601 with millisecond precision and a Z suffix.

    Example: 2024-05-01T09:30:12.345Z
    """
    dt = (dt or utcnow()).astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def new_grid_id() -> str:
    """Mint a fresh grid identifier: grid_<epoch ms>_<random hex>."""
    return f"grid_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


def truncate(text: str, max_len: int = 80, suffix: str = "...") -> str:
    """Truncate text with suffix if too long."""
    if not text or len(text) <= max_len:
        return text or ""
    return text[:max_len - len(suffix)] + suffix
