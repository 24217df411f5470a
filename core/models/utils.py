"""Timestamp utility."""

from datetime import datetime, timezone


def now_iso() -> str:
    """Current UTC time in the ISO-8601 form the backend stores."""
    return datetime.now(timezone.utc).isoformat()
