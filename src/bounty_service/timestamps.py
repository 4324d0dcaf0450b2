"""UTC timestamp helper."""

from __future__ import annotations

from datetime import UTC, datetime


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")
