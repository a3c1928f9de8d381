import time
from datetime import datetime, timezone


def now_iso_utc() -> str:
    """Return current UTC time as ISO-8601 string with timezone."""
    return datetime.now(timezone.utc).isoformat()


def monotonic_ms() -> float:
    """Milliseconds from a clock that never goes backwards (for TTL checks)."""
    return time.monotonic() * 1000.0


__all__ = ["now_iso_utc", "monotonic_ms"]
