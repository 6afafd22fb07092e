from datetime import datetime, timezone


def now_iso_utc() -> str:
    """Return current UTC time as ISO-8601 string with timezone."""
    return datetime.now(timezone.utc).isoformat()


def iso_from_timestamp(ts: float) -> str:
    """Convert a POSIX timestamp (as stored on log/status events) to ISO-8601 UTC."""
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


__all__ = ["iso_from_timestamp", "now_iso_utc"]
