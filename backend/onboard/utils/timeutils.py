"""Time helpers shared by models and services."""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def describe_window(window: timedelta | None) -> str:
    """Human-readable form of a plan-limit window.

    timedelta(0) is a count ceiling ("static"), None means no limit row.
    """
    if window is None:
        return "unlimited"
    seconds = int(window.total_seconds())
    if seconds == 0:
        return "static"
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds % size == 0:
            n = seconds // size
            return f"{n} {unit}" if n == 1 else f"{n} {unit}s"
    return f"{seconds} seconds"
