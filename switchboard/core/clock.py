"""Time source used by sessions and the delivery pipeline."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the database columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock:
    """Wall clock. Injected so that durations and retry deadlines are testable."""

    def now(self) -> datetime:
        return utcnow()
