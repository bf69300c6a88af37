"""Injectable time source."""

from datetime import datetime, timezone


class Clock:
    """Returns the current UTC time. Swap for a fixed clock in tests."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
