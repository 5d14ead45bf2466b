"""Injectable time source for deadline math and due-row selection"""

from datetime import datetime, timedelta, timezone


class Clock:
    """Wall clock returning naive UTC datetimes (the storage convention)"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock pinned to a given instant; advanced explicitly by tests and scripts"""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current


system_clock = Clock()
