from datetime import date, datetime, timedelta, timezone


class SystemClock:
    """Wall clock used by the store and the validator. Dates are UTC, as the backend stamps them."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to a single instant. Used in tests and replays."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def today(self) -> date:
        return self.instant.date()

    def advance(self, **kwargs) -> None:
        self.instant = self.instant + timedelta(**kwargs)
