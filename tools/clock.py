"""
Reference Clock
Wall-clock and calendar-day arithmetic in the deployment's reference timezone
"""

import re
from typing import Callable, Optional, Union
from datetime import datetime, date, time, timezone
from zoneinfo import ZoneInfo

from config import settings, reconciliation_config


_TIME_OF_DAY_RE = re.compile(reconciliation_config.TIME_OF_DAY_PATTERN)


def parse_time_of_day(value: Union[str, time]) -> str:
    """Normalize a slot time to "HH:MM".

    Accepts a time object or an "HH:MM" string. Raises ValueError for
    anything else.
    """
    if isinstance(value, time):
        return value.strftime(reconciliation_config.TIME_OF_DAY_FORMAT)
    if isinstance(value, str) and _TIME_OF_DAY_RE.match(value.strip()):
        return value.strip()
    raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")


class ReferenceClock:
    """
    Clock bound to a single reference timezone.

    Naive datetimes are treated as UTC, which is how instants are stored.
    """

    def __init__(
        self,
        timezone_name: Optional[str] = None,
        now_fn: Optional[Callable[[], datetime]] = None
    ):
        self.timezone_name = timezone_name or settings.REFERENCE_TIMEZONE
        self.tz = ZoneInfo(self.timezone_name)
        self._now_fn = now_fn

    def now(self) -> datetime:
        """Current instant in the reference timezone"""
        if self._now_fn is not None:
            return self.localize(self._now_fn())
        return datetime.now(self.tz)

    def localize(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    def assume_local(self, instant: datetime) -> datetime:
        """Like localize, but naive input is read as reference-local wall time"""
        if instant.tzinfo is None:
            return instant.replace(tzinfo=self.tz)
        return instant.astimezone(self.tz)

    def to_storage(self, instant: datetime) -> datetime:
        """Convert to the naive UTC form used by the database"""
        if instant.tzinfo is None:
            return instant
        return instant.astimezone(timezone.utc).replace(tzinfo=None)

    def local_date(self, instant: datetime) -> date:
        return self.localize(instant).date()

    def wall_clock(self, instant: datetime) -> str:
        """Reference-local HH:MM of the instant, truncated to the minute"""
        return self.localize(instant).strftime(reconciliation_config.TIME_OF_DAY_FORMAT)

    def combine(self, day: date, time_of_day: str) -> datetime:
        """Instant at which time_of_day occurs on the given reference-local day"""
        parsed = datetime.strptime(parse_time_of_day(time_of_day), reconciliation_config.TIME_OF_DAY_FORMAT)
        return datetime.combine(day, parsed.time(), tzinfo=self.tz)

    def __repr__(self) -> str:
        return f"ReferenceClock({self.timezone_name!r})"
