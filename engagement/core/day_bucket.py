# ==============================================================================
# Day Bucketing - Pure Domain Logic
# ==============================================================================
"""
Timezone-correct calendar-day keys.

A day key is the instant of local midnight, in the single audience timezone,
of the calendar day an instant falls on, re-expressed in UTC. Every rollup
groups by these keys, so two rules hold everywhere:

- Bucketing is a pure function: the same instant always yields the same key,
  and every instant in [key, next_day_key(key)) yields that key.
- Day arithmetic happens on local calendar dates, never by adding 24 hours to
  a UTC instant. Around daylight-saving transitions a day spans 23 or 25
  hours of UTC time, but its key is still local midnight.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Copenhagen"


def ensure_utc(instant: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are read as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def local_midnight_utc(local_date: date, tz: ZoneInfo) -> datetime:
    """Convert local midnight of a calendar date to the matching UTC instant."""
    return datetime.combine(local_date, time(0), tzinfo=tz).astimezone(timezone.utc)


def day_key(instant: datetime, tz: ZoneInfo) -> datetime:
    """Map an instant to the day key of its local calendar day."""
    local = ensure_utc(instant).astimezone(tz)
    return local_midnight_utc(local.date(), tz)


class DayBucketer:
    """
    Day-key helper bound to one audience timezone.

    Methods that depend on "today" accept an optional ``now`` so callers and
    tests can pin the clock; when omitted the current UTC time is used.
    """

    def __init__(self, timezone_name: str = DEFAULT_TIMEZONE):
        self._tz = ZoneInfo(timezone_name)

    def local_date(self, instant: datetime) -> date:
        """Calendar date of an instant in the audience timezone."""
        return ensure_utc(instant).astimezone(self._tz).date()

    def day_key(self, instant: datetime) -> datetime:
        """Day key for an instant."""
        return day_key(instant, self._tz)

    def next_day_key(self, key: datetime) -> datetime:
        """Key of the calendar day after the one starting at ``key``."""
        return local_midnight_utc(self.local_date(key) + timedelta(days=1), self._tz)

    def day_bounds(self, key: datetime) -> tuple[datetime, datetime]:
        """Half-open UTC range [start, end) covered by a day key."""
        start = self.day_key(key)
        return start, self.next_day_key(start)

    def today_key(self, now: datetime | None = None) -> datetime:
        """Day key for the current day."""
        return self.day_key(now or datetime.now(timezone.utc))

    def is_today(self, instant: datetime, now: datetime | None = None) -> bool:
        """True when the instant falls in today's bucket."""
        return self.day_key(instant) == self.today_key(now)

    def last_n_day_keys(self, days: int, now: datetime | None = None) -> list[datetime]:
        """
        The last ``days`` day keys ending today, oldest first.

        Args:
            days: Number of keys to return (0 returns an empty list)
            now: Clock override

        Returns:
            Chronologically ordered list of day keys
        """
        if days <= 0:
            return []
        today = self.local_date(now or datetime.now(timezone.utc))
        return [
            local_midnight_utc(today - timedelta(days=offset), self._tz)
            for offset in range(days - 1, -1, -1)
        ]

    def window_bounds(self, days: int, now: datetime | None = None) -> tuple[datetime, datetime]:
        """
        Half-open range covering the last ``days`` day keys.

        Starts at the oldest key (inclusive) and runs through the end of
        today's bucket.
        """
        keys = self.last_n_day_keys(days, now)
        if not keys:
            today = self.today_key(now)
            return today, today
        return keys[0], self.next_day_key(keys[-1])

    def format_day(self, key: datetime) -> str:
        """Local calendar date label (YYYY-MM-DD) for a day key."""
        return self.local_date(key).isoformat()
