"""
Time-range vocabulary and window resolution.

Every dashboard filter resolves to a half-open ``[start, end)`` window in UTC.
Either bound may be ``None`` (no limit); ``all_time`` has neither.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from db import Filter

# ---------------------------------------------------------------------------
# Key normalisation
# ---------------------------------------------------------------------------

TIME_RANGES = (
    "today",
    "yesterday",
    "this_week",
    "last_week",
    "this_month",
    "last_month",
    "this_year",
    "last_year",
    "all_time",
)

# Stored links use both spellings; translate at the boundary.
_ALIASES = {
    "this-week": "this_week",
    "last-week": "last_week",
    "this-month": "this_month",
    "last-month": "last_month",
    "this-year": "this_year",
    "last-year": "last_year",
    "all": "all_time",
    "all-time": "all_time",
}


class InvalidTimeRange(ValueError):
    pass


def normalize_time_range(key: str | None) -> str:
    cleaned = (key or "").strip().lower()
    cleaned = _ALIASES.get(cleaned, cleaned)
    return cleaned if cleaned in TIME_RANGES else "all_time"


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeWindow:
    start: datetime | None = None
    end: datetime | None = None

    @property
    def unbounded(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, ts: datetime | str | None) -> bool:
        if ts is None:
            return False
        moment = parse_timestamp(ts)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True

    def filters(self, column: str = "created_at") -> list[Filter]:
        out: list[Filter] = []
        if self.start is not None:
            out.append(Filter(column, "gte", self.start))
        if self.end is not None:
            out.append(Filter(column, "lt", self.end))
        return out


def parse_timestamp(ts: datetime | str) -> datetime:
    """Parse an ISO timestamp (``Z`` suffix allowed) to an aware UTC datetime."""
    if isinstance(ts, datetime):
        return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(ts.strip().replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def _day_start(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _week_start(dt: datetime) -> datetime:
    day = _day_start(dt)
    return day - timedelta(days=day.weekday())


def _month_start(dt: datetime) -> datetime:
    return _day_start(dt).replace(day=1)


def _previous_month_start(dt: datetime) -> datetime:
    first = _month_start(dt)
    if first.month == 1:
        return first.replace(year=first.year - 1, month=12)
    return first.replace(month=first.month - 1)


def _year_start(dt: datetime) -> datetime:
    return _day_start(dt).replace(month=1, day=1)


def resolve_time_range(key: str | None, now: datetime | None = None) -> TimeWindow:
    now = parse_timestamp(now) if now else datetime.now(timezone.utc)
    k = normalize_time_range(key)

    if k == "today":
        return TimeWindow(_day_start(now), now)
    if k == "yesterday":
        today = _day_start(now)
        return TimeWindow(today - timedelta(days=1), today)
    if k == "this_week":
        return TimeWindow(_week_start(now), now)
    if k == "last_week":
        this_week = _week_start(now)
        return TimeWindow(this_week - timedelta(weeks=1), this_week)
    if k == "this_month":
        return TimeWindow(_month_start(now), now)
    if k == "last_month":
        return TimeWindow(_previous_month_start(now), _month_start(now))
    if k == "this_year":
        return TimeWindow(_year_start(now), now)
    if k == "last_year":
        this_year = _year_start(now)
        return TimeWindow(this_year.replace(year=this_year.year - 1), this_year)

    return TimeWindow()


def resolve_custom_window(start: str | None, end: str | None) -> TimeWindow:
    try:
        window = TimeWindow(
            parse_timestamp(start) if start else None,
            parse_timestamp(end) if end else None,
        )
    except ValueError as exc:
        raise InvalidTimeRange(f"Invalid timestamp: {exc}") from exc
    if window.start and window.end and window.end < window.start:
        raise InvalidTimeRange("end must not be earlier than start")
    return window


def resolve_window(selector, now: datetime | None = None) -> TimeWindow:
    """Resolve a range key or a ``{"start", "end"}`` mapping to a window."""
    if isinstance(selector, dict):
        return resolve_custom_window(selector.get("start"), selector.get("end"))
    return resolve_time_range(selector, now)
