"""
Chart series helpers.

Pure functions only: day bucketing, zero-filled trend series and full
distributions.  No DB access, no FastAPI imports.
"""

from collections.abc import Mapping
from datetime import datetime, timedelta

from services.aggregation import ranked
from services.timerange import parse_timestamp

# ---------------------------------------------------------------------------
# Bucketing
# ---------------------------------------------------------------------------


def day_key(ts) -> str | None:
    if not ts:
        return None
    return parse_timestamp(ts).strftime("%Y-%m-%d")


def build_day_starts(end: datetime, days: int) -> list[datetime]:
    """``days`` consecutive day starts ending with the day containing ``end``."""
    last = end.replace(hour=0, minute=0, second=0, microsecond=0)
    return [last - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------


def build_daily_trend(
    counts_by_day: Mapping[str, int], now: datetime, days: int = 7
) -> list[dict]:
    """Zero-filled ``[{date, count}]`` for the last ``days`` days, oldest first."""
    return [
        {"date": key, "count": counts_by_day.get(key, 0)}
        for key in (d.strftime("%Y-%m-%d") for d in build_day_starts(now, days))
    ]


def distribution(
    counts: Mapping, label: str = "name", value: str = "value"
) -> list[dict]:
    """Every bucket as ``{label, value}``, largest first."""
    return [{label: k, value: count} for k, count in ranked(counts)]
