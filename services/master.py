"""
Address master-data dashboard: place counts and where users live.
"""

from datetime import datetime

from db import BackendError, Filter
from log import get_logger
from services.aggregation import UNKNOWN, batch_lookup, tally, top_keys
from services.timerange import resolve_time_range
from utils import fan_out

logger = get_logger(__name__)


def empty_master_dashboard() -> dict:
    return {
        "kpi": {
            "totalCountries": 0,
            "totalStates": 0,
            "totalCities": 0,
            "usersWithLocation": 0,
        },
        "charts": {"topStates": [], "topCities": []},
    }


def _top_places(backend, counts, table: str) -> list[dict]:
    ids = top_keys(counts)
    names = batch_lookup(backend, table, ids, ("id", "name"))
    return [
        {"name": (names.get(i) or {}).get("name") or UNKNOWN, "count": counts[i]}
        for i in ids
    ]


def get_master_dashboard_stats(
    backend, time_range: str = "this_year", now: datetime | None = None
) -> dict:
    """Place totals plus top states / cities by signed-up (non-deleted) users.

    The time range filters profiles by ``created_at`` only; place totals are
    always all-time.
    """
    window = resolve_time_range(time_range, now)
    profile_filters = [Filter("deleted_at", "is_null"), *window.filters()]

    try:
        total_countries, total_states, total_cities, profiles = fan_out(
            lambda: backend.count("countries"),
            lambda: backend.count("states"),
            lambda: backend.count("cities"),
            lambda: backend.fetch_all(
                "profiles", ("id", "state_id", "city_id"), profile_filters
            ),
        )
        state_counts = tally(profiles, "state_id")
        city_counts = tally(profiles, "city_id")
        top_states, top_cities = fan_out(
            lambda: _top_places(backend, state_counts, "states"),
            lambda: _top_places(backend, city_counts, "cities"),
        )
    except BackendError as exc:
        logger.error("Error fetching master dashboard stats: %s", exc)
        return empty_master_dashboard()

    return {
        "kpi": {
            "totalCountries": total_countries,
            "totalStates": total_states,
            "totalCities": total_cities,
            "usersWithLocation": sum(
                1 for p in profiles if p.get("state_id") or p.get("city_id")
            ),
        },
        "charts": {"topStates": top_states, "topCities": top_cities},
    }
