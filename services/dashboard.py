"""
Game dashboard assembly service.

Pulls finished sessions for a time range, tallies them in one pass, resolves
host / quiz / place names with batched lookups and returns a plain dict ready
for JSON.  No FastAPI / HTTP concerns here.
"""

from collections import Counter
from datetime import datetime, timezone

from db import BackendError, Filter, Order
from log import get_logger
from services.aggregation import (
    UNKNOWN,
    batch_lookup,
    collect_foreign_keys,
    display_name,
    participant_count,
    reweight,
    safe_average,
    tally,
    top_keys,
    top_n,
)
from services.charts import build_daily_trend, day_key, distribution
from services.places import lookup_places, place_name
from services.timerange import resolve_time_range
from utils import capitalize_first, clean_app_name, fan_out, to_iso

logger = get_logger(__name__)

SESSION_COLUMNS = (
    "created_at",
    "total_time_minutes",
    "application",
    "host_id",
    "participants",
    "current_questions",
    "quiz_id",
)
RECENT_COLUMNS = ("id", "created_at", "quiz_title", "total_questions", "host_id")
HOST_COLUMNS = (
    "id",
    "fullname",
    "username",
    "avatar_url",
    "state_id",
    "city_id",
    "country_id",
)
RECENT_LIMIT = 5
TREND_DAYS = 7


def empty_game_dashboard() -> dict:
    return {
        "kpi": {
            "totalSessions": 0,
            "totalParticipants": 0,
            "avgDuration": 0,
            "avgQuestions": 0,
        },
        "charts": {
            "trend": [],
            "apps": [],
            "topHosts": [],
            "recentActivity": [],
            "topCategories": [],
            "topStates": [],
            "topCities": [],
            "topCountries": [],
        },
    }


# ---------------------------------------------------------------------------
# Shaping helpers
# ---------------------------------------------------------------------------


def _host_summary(host: dict | None) -> dict:
    return {
        "fullname": display_name(host, "fullname", "username"),
        "username": (host or {}).get("username") or "",
        "avatar_url": (host or {}).get("avatar_url"),
    }


def _top_hosts(host_counts: Counter, hosts: dict) -> list[dict]:
    return [
        {"id": host_id, **_host_summary(hosts.get(host_id)), "count": host_counts[host_id]}
        for host_id in top_keys(host_counts)
    ]


def _category_counts(quiz_counts: Counter, quizzes: dict) -> Counter:
    counts: Counter = Counter()
    for quiz_id, count in quiz_counts.items():
        quiz = quizzes.get(quiz_id)
        if quiz is None:
            category = UNKNOWN
        else:
            category = capitalize_first(quiz.get("category") or "Uncategorized")
        counts[category] += count
    return counts


def _location_counts(host_counts: Counter, hosts: dict, places: dict, field: str) -> Counter:
    names = {
        host_id: place_name(places, field, host.get(field))
        for host_id, host in hosts.items()
    }
    return reweight(host_counts, names)


def _recent_activity(recent: list[dict], hosts: dict) -> list[dict]:
    return [
        {
            "id": s["id"],
            "created_at": to_iso(s.get("created_at")),
            "quiz_title": s.get("quiz_title") or "Untitled Quiz",
            "total_questions": s.get("total_questions") or 0,
            "host": _host_summary(hosts.get(s.get("host_id"))),
        }
        for s in recent
    ]


# ---------------------------------------------------------------------------
# Main dashboard query
# ---------------------------------------------------------------------------


def get_game_dashboard_stats(
    backend, time_range: str = "this_year", now: datetime | None = None
) -> dict:
    now = now or datetime.now(timezone.utc)
    window = resolve_time_range(time_range, now)
    finished = Filter("status", "eq", "finished")

    try:
        sessions, recent = fan_out(
            lambda: backend.fetch_all(
                "game_sessions", SESSION_COLUMNS, [finished, *window.filters()]
            ),
            lambda: backend.fetch_all(
                "game_sessions",
                RECENT_COLUMNS,
                [finished],
                [Order("created_at", descending=True)],
                limit=RECENT_LIMIT,
            ),
        )

        host_counts = tally(sessions, "host_id")
        quiz_counts = tally(sessions, "quiz_id")

        hosts, quizzes = fan_out(
            lambda: batch_lookup(
                backend,
                "profiles",
                set(host_counts) | collect_foreign_keys(recent, "host_id"),
                HOST_COLUMNS,
            ),
            lambda: batch_lookup(backend, "quizzes", quiz_counts, ("id", "category")),
        )
        session_hosts = {k: v for k, v in hosts.items() if k in host_counts}
        places = lookup_places(backend, session_hosts.values(), columns=("id", "name"))
    except BackendError as exc:
        logger.error("Error fetching game stats: %s", exc)
        return empty_game_dashboard()

    total_sessions = len(sessions)
    total_participants = sum(participant_count(s) for s in sessions)
    total_duration = sum(s.get("total_time_minutes") or 0 for s in sessions)
    total_questions = sum(participant_count(s, "current_questions") for s in sessions)

    apps = tally(sessions, lambda s: clean_app_name(s.get("application")))
    by_day = tally(sessions, lambda s: day_key(s.get("created_at")))

    return {
        "kpi": {
            "totalSessions": total_sessions,
            "totalParticipants": total_participants,
            "avgDuration": safe_average(total_duration, total_sessions),
            "avgQuestions": safe_average(total_questions, total_sessions),
        },
        "charts": {
            "trend": build_daily_trend(by_day, now, TREND_DAYS),
            "apps": distribution(apps),
            "topHosts": _top_hosts(host_counts, hosts),
            "recentActivity": _recent_activity(recent, hosts),
            "topCategories": top_n(_category_counts(quiz_counts, quizzes)),
            "topStates": top_n(
                _location_counts(host_counts, session_hosts, places, "state_id")
            ),
            "topCities": top_n(
                _location_counts(host_counts, session_hosts, places, "city_id")
            ),
            "topCountries": top_n(
                _location_counts(host_counts, session_hosts, places, "country_id")
            ),
        },
    }
