"""
Per-application game statistics.

``fetch_game_applications`` rolls every session up by application name;
``fetch_game_detail`` and ``fetch_player_demographics`` drill into one
application.
"""

from collections import Counter

from db import BackendError, Filter, Order
from log import get_logger
from services.aggregation import (
    UNKNOWN,
    batch_lookup,
    display_name,
    participant_count,
    ranked,
    safe_average,
    tally,
    tally_distinct,
    top_keys,
)
from services.charts import distribution
from services.timerange import TimeWindow, parse_timestamp
from utils import to_iso

logger = get_logger(__name__)

APPLICATION_COLUMNS = ("application", "status", "host_id", "participants", "created_at")
DETAIL_COLUMNS = (
    "id",
    "quiz_id",
    "host_id",
    "game_pin",
    "status",
    "difficulty",
    "total_time_minutes",
    "participants",
    "quiz_detail",
    "created_at",
    "started_at",
    "ended_at",
)

# Session durations outside (0, MAX_DURATION_MINUTES) are treated as noise.
MAX_DURATION_MINUTES = 600


def _status_count(sessions: list[dict], status: str, key: str = "application") -> Counter:
    return tally((s for s in sessions if s.get("status") == status), key)


# ---------------------------------------------------------------------------
# Applications overview
# ---------------------------------------------------------------------------


def fetch_game_applications(backend, window: TimeWindow) -> dict:
    try:
        sessions = backend.fetch_all(
            "game_sessions",
            APPLICATION_COLUMNS,
            [Filter("application", "not_null"), *window.filters()],
        )
    except BackendError as exc:
        logger.error("Error fetching game applications: %s", exc)
        return {"data": [], "error": str(exc)}

    totals = tally(sessions, "application")
    finished = _status_count(sessions, "finished")
    active = _status_count(sessions, "active")
    hosts = tally_distinct(sessions, "application", "host_id")
    players = tally(sessions, "application", participant_count)

    first_seen: dict = {}
    last_seen: dict = {}
    for s in sessions:
        app, created = s.get("application"), s.get("created_at")
        if not app or not created:
            continue
        ts = parse_timestamp(created)
        if app not in first_seen or ts < first_seen[app]:
            first_seen[app] = ts
        if app not in last_seen or ts > last_seen[app]:
            last_seen[app] = ts

    data = [
        {
            "name": app,
            "total_sessions": total,
            "finished_sessions": finished[app],
            "active_sessions": active[app],
            "unique_hosts": len(hosts.get(app, ())),
            "total_players": players[app],
            "first_session": to_iso(first_seen.get(app)),
            "last_session": to_iso(last_seen.get(app)),
        }
        for app, total in ranked(totals)
    ]
    return {"data": data, "error": None}


# ---------------------------------------------------------------------------
# Single application
# ---------------------------------------------------------------------------


def empty_game_detail_stats() -> dict:
    return {
        "total_sessions": 0,
        "total_players": 0,
        "unique_hosts": 0,
        "finished_sessions": 0,
        "active_sessions": 0,
        "waiting_sessions": 0,
        "avg_players_per_session": 0,
        "avg_duration_minutes": 0,
        "top_quizzes": [],
        "top_hosts": [],
        "difficulty_breakdown": [],
    }


def session_duration_minutes(session: dict) -> float | None:
    started, ended = session.get("started_at"), session.get("ended_at")
    if not started or not ended:
        return None
    minutes = (parse_timestamp(ended) - parse_timestamp(started)).total_seconds() / 60
    return minutes if 0 < minutes < MAX_DURATION_MINUTES else None


def _quiz_key(session: dict) -> str:
    detail = session.get("quiz_detail") or {}
    return session.get("quiz_id") or detail.get("title") or "Unknown Quiz"


def _map_detail_session(s: dict) -> dict:
    detail = s.get("quiz_detail") or {}
    return {
        "id": s["id"],
        "quiz_id": s.get("quiz_id"),
        "quiz_title": detail.get("title") or "Unknown Quiz",
        "quiz_category": detail.get("category"),
        "host_id": s.get("host_id"),
        "game_pin": s.get("game_pin"),
        "status": s.get("status"),
        "difficulty": s.get("difficulty"),
        "total_time_minutes": s.get("total_time_minutes"),
        "participant_count": participant_count(s),
        "created_at": to_iso(s.get("created_at")),
        "started_at": to_iso(s.get("started_at")),
        "ended_at": to_iso(s.get("ended_at")),
    }


def fetch_game_detail(backend, app_name: str, window: TimeWindow) -> dict:
    try:
        sessions = backend.fetch_all(
            "game_sessions",
            DETAIL_COLUMNS,
            [Filter("application", "eq", app_name), *window.filters()],
            [Order("created_at", descending=True)],
        )
        host_counts = tally(sessions, "host_id")
        hosts = batch_lookup(
            backend,
            "profiles",
            top_keys(host_counts),
            ("id", "fullname", "username"),
        )
    except BackendError as exc:
        logger.error("Error fetching game detail for %s: %s", app_name, exc)
        return {"stats": empty_game_detail_stats(), "sessions": [], "error": str(exc)}

    mapped = [_map_detail_session(s) for s in sessions]
    total = len(sessions)
    total_players = sum(m["participant_count"] for m in mapped)
    durations = [d for d in map(session_duration_minutes, sessions) if d is not None]

    quiz_counts = tally(sessions, _quiz_key)
    quiz_meta: dict = {}
    for m, s in zip(mapped, sessions):
        quiz_meta.setdefault(_quiz_key(s), m)

    stats = {
        "total_sessions": total,
        "total_players": total_players,
        "unique_hosts": len(host_counts),
        "finished_sessions": sum(1 for s in sessions if s.get("status") == "finished"),
        "active_sessions": sum(1 for s in sessions if s.get("status") == "active"),
        "waiting_sessions": sum(1 for s in sessions if s.get("status") == "waiting"),
        "avg_players_per_session": safe_average(total_players, total),
        "avg_duration_minutes": safe_average(sum(durations), len(durations)),
        "top_quizzes": [
            {
                "title": quiz_meta[k]["quiz_title"],
                "category": quiz_meta[k]["quiz_category"],
                "count": quiz_counts[k],
            }
            for k in top_keys(quiz_counts)
        ],
        "top_hosts": [
            {
                "id": host_id,
                "name": display_name(hosts.get(host_id), "fullname", "username"),
                "count": host_counts[host_id],
            }
            for host_id in top_keys(host_counts)
        ],
        "difficulty_breakdown": distribution(
            tally(sessions, lambda s: s.get("difficulty") or "unknown"),
            label="difficulty",
            value="count",
        ),
    }
    return {"stats": stats, "sessions": mapped, "error": None}


# ---------------------------------------------------------------------------
# Player demographics
# ---------------------------------------------------------------------------

COUNTRY_COLUMNS = ("id", "name", "iso3", "numeric_code", "latitude", "longitude")


def participant_user_ids(sessions: list[dict]) -> set:
    ids: set = set()
    for s in sessions:
        participants = s.get("participants")
        if not isinstance(participants, list):
            continue
        for p in participants:
            if isinstance(p, dict) and p.get("user_id"):
                ids.add(p["user_id"])
    return ids


def fetch_player_demographics(backend, app_name: str, window: TimeWindow) -> dict:
    empty = {"locations": [], "grades": [], "genders": []}
    try:
        sessions = backend.fetch_all(
            "game_sessions",
            ("participants",),
            [Filter("application", "eq", app_name), *window.filters()],
        )
        user_ids = participant_user_ids(sessions)
        if not user_ids:
            return empty
        profiles = list(
            batch_lookup(
                backend, "profiles", user_ids, ("id", "country_id", "grade", "gender")
            ).values()
        )
        country_counts = tally(profiles, "country_id")
        countries = batch_lookup(backend, "countries", country_counts, COUNTRY_COLUMNS)
    except BackendError as exc:
        logger.error("Error fetching demographics for %s: %s", app_name, exc)
        return empty

    # Map points need coordinates, so countries missing from the lookup are
    # left off the location list (they still count toward grades/genders).
    locations = []
    for country_id, count in ranked(country_counts):
        country = countries.get(country_id)
        if not country:
            continue
        code = country.get("numeric_code")
        locations.append(
            {
                "country": country.get("name") or UNKNOWN,
                "iso3": country.get("iso3"),
                "numeric_code": str(code).zfill(3) if code else None,
                "latitude": country.get("latitude"),
                "longitude": country.get("longitude"),
                "count": count,
            }
        )

    return {
        "locations": locations,
        "grades": distribution(
            tally(profiles, lambda p: p.get("grade") or UNKNOWN),
            label="grade",
            value="count",
        ),
        "genders": distribution(
            tally(profiles, lambda p: p.get("gender") or UNKNOWN),
            label="gender",
            value="count",
        ),
    }
