"""
User detail views and admin toggles.
"""

from collections import Counter

from db import BackendError, Filter, Order
from log import get_logger
from services.aggregation import (
    UNKNOWN,
    batch_lookup,
    participant_count,
    safe_average,
    top_keys,
    top_n,
)
from services.mutations import MutationResult, optimistic_update
from services.places import lookup_places
from utils import fan_out, to_iso

logger = get_logger(__name__)

QUIZ_HISTORY_LIMIT = 10
RECENT_HOSTED_LIMIT = 5
ROLES = ("user", "admin")


def _find_participant(session: dict, user_id: str) -> dict | None:
    participants = session.get("participants")
    if not isinstance(participants, list):
        return None
    for p in participants:
        if isinstance(p, dict) and p.get("user_id") == user_id:
            return p
    return None


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


def fetch_profile_by_id(backend, user_id: str) -> dict:
    try:
        rows = backend.fetch_all("profiles", None, [Filter("id", "eq", user_id)])
        if not rows:
            return {"data": None, "error": "Profile not found"}
        profile = dict(rows[0])
        places = lookup_places(backend, [profile])
    except BackendError as exc:
        logger.error("Error fetching profile %s: %s", user_id, exc)
        return {"data": None, "error": str(exc)}

    for field, key in (("country_id", "country"), ("state_id", "state"), ("city_id", "city")):
        place_id = profile.get(field)
        if place_id is None:
            profile[key] = None
        else:
            profile[key] = places[field].get(place_id) or {"id": place_id, "name": UNKNOWN}
    for counter in ("following_count", "followers_count", "friends_count"):
        profile[counter] = profile.get(counter) or 0
    return {"data": profile, "error": None}


# ---------------------------------------------------------------------------
# Quiz history
# ---------------------------------------------------------------------------


def fetch_user_quizzes(backend, user_id: str) -> dict:
    """Quizzes the user played most often, with their average score."""
    try:
        sessions = backend.fetch_all("game_sessions", ("quiz_id", "participants"))
    except BackendError as exc:
        logger.error("Error fetching game sessions: %s", exc)
        return {"data": [], "error": str(exc)}

    plays: Counter = Counter()
    scores: Counter = Counter()
    for s in sessions:
        participant = _find_participant(s, user_id)
        if participant is None or not s.get("quiz_id"):
            continue
        plays[s["quiz_id"]] += 1
        scores[s["quiz_id"]] += participant.get("score") or 0

    quiz_ids = top_keys(plays, QUIZ_HISTORY_LIMIT)
    if not quiz_ids:
        return {"data": [], "error": None}

    try:
        quizzes = batch_lookup(backend, "quizzes", quiz_ids, ("id", "title"))
    except BackendError as exc:
        logger.error("Error fetching quizzes: %s", exc)
        return {"data": [], "error": str(exc)}

    data = [
        {
            "id": quiz_id,
            "title": (quizzes.get(quiz_id) or {}).get("title") or UNKNOWN,
            "play_count": plays[quiz_id],
            "avg_score": safe_average(scores[quiz_id], plays[quiz_id]),
        }
        for quiz_id in quiz_ids
    ]
    return {"data": data, "error": None}


# ---------------------------------------------------------------------------
# Game activity
# ---------------------------------------------------------------------------


def fetch_user_game_activity(backend, user_id: str) -> dict:
    try:
        hosted, every = fan_out(
            lambda: backend.fetch_all(
                "game_sessions",
                ("id", "game_pin", "status", "application", "created_at", "participants"),
                [Filter("host_id", "eq", user_id)],
                [Order("created_at", descending=True)],
            ),
            lambda: backend.fetch_all(
                "game_sessions", ("id", "participants", "application")
            ),
        )
    except BackendError as exc:
        logger.error("Error fetching game activity for %s: %s", user_id, exc)
        return {
            "data": {
                "total_sessions_hosted": 0,
                "total_games_played": 0,
                "top_applications": [],
                "recent_sessions": [],
            },
            "error": str(exc),
        }

    played = [s for s in every if _find_participant(s, user_id) is not None]
    app_counts: Counter = Counter(s.get("application") or UNKNOWN for s in played)
    # Hosted-only applications still show up, with no plays.
    for s in hosted:
        app_counts.setdefault(s.get("application") or UNKNOWN, 0)

    return {
        "data": {
            "total_sessions_hosted": len(hosted),
            "total_games_played": len(played),
            "top_applications": top_n(app_counts),
            "recent_sessions": [
                {
                    "id": s["id"],
                    "game_pin": s.get("game_pin"),
                    "status": s.get("status"),
                    "application": s.get("application"),
                    "created_at": to_iso(s.get("created_at")),
                    "participant_count": participant_count(s),
                }
                for s in hosted[:RECENT_HOSTED_LIMIT]
            ],
        },
        "error": None,
    }


# ---------------------------------------------------------------------------
# Admin toggles
# ---------------------------------------------------------------------------


def _commit_profile(backend, user_id: str):
    return lambda changes: backend.update_by_id("profiles", user_id, changes)


def set_user_role(backend, profile: dict, role: str) -> MutationResult:
    if role not in ROLES:
        return MutationResult(ok=False, error=f"Unknown role: {role}")
    return optimistic_update(
        profile,
        {"role": role},
        _commit_profile(backend, profile["id"]),
        failure_message="Failed to update role",
    )


def set_user_blocked(backend, profile: dict, blocked: bool) -> MutationResult:
    return optimistic_update(
        profile,
        {"is_blocked": blocked},
        _commit_profile(backend, profile["id"]),
        failure_message="Failed to update status",
    )
