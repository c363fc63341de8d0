"""
Stale game-session sweep.

Lists ``waiting`` sessions older than the configured threshold and clears a
selected batch of them on explicit operator request.  There is no automatic
sweeping.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import config
from db import BackendError, Filter, Order
from log import get_logger
from services.aggregation import (
    batch_lookup,
    collect_foreign_keys,
    display_name,
    participant_count,
    round_half_up,
)
from services.timerange import parse_timestamp
from utils import to_iso

logger = get_logger(__name__)

SESSION_COLUMNS = (
    "id",
    "game_pin",
    "quiz_id",
    "host_id",
    "created_at",
    "participants",
    "application",
    "quiz_detail",
    "status",
)
HOST_COLUMNS = ("id", "fullname", "username", "avatar_url")


@dataclass
class ClearResult:
    cleared: int
    error: str | None = None

    def as_dict(self) -> dict:
        return {"cleared": self.cleared, "error": self.error}


def stale_cutoff(now: datetime, threshold_minutes: int) -> datetime:
    return now - timedelta(minutes=threshold_minutes)


def is_stale(session: dict, now: datetime, threshold_minutes: int) -> bool:
    if session.get("status") != "waiting" or not session.get("created_at"):
        return False
    return parse_timestamp(session["created_at"]) <= stale_cutoff(
        now, threshold_minutes
    )


def _map_stale_session(session: dict, hosts: dict, now: datetime) -> dict:
    host = hosts.get(session.get("host_id"))
    quiz_detail = session.get("quiz_detail") or {}
    created_at = parse_timestamp(session["created_at"])
    return {
        "id": session["id"],
        "game_pin": session.get("game_pin"),
        "quiz_title": quiz_detail.get("title") or "Untitled Quiz",
        "host_name": display_name(host, "fullname", "username"),
        "host_id": session.get("host_id"),
        "avatar_url": host.get("avatar_url") if host else None,
        "created_at": to_iso(session["created_at"]),
        "waiting_duration_minutes": round_half_up(
            (now - created_at).total_seconds() / 60
        ),
        "participant_count": participant_count(session),
        "application": session.get("application") or "-",
    }


def fetch_stale_waiting_sessions(
    backend, now: datetime | None = None, threshold_minutes: int | None = None
) -> dict:
    """Waiting sessions created at or before ``now - threshold``, oldest first."""
    now = now or datetime.now(timezone.utc)
    threshold = (
        config.STALE_SESSION_MINUTES if threshold_minutes is None else threshold_minutes
    )
    try:
        sessions = backend.fetch_all(
            "game_sessions",
            SESSION_COLUMNS,
            [
                Filter("status", "eq", "waiting"),
                Filter("created_at", "lte", stale_cutoff(now, threshold)),
            ],
            [Order("created_at")],
        )
        if not sessions:
            return {"data": [], "error": None}
        hosts = batch_lookup(
            backend,
            "profiles",
            collect_foreign_keys(sessions, "host_id"),
            HOST_COLUMNS,
        )
    except BackendError as exc:
        logger.error("fetch_stale_waiting_sessions failed: %s", exc)
        return {"data": [], "error": str(exc) or "Failed to fetch stale sessions"}

    return {
        "data": [_map_stale_session(s, hosts, now) for s in sessions],
        "error": None,
    }


def clear_sessions(backend, session_ids: list[str] | None) -> ClearResult:
    """Delete exactly ``session_ids`` in one batch.  Not cascading."""
    ids = list(dict.fromkeys(session_ids or []))
    if not ids:
        return ClearResult(cleared=0, error="No session IDs provided")
    try:
        cleared = backend.delete_by_ids("game_sessions", ids)
    except BackendError as exc:
        logger.error("clear_sessions failed for %d ids: %s", len(ids), exc)
        return ClearResult(cleared=0, error=str(exc) or "Failed to clear sessions")
    if cleared < len(ids):
        logger.warning(
            "Cleared %d of %d selected sessions; the rest were already gone",
            cleared,
            len(ids),
        )
    else:
        logger.info("Cleared %d stale sessions", cleared)
    return ClearResult(cleared=cleared)
