"""
Read-only JSON endpoints behind the dashboard pages.

No auth, no admin logic.  Heavy lifting is delegated to the services layer.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from db import PostgresBackend, get_backend
from services.dashboard import get_game_dashboard_stats
from services.games import (
    fetch_game_applications,
    fetch_game_detail,
    fetch_player_demographics,
)
from services.groups import fetch_group_category_counts
from services.master import get_master_dashboard_stats
from services.query_spec import QuerySpec
from services.quizzes import get_quiz_dashboard_stats
from services.reports import REPORT_FILTERS, fetch_reports
from services.timerange import (
    InvalidTimeRange,
    TimeWindow,
    normalize_time_range,
    resolve_window,
)
from services.users import (
    fetch_profile_by_id,
    fetch_user_game_activity,
    fetch_user_quizzes,
)

router = APIRouter()

Backend = Annotated[PostgresBackend, Depends(get_backend)]

MASTER_DASHBOARD_CACHE_CONTROL = "public, s-maxage=60, stale-while-revalidate=30"


def window_param(
    time_range: Annotated[str, Query(alias="timeRange")] = "this_month",
    start: str | None = None,
    end: str | None = None,
) -> TimeWindow:
    """``start``/``end`` win over ``timeRange`` when either is given."""
    selector = {"start": start, "end": end} if (start or end) else time_range
    try:
        return resolve_window(selector)
    except InvalidTimeRange as exc:
        raise HTTPException(status_code=422, detail=str(exc))


Window = Annotated[TimeWindow, Depends(window_param)]


@router.get("/health")
def health():
    return {"ok": True}


# ---------------------------------------------------------------------------
# Dashboards
# ---------------------------------------------------------------------------


@router.get("/api/master-dashboard")
def api_master_dashboard(
    backend: Backend,
    time_range: Annotated[str, Query(alias="timeRange")] = "this_year",
):
    return JSONResponse(
        get_master_dashboard_stats(backend, normalize_time_range(time_range)),
        headers={"Cache-Control": MASTER_DASHBOARD_CACHE_CONTROL},
    )


@router.get("/api/game-dashboard")
def api_game_dashboard(
    backend: Backend,
    time_range: Annotated[str, Query(alias="timeRange")] = "this_year",
):
    return get_game_dashboard_stats(backend, normalize_time_range(time_range))


@router.get("/api/quiz-dashboard")
def api_quiz_dashboard(
    backend: Backend,
    time_range: Annotated[str, Query(alias="timeRange")] = "this_year",
):
    return get_quiz_dashboard_stats(backend, normalize_time_range(time_range))


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------


@router.get("/api/games")
def api_games(backend: Backend, window: Window):
    return fetch_game_applications(backend, window)


@router.get("/api/games/{name}")
def api_game_detail(name: str, backend: Backend, window: Window):
    return fetch_game_detail(backend, name, window)


@router.get("/api/games/{name}/demographics")
def api_game_demographics(name: str, backend: Backend, window: Window):
    return fetch_player_demographics(backend, name, window)


# ---------------------------------------------------------------------------
# Reports / users / groups
# ---------------------------------------------------------------------------


@router.get("/api/reports")
def api_reports(request: Request, backend: Backend):
    spec = QuerySpec.from_params(request.query_params, allowed_filters=REPORT_FILTERS)
    return fetch_reports(backend, spec)


@router.get("/api/users/{user_id}")
def api_user(user_id: str, backend: Backend):
    result = fetch_profile_by_id(backend, user_id)
    if result["data"] is None and result["error"] == "Profile not found":
        raise HTTPException(status_code=404, detail=result["error"])
    return result


@router.get("/api/users/{user_id}/quizzes")
def api_user_quizzes(user_id: str, backend: Backend):
    return fetch_user_quizzes(backend, user_id)


@router.get("/api/users/{user_id}/activity")
def api_user_activity(user_id: str, backend: Backend):
    return fetch_user_game_activity(backend, user_id)


@router.get("/api/groups/categories")
def api_group_categories(backend: Backend):
    return fetch_group_category_counts(backend)
