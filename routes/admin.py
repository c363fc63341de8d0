"""
Admin routes, protected by HTTP Basic auth, CSRF tokens, and per-IP rate limiting.

Security model
--------------
* HTTP Basic credentials must match ADMIN_USERNAME / ADMIN_PASSWORD env vars.
* Every admin POST form must include a ``csrf_token`` hidden field whose value
  matches the ``csrf_token`` cookie set on the last admin GET (double-submit
  cookie pattern, no server-side session state).
* Admin endpoints (GET and POST) are rate-limited to ADMIN_RATE_LIMIT requests
  per IP per minute.

Destructive actions (clearing stale sessions) additionally require an explicit
``confirm`` field.
"""

import secrets
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from config import ADMIN_PASSWORD, ADMIN_USERNAME, STALE_SESSION_MINUTES
from db import PostgresBackend, get_backend
from log import get_logger
from services.admin import get_admin_overview
from services.sessions import clear_sessions, fetch_stale_waiting_sessions
from services.users import fetch_profile_by_id, set_user_blocked, set_user_role
from web import templates

logger = get_logger(__name__)

router = APIRouter()
_security = HTTPBasic()

Backend = Annotated[PostgresBackend, Depends(get_backend)]

# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

_rate_lock = threading.Lock()
_ip_log: dict[str, list[datetime]] = defaultdict(list)

ADMIN_RATE_LIMIT = 60  # max requests per window per IP
ADMIN_RATE_WINDOW = timedelta(minutes=1)


def _client_ip(request: Request) -> str:
    """Return the real client IP, honouring the proxy's X-Forwarded-For."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _enforce_rate_limit(request: Request) -> None:
    ip = _client_ip(request)
    now = datetime.now(timezone.utc)
    window_start = now - ADMIN_RATE_WINDOW
    with _rate_lock:
        _ip_log[ip] = [t for t in _ip_log[ip] if t > window_start]
        if len(_ip_log[ip]) >= ADMIN_RATE_LIMIT:
            logger.warning("Admin rate limit hit for IP %s", ip)
            raise HTTPException(
                status_code=429,
                detail="Too many requests. Please wait a moment before trying again.",
            )
        _ip_log[ip].append(now)


# ---------------------------------------------------------------------------
# CSRF helpers  (double-submit cookie pattern)
# ---------------------------------------------------------------------------

_CSRF_COOKIE = "csrf_token"
_CSRF_FIELD = "csrf_token"
_CSRF_COOKIE_OPTS: dict = {
    "httponly": True,
    "samesite": "strict",
    "secure": False,  # set True when served exclusively over HTTPS
}


def _get_or_create_csrf_token(request: Request) -> str:
    return request.cookies.get(_CSRF_COOKIE) or secrets.token_hex(32)


def _verify_csrf(request: Request, form_token: str) -> None:
    cookie_token = request.cookies.get(_CSRF_COOKIE, "")
    if not cookie_token or not secrets.compare_digest(cookie_token, form_token):
        logger.warning("CSRF check failed for IP %s", _client_ip(request))
        raise HTTPException(status_code=403, detail="Invalid or missing CSRF token.")


# ---------------------------------------------------------------------------
# HTTP Basic auth dependency
# ---------------------------------------------------------------------------


def require_admin(
    request: Request,
    credentials: Annotated[HTTPBasicCredentials, Depends(_security)],
) -> HTTPBasicCredentials:
    _enforce_rate_limit(request)

    if not ADMIN_USERNAME or not ADMIN_PASSWORD:
        raise HTTPException(
            status_code=503,
            detail="Admin credentials are not configured. Set ADMIN_USERNAME and ADMIN_PASSWORD.",
        )

    user_ok = secrets.compare_digest(credentials.username, ADMIN_USERNAME)
    pass_ok = secrets.compare_digest(credentials.password, ADMIN_PASSWORD)
    if not (user_ok and pass_ok):
        raise HTTPException(
            status_code=401,
            detail="Invalid admin credentials.",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials


Admin = Annotated[HTTPBasicCredentials, Depends(require_admin)]

# ---------------------------------------------------------------------------
# Template helpers
# ---------------------------------------------------------------------------


def _render(
    request: Request,
    template: str,
    *,
    csrf_token: str,
    message: str | None = None,
    error: str | None = None,
    **context,
) -> HTMLResponse:
    response = templates.TemplateResponse(
        request,
        template,
        {"csrf_token": csrf_token, "message": message, "error": error, **context},
    )
    # Refresh the CSRF cookie on every admin response so it doesn't expire mid-session.
    response.set_cookie(_CSRF_COOKIE, csrf_token, **_CSRF_COOKIE_OPTS)
    return response


def _render_sessions(
    request: Request, backend, csrf_token: str, **kwargs
) -> HTMLResponse:
    stale = fetch_stale_waiting_sessions(backend)
    return _render(
        request,
        "admin_sessions.html",
        csrf_token=csrf_token,
        sessions=stale["data"],
        load_error=stale["error"],
        threshold_minutes=STALE_SESSION_MINUTES,
        **kwargs,
    )


def _load_profile(backend, user_id: str) -> dict:
    result = fetch_profile_by_id(backend, user_id)
    if result["data"] is None:
        raise HTTPException(status_code=404, detail=result["error"] or "Not found")
    return result["data"]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/admin", response_class=HTMLResponse)
def admin_dashboard(request: Request, _: Admin, backend: Backend):
    return _render(
        request,
        "admin.html",
        csrf_token=_get_or_create_csrf_token(request),
        overview=get_admin_overview(backend),
    )


@router.get("/admin/sessions", response_class=HTMLResponse)
def admin_stale_sessions(request: Request, _: Admin, backend: Backend):
    return _render_sessions(request, backend, _get_or_create_csrf_token(request))


@router.post("/admin/sessions/clear", response_class=HTMLResponse)
def admin_clear_sessions(
    request: Request,
    _: Admin,
    backend: Backend,
    csrf_token: Annotated[str, Form(alias=_CSRF_FIELD)],
    session_ids: Annotated[list[str], Form()] = [],
    clear_all: Annotated[bool, Form()] = False,
    confirm: Annotated[bool, Form()] = False,
):
    _verify_csrf(request, csrf_token)
    fresh_token = _get_or_create_csrf_token(request)

    if not confirm:
        return _render_sessions(
            request, backend, fresh_token, error="Confirm the deletion before clearing."
        )

    if clear_all:
        stale = fetch_stale_waiting_sessions(backend)
        session_ids = [s["id"] for s in stale["data"]]

    result = clear_sessions(backend, session_ids)
    if result.error:
        return _render_sessions(request, backend, fresh_token, error=result.error)
    return _render_sessions(
        request, backend, fresh_token, message=f"Cleared {result.cleared} sessions."
    )


@router.get("/admin/users/{user_id}", response_class=HTMLResponse)
def admin_user(user_id: str, request: Request, _: Admin, backend: Backend):
    return _render(
        request,
        "admin_user.html",
        csrf_token=_get_or_create_csrf_token(request),
        profile=_load_profile(backend, user_id),
    )


@router.post("/admin/users/{user_id}/role", response_class=HTMLResponse)
def admin_user_role(
    user_id: str,
    request: Request,
    _: Admin,
    backend: Backend,
    role: Annotated[str, Form()],
    csrf_token: Annotated[str, Form(alias=_CSRF_FIELD)],
):
    _verify_csrf(request, csrf_token)
    profile = _load_profile(backend, user_id)
    result = set_user_role(backend, profile, role)
    return _render(
        request,
        "admin_user.html",
        csrf_token=_get_or_create_csrf_token(request),
        profile=profile,
        message="Role updated." if result.ok else None,
        error=result.error,
    )


@router.post("/admin/users/{user_id}/block", response_class=HTMLResponse)
def admin_user_block(
    user_id: str,
    request: Request,
    _: Admin,
    backend: Backend,
    blocked: Annotated[bool, Form()],
    csrf_token: Annotated[str, Form(alias=_CSRF_FIELD)],
):
    _verify_csrf(request, csrf_token)
    profile = _load_profile(backend, user_id)
    result = set_user_blocked(backend, profile, blocked)
    return _render(
        request,
        "admin_user.html",
        csrf_token=_get_or_create_csrf_token(request),
        profile=profile,
        message=("User blocked." if blocked else "User unblocked.") if result.ok else None,
        error=result.error,
    )
