import pytest
from fastapi.testclient import TestClient

from app import app
from db import get_backend
from fakes import InMemoryBackend
from services.groups import fetch_group_category_counts
from services.users import (
    fetch_profile_by_id,
    fetch_user_game_activity,
    fetch_user_quizzes,
    set_user_blocked,
    set_user_role,
)


def _play(sid, quiz, scores, host="h9", app="quizrush", created="2025-06-01T00:00:00+00:00"):
    return {
        "id": sid,
        "quiz_id": quiz,
        "host_id": host,
        "application": app,
        "status": "finished",
        "game_pin": sid.upper(),
        "created_at": created,
        "participants": [{"user_id": u, "score": s} for u, s in scores.items()],
    }


@pytest.fixture()
def backend():
    return InMemoryBackend(
        {
            "profiles": [
                {
                    "id": "u1",
                    "username": "ada",
                    "role": "user",
                    "is_blocked": False,
                    "country_id": "ID",
                    "state_id": "gone",
                    "city_id": None,
                    "followers_count": 4,
                },
            ],
            "countries": [{"id": "ID", "name": "Indonesia"}],
            "quizzes": [{"id": "q1", "title": "Capitals"}, {"id": "q2", "title": "Rivers"}],
            "game_sessions": [
                _play("s1", "q1", {"u1": 80, "u2": 10}),
                _play("s2", "q1", {"u1": 71}),
                _play("s3", "q2", {"u1": 50}, app=None),
                _play("s4", "q-gone", {"u1": 5}),
                _play("s5", "q2", {"u2": 90}),
                _play("s6", "q1", {"u2": 1}, host="u1", created="2025-06-10T00:00:00+00:00"),
                _play("s7", "q2", {}, host="u1", created="2025-06-12T00:00:00+00:00"),
            ],
            "groups": [
                {"id": 1, "category": "Sekolah"},
                {"id": 2, "category": "School"},
                {"id": 3, "category": "Kantor"},
                {"id": 4, "category": None},
                {"id": 5, "category": "Sekolah", "deleted_at": "2025-01-01T00:00:00+00:00"},
            ],
        }
    )


@pytest.fixture()
def client(backend):
    app.dependency_overrides[get_backend] = lambda: backend
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


def test_profile_resolves_places(backend):
    profile = fetch_profile_by_id(backend, "u1")["data"]

    assert profile["country"]["name"] == "Indonesia"
    assert profile["state"] == {"id": "gone", "name": "Unknown"}
    assert profile["city"] is None
    assert profile["followers_count"] == 4
    assert profile["friends_count"] == 0


def test_profile_not_found(backend):
    assert fetch_profile_by_id(backend, "nobody") == {
        "data": None,
        "error": "Profile not found",
    }


def test_profile_route_404(client):
    assert client.get("/api/users/nobody").status_code == 404
    assert client.get("/api/users/u1").json()["data"]["username"] == "ada"


# ---------------------------------------------------------------------------
# Quizzes and activity
# ---------------------------------------------------------------------------


def test_user_quizzes_ranked_with_average_score(backend):
    data = fetch_user_quizzes(backend, "u1")["data"]

    assert data == [
        {"id": "q1", "title": "Capitals", "play_count": 2, "avg_score": 76},
        {"id": "q-gone", "title": "Unknown", "play_count": 1, "avg_score": 5},
        {"id": "q2", "title": "Rivers", "play_count": 1, "avg_score": 50},
    ]


def test_user_quizzes_none_played(backend):
    assert fetch_user_quizzes(backend, "nobody") == {"data": [], "error": None}
    assert backend.calls_for("fetch_by_ids") == []


def test_user_activity(backend):
    data = fetch_user_game_activity(backend, "u1")["data"]

    assert data["total_sessions_hosted"] == 2
    assert data["total_games_played"] == 4
    assert data["top_applications"] == [
        {"name": "quizrush", "count": 3},
        {"name": "Unknown", "count": 1},
    ]
    assert [s["id"] for s in data["recent_sessions"]] == ["s7", "s6"]
    assert data["recent_sessions"][0]["participant_count"] == 0


def test_user_activity_backend_error(backend):
    backend.fail_on.add("fetch_all")
    result = fetch_user_game_activity(backend, "u1")
    assert result["data"]["total_games_played"] == 0
    assert result["error"]


# ---------------------------------------------------------------------------
# Admin toggles
# ---------------------------------------------------------------------------


def test_set_role_commits(backend):
    profile = fetch_profile_by_id(backend, "u1")["data"]
    result = set_user_role(backend, profile, "admin")

    assert result.ok
    assert profile["role"] == "admin"
    assert backend.tables["profiles"][0]["role"] == "admin"


def test_set_role_rejects_unknown_role(backend):
    profile = fetch_profile_by_id(backend, "u1")["data"]
    result = set_user_role(backend, profile, "superuser")

    assert not result.ok
    assert profile["role"] == "user"
    assert backend.calls_for("update_by_id") == []


def test_block_reverts_on_failure(backend):
    profile = fetch_profile_by_id(backend, "u1")["data"]
    backend.fail_on.add("update_by_id")

    result = set_user_blocked(backend, profile, True)

    assert result.ok is False
    assert result.error == "Failed to update status"
    assert profile["is_blocked"] is False
    assert backend.tables["profiles"][0]["is_blocked"] is False


# ---------------------------------------------------------------------------
# Group categories
# ---------------------------------------------------------------------------


def test_group_categories_fold_localised_names(backend):
    assert fetch_group_category_counts(backend) == [
        {"category": "School", "count": 2},
        {"category": "Office", "count": 1},
        {"category": "Other", "count": 1},
    ]


def test_group_categories_route(client):
    resp = client.get("/api/groups/categories")
    assert resp.json()[0] == {"category": "School", "count": 2}


def test_user_activity_lists_hosted_only_applications(backend):
    backend.tables["game_sessions"].append(
        _play("s8", "q1", {"u2": 3}, host="u1", app="hostonly", created="2025-06-15T00:00:00+00:00")
    )
    data = fetch_user_game_activity(backend, "u1")["data"]

    assert {"name": "hostonly", "count": 0} in data["top_applications"]
    assert data["top_applications"][0] == {"name": "quizrush", "count": 3}
    assert len(backend.calls_for("fetch_all", "game_sessions")) == 2
