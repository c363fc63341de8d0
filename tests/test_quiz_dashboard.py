from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app import app
from db import get_backend
from fakes import InMemoryBackend
from services.quizzes import empty_quiz_dashboard, get_quiz_dashboard_stats

NOW = datetime(2025, 6, 18, 12, 0, tzinfo=timezone.utc)


def _quiz(qid, created, is_public=False, request=None, questions=3, deleted=None):
    return {
        "id": qid,
        "is_public": is_public,
        "request": request,
        "questions": [{"n": i} for i in range(questions)] if questions is not None else None,
        "created_at": created,
        "deleted_at": deleted,
    }


@pytest.fixture()
def backend():
    return InMemoryBackend(
        {
            "quizzes": [
                _quiz("q1", "2025-02-01T00:00:00+00:00", is_public=True, questions=4),
                _quiz("q2", "2025-03-01T00:00:00+00:00", request=True, questions=5),
                _quiz("q3", "2025-04-01T00:00:00+00:00", request="yes", questions=None),
                _quiz("q4", "2025-05-01T00:00:00+00:00", is_public=True, deleted="2025-05-02T00:00:00+00:00"),
                _quiz("q5", "2024-07-01T00:00:00+00:00", is_public=True, questions=10),
            ]
        }
    )


@pytest.fixture()
def client(backend):
    app.dependency_overrides[get_backend] = lambda: backend
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_this_year_counts_live_quizzes(backend):
    assert get_quiz_dashboard_stats(backend, "this_year", now=NOW) == {
        "totalQuizzes": 3,
        "publicQuizzes": 1,
        "privateQuizzes": 2,
        "pendingQuizzes": 1,
        "avgQuestions": 3,
    }


def test_window_filters_by_created_at(backend):
    stats = get_quiz_dashboard_stats(backend, "last_year", now=NOW)
    assert stats["totalQuizzes"] == 1
    assert stats["publicQuizzes"] == 1
    assert stats["avgQuestions"] == 10


def test_all_time_includes_every_live_quiz(backend):
    stats = get_quiz_dashboard_stats(backend, "all", now=NOW)
    assert stats["totalQuizzes"] == 4
    assert stats["publicQuizzes"] + stats["privateQuizzes"] == 4


def test_no_quizzes_averages_to_zero(backend):
    stats = get_quiz_dashboard_stats(backend, "today", now=NOW)
    assert stats == empty_quiz_dashboard()


def test_backend_failure_returns_zeros(backend):
    backend.fail_on.add("fetch_all")
    assert get_quiz_dashboard_stats(backend, now=NOW) == empty_quiz_dashboard()


def test_route_accepts_hyphenated_range(client):
    resp = client.get("/api/quiz-dashboard", params={"timeRange": "all-time"})
    assert resp.status_code == 200
    assert resp.json()["totalQuizzes"] == 4
