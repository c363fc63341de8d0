from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app import app
from db import get_backend
from fakes import InMemoryBackend
from routes.api import MASTER_DASHBOARD_CACHE_CONTROL
from services.master import empty_master_dashboard, get_master_dashboard_stats

NOW = datetime(2025, 6, 18, 12, 0, tzinfo=timezone.utc)


def _profile(pid, state=None, city=None, created="2025-03-01T00:00:00+00:00", deleted=None):
    return {
        "id": pid,
        "state_id": state,
        "city_id": city,
        "created_at": created,
        "deleted_at": deleted,
    }


@pytest.fixture()
def backend():
    return InMemoryBackend(
        {
            "countries": [{"id": "ID", "name": "Indonesia"}, {"id": "MY", "name": "Malaysia"}],
            "states": [
                {"id": 1, "name": "Jawa Barat"},
                {"id": 2, "name": "Jawa Timur"},
                {"id": 3, "name": "Bali"},
            ],
            "cities": [{"id": 10, "name": "Bandung"}, {"id": 20, "name": "Surabaya"}],
            "profiles": [
                _profile("u1", 1, 10),
                _profile("u2", 1, 10),
                _profile("u3", 2, 20),
                _profile("u4", 99, None),
                _profile("u5"),
                _profile("u6", 3, None, deleted="2025-04-01T00:00:00+00:00"),
                _profile("u7", 3, None, created="2023-01-01T00:00:00+00:00"),
            ],
        }
    )


@pytest.fixture()
def client(backend):
    app.dependency_overrides[get_backend] = lambda: backend
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_kpis(backend):
    stats = get_master_dashboard_stats(backend, "this_year", now=NOW)
    assert stats["kpi"] == {
        "totalCountries": 2,
        "totalStates": 3,
        "totalCities": 2,
        "usersWithLocation": 4,
    }


def test_top_states_resolve_missing_to_unknown(backend):
    charts = get_master_dashboard_stats(backend, "this_year", now=NOW)["charts"]

    assert charts["topStates"] == [
        {"name": "Jawa Barat", "count": 2},
        {"name": "Jawa Timur", "count": 1},
        {"name": "Unknown", "count": 1},
    ]
    assert charts["topCities"] == [
        {"name": "Bandung", "count": 2},
        {"name": "Surabaya", "count": 1},
    ]


def test_deleted_and_out_of_range_profiles_are_excluded(backend):
    all_time = get_master_dashboard_stats(backend, "all_time", now=NOW)
    assert {"name": "Bali", "count": 1} in all_time["charts"]["topStates"]
    assert all_time["kpi"]["usersWithLocation"] == 5


def test_place_totals_ignore_time_range(backend):
    stats = get_master_dashboard_stats(backend, "today", now=NOW)
    assert stats["kpi"]["totalStates"] == 3
    assert stats["kpi"]["usersWithLocation"] == 0
    assert stats["charts"] == {"topStates": [], "topCities": []}


def test_backend_failure_returns_zeroed_shape(backend):
    backend.fail_on.add(("count", "cities"))
    assert get_master_dashboard_stats(backend, now=NOW) == empty_master_dashboard()


def test_route_sets_cache_control(client):
    resp = client.get("/api/master-dashboard", params={"timeRange": "all-time"})

    assert resp.status_code == 200
    assert resp.headers["cache-control"] == MASTER_DASHBOARD_CACHE_CONTROL
    assert resp.json()["kpi"]["totalCountries"] == 2


def test_route_unknown_range_falls_back_to_all_time(client):
    resp = client.get("/api/master-dashboard", params={"timeRange": "fortnight"})
    assert resp.json()["kpi"]["usersWithLocation"] == 5
