from db import BackendError
from services.mutations import optimistic_update


def _failing_commit(changes):
    raise BackendError("connection reset")


def test_success_keeps_new_values():
    state = {"is_blocked": False}
    committed = []

    result = optimistic_update(state, {"is_blocked": True}, committed.append)

    assert result.ok and result.error is None
    assert state == {"is_blocked": True}
    assert committed == [{"is_blocked": True}]


def test_failure_restores_prior_values():
    state = {"role": "user", "is_blocked": False}

    result = optimistic_update(
        state, {"role": "admin"}, _failing_commit, failure_message="Failed to update role"
    )

    assert not result.ok
    assert result.error == "Failed to update role"
    assert state == {"role": "user", "is_blocked": False}


def test_failure_drops_keys_that_did_not_exist():
    state = {"id": "u1"}
    optimistic_update(state, {"is_blocked": True}, _failing_commit)
    assert state == {"id": "u1"}


def test_state_is_updated_before_commit_runs():
    state = {"role": "user"}
    seen = []

    optimistic_update(state, {"role": "admin"}, lambda changes: seen.append(state["role"]))

    assert seen == ["admin"]
