"""
Optimistic mutations with revert-on-failure.

The caller's view of a row is updated before the write is confirmed; if the
write fails the prior values are restored so the rendered state never shows a
change the backend rejected.
"""

from collections.abc import Callable, MutableMapping
from dataclasses import dataclass

from db import BackendError
from log import get_logger

logger = get_logger(__name__)

_MISSING = object()


@dataclass
class MutationResult:
    ok: bool
    error: str | None = None


def optimistic_update(
    state: MutableMapping,
    changes: dict,
    commit: Callable[[dict], None],
    failure_message: str = "Update failed",
) -> MutationResult:
    """Apply ``changes`` to ``state``, run ``commit``, revert on BackendError."""
    previous = {k: state.get(k, _MISSING) for k in changes}
    state.update(changes)
    try:
        commit(changes)
    except BackendError as exc:
        logger.error("%s: %s", failure_message, exc)
        for k, value in previous.items():
            if value is _MISSING:
                state.pop(k, None)
            else:
                state[k] = value
        return MutationResult(ok=False, error=failure_message)
    return MutationResult(ok=True)
