"""
Admin service.

Data assembly for the admin pages.  Keeps the route handlers focused on HTTP
concerns (auth, CSRF, rendering) rather than queries.
"""

from db import BackendError
from log import get_logger

logger = get_logger(__name__)

OVERVIEW_TABLES = (
    "profiles",
    "quizzes",
    "game_sessions",
    "reports",
    "groups",
    "countries",
    "states",
    "cities",
)


def get_admin_overview(backend) -> dict:
    """Row counts per table; a failed count renders as ``None``."""
    table_counts = []
    for table in OVERVIEW_TABLES:
        try:
            count = backend.count(table)
        except BackendError as exc:
            logger.error("Count failed for %s: %s", table, exc)
            count = None
        table_counts.append({"name": table, "count": count})
    return {"table_counts": table_counts}
