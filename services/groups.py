from db import BackendError, Filter
from log import get_logger
from services.aggregation import tally, top_n
from utils import normalize_group_category

logger = get_logger(__name__)


def fetch_group_category_counts(backend) -> list[dict]:
    """Top categories across live groups, localised names folded together."""
    try:
        groups = backend.fetch_all(
            "groups", ("category",), [Filter("deleted_at", "is_null")]
        )
    except BackendError as exc:
        logger.error("Error fetching group categories: %s", exc)
        return []
    counts = tally(groups, lambda g: normalize_group_category(g.get("category")))
    return top_n(counts, label="category")
