"""
Moderation reports: paginated list with reporter / reported-user profiles
joined in from one batched lookup.
"""

from db import BackendError, Filter, Order
from log import get_logger
from services.aggregation import batch_lookup, collect_foreign_keys, tally
from services.query_spec import QuerySpec
from utils import fan_out

logger = get_logger(__name__)

PROFILE_COLUMNS = ("id", "username", "email", "fullname", "avatar_url")
REPORT_FILTERS = ("status", "type")
_FILTER_COLUMNS = {"status": "status", "type": "report_type"}
_SORTS = {
    "newest": Order("created_at", descending=True),
    "oldest": Order("created_at"),
}


def empty_reports_response() -> dict:
    return {
        "data": [],
        "totalCount": 0,
        "totalPages": 0,
        "stats": {"total": 0, "pending": 0, "inProgress": 0, "resolved": 0},
    }


def report_filters(spec: QuerySpec) -> list[Filter]:
    filters = []
    if spec.search:
        filters.append(Filter(("title", "description"), "any_ilike", spec.search))
    for name, value in spec.filters.items():
        column = _FILTER_COLUMNS.get(name)
        if column:
            # Case-insensitive exact match; stored casing is inconsistent.
            filters.append(Filter(column, "ilike", value))
    return filters


def report_stats(statuses: list[dict]) -> dict:
    counts = tally(statuses, lambda r: (r.get("status") or "").lower())
    return {
        "total": len(statuses),
        "pending": counts["pending"],
        "inProgress": counts["in progress"],
        "resolved": counts["resolved"],
    }


def attach_profiles(reports: list[dict], profiles: dict) -> list[dict]:
    return [
        {
            **r,
            "reporter": profiles.get(r.get("reporter_id")),
            "reported_user": profiles.get(r.get("reported_user_id")),
        }
        for r in reports
    ]


def fetch_reports(backend, spec: QuerySpec) -> dict:
    try:
        page, statuses = fan_out(
            lambda: backend.fetch_page(
                "reports",
                report_filters(spec),
                [_SORTS.get(spec.sort, _SORTS["newest"])],
                spec.offset,
                spec.page_size,
            ),
            lambda: backend.fetch_all("reports", ("status",)),
        )
        profiles = batch_lookup(
            backend,
            "profiles",
            collect_foreign_keys(page.rows, "reporter_id", "reported_user_id"),
            PROFILE_COLUMNS,
        )
    except BackendError as exc:
        logger.error("Error fetching reports: %s", exc)
        return empty_reports_response()

    return {
        "data": attach_profiles(page.rows, profiles),
        "totalCount": page.total_count,
        "totalPages": spec.total_pages(page.total_count),
        "stats": report_stats(statuses),
    }
