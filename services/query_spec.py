"""
Single value object for list-page queries (page, search, filters, sort).

Built once at the HTTP boundary and handed to the services unchanged so no
page re-parses its own query-string conventions.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field

import config


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class QuerySpec:
    page: int = 1
    page_size: int = config.DEFAULT_PAGE_SIZE
    search: str = ""
    filters: dict[str, str] = field(default_factory=dict)
    sort: str = "newest"

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, str],
        allowed_filters: tuple[str, ...] = (),
        default_sort: str = "newest",
        max_page_size: int = 100,
    ) -> "QuerySpec":
        page = max(1, _to_int(params.get("page"), 1))
        page_size = _to_int(params.get("page_size"), config.DEFAULT_PAGE_SIZE)
        page_size = min(max(1, page_size), max_page_size)

        # "all" is the UI's "no filter" sentinel.
        filters = {}
        for name in allowed_filters:
            value = (params.get(name) or "").strip()
            if value and value.lower() != "all":
                filters[name] = value

        return cls(
            page=page,
            page_size=page_size,
            search=(params.get("search") or "").strip(),
            filters=filters,
            sort=(params.get("sort") or default_sort).strip() or default_sort,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def total_pages(self, total_count: int) -> int:
        return math.ceil(total_count / self.page_size) if total_count > 0 else 0
