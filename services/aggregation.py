"""
Aggregation helpers split into three layers:

  Join resolution: collect distinct foreign keys from fetched records and
                   resolve them with batched ``IN`` lookups.
  Tallying:        single-pass counters keyed by a grouping dimension.
  Ranking:         counters to a top-N list with a deterministic order.

Nothing here knows about HTTP or templates.
"""

import math
from collections import Counter, defaultdict
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence

import config
from log import get_logger

logger = get_logger(__name__)

UNKNOWN = "Unknown"

KeyFn = Callable[[dict], Hashable | None]

# ---------------------------------------------------------------------------
# Join resolution
# ---------------------------------------------------------------------------


def collect_foreign_keys(records: Iterable[Mapping], *fields: str) -> set:
    """Distinct non-null values of ``fields`` across ``records``."""
    keys: set = set()
    for record in records:
        for f in fields:
            value = record.get(f)
            if value is not None and value != "":
                keys.add(value)
    return keys


def batch_lookup(
    backend,
    table: str,
    ids: Iterable,
    columns: Sequence[str] | None = None,
    chunk_size: int | None = None,
) -> dict:
    """Resolve ``ids`` to ``{id: row}`` with one ``IN`` query per chunk."""
    id_list = sorted(set(ids), key=str)
    if not id_list:
        return {}
    size = chunk_size or config.LOOKUP_CHUNK_SIZE
    lookup: dict = {}
    for i in range(0, len(id_list), size):
        for row in backend.fetch_by_ids(table, id_list[i : i + size], columns):
            lookup[row["id"]] = row
    logger.debug("Resolved %d/%d ids from %s", len(lookup), len(id_list), table)
    return lookup


def display_name(entity: Mapping | None, *fields: str, fallback: str = UNKNOWN) -> str:
    """First truthy value among ``fields``; ``fallback`` for missing entities."""
    if not entity:
        return fallback
    for f in fields or ("name",):
        value = entity.get(f)
        if value:
            return value
    return fallback


# ---------------------------------------------------------------------------
# Tallying
# ---------------------------------------------------------------------------


def _key_fn(key: str | KeyFn) -> KeyFn:
    if callable(key):
        return key
    return lambda record: record.get(key)


def participant_count(record: Mapping, field: str = "participants") -> int:
    items = record.get(field)
    return len(items) if isinstance(items, list) else 0


def tally(
    records: Iterable[Mapping],
    key: str | KeyFn,
    weight: Callable[[Mapping], int] | None = None,
) -> Counter:
    """Count records per key, or sum ``weight(record)`` per key."""
    get_key = _key_fn(key)
    counts: Counter = Counter()
    for record in records:
        k = get_key(record)
        if k is None or k == "":
            continue
        counts[k] += weight(record) if weight else 1
    return counts


def tally_distinct(
    records: Iterable[Mapping], key: str | KeyFn, member: str | KeyFn
) -> dict[Hashable, set]:
    """Distinct ``member`` values per key (e.g. unique hosts per application)."""
    get_key = _key_fn(key)
    get_member = _key_fn(member)
    groups: dict[Hashable, set] = defaultdict(set)
    for record in records:
        k = get_key(record)
        if k is None or k == "":
            continue
        bucket = groups[k]
        m = get_member(record)
        if m is not None and m != "":
            bucket.add(m)
    return dict(groups)


def reweight(counts: Mapping, mapping: Mapping[Hashable, Hashable | None]) -> Counter:
    """Re-key ``counts`` through ``mapping`` (e.g. host id -> state name)."""
    out: Counter = Counter()
    for k, count in counts.items():
        target = mapping.get(k)
        if target is None or target == "":
            continue
        out[target] += count
    return out


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def safe_average(total: float, count: int) -> int:
    return round_half_up(total / count) if count > 0 else 0


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


def ranked(counts: Mapping) -> list[tuple[Hashable, int]]:
    """All buckets, count descending, ties broken by key ascending."""
    return sorted(counts.items(), key=lambda item: (-item[1], str(item[0])))


def top_keys(counts: Mapping, n: int | None = None) -> list:
    limit = config.TOP_N if n is None else n
    return [k for k, _ in ranked(counts)[:limit]]


def top_n(counts: Mapping, n: int | None = None, label: str = "name") -> list[dict]:
    limit = config.TOP_N if n is None else n
    return [{label: k, "count": count} for k, count in ranked(counts)[:limit]]
