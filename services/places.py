"""
Country / state / city resolution for profile rows.
"""

from collections.abc import Iterable, Mapping, Sequence

from services.aggregation import UNKNOWN, batch_lookup, collect_foreign_keys
from utils import fan_out

PLACE_TABLES = {
    "country_id": "countries",
    "state_id": "states",
    "city_id": "cities",
}
PLACE_COLUMNS = ("id", "name", "latitude", "longitude")


def lookup_places(
    backend,
    profiles: Iterable[Mapping],
    fields: Sequence[str] = ("country_id", "state_id", "city_id"),
    columns: Sequence[str] = PLACE_COLUMNS,
) -> dict[str, dict]:
    """``{field: {id: place_row}}`` with one batched query per place table."""
    rows = list(profiles)
    ids_by_field = {f: collect_foreign_keys(rows, f) for f in fields}
    results = fan_out(
        *(
            (lambda f=f: batch_lookup(backend, PLACE_TABLES[f], ids_by_field[f], columns))
            for f in fields
        )
    )
    return dict(zip(fields, results))


def place_name(places: Mapping[str, dict], field: str, place_id) -> str | None:
    """Name for ``place_id``; ``Unknown`` when the row is gone, None when unset."""
    if place_id is None:
        return None
    place = places.get(field, {}).get(place_id)
    return place["name"] if place and place.get("name") else UNKNOWN
