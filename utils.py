import re
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

FAN_OUT_WORKERS = 4

# Localised group categories as stored by the mobile clients.
GROUP_CATEGORY_MAP = {
    "Kampus": "Campus",
    "Kantor": "Office",
    "Keluarga": "Family",
    "Komunitas": "Community",
    "Masjid": "Mosque",
    "Musholla": "Mosque",
    "Pesantren": "Islamic Boarding School",
    "Sekolah": "School",
    "Umum": "General",
    "Lainnya": "Other",
}


def fan_out(*calls: Callable[[], Any], max_workers: int = FAN_OUT_WORKERS) -> list:
    """Run independent zero-arg calls concurrently; results keep call order.

    The first exception raised by any call propagates to the caller.
    """
    if not calls:
        return []
    if len(calls) == 1:
        return [calls[0]()]
    with ThreadPoolExecutor(max_workers=min(max_workers, len(calls))) as executor:
        futures = [executor.submit(call) for call in calls]
        return [future.result() for future in futures]


def clean_app_name(name: str | None) -> str:
    """``quizrush.com`` -> ``QUIZRUSH``; empty -> ``Unknown``."""
    if not name:
        return "Unknown"
    return re.sub(r"\.com$", "", name, flags=re.IGNORECASE).upper()


def capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def normalize_group_category(category: str | None) -> str:
    cat = category or "Other"
    return GROUP_CATEGORY_MAP.get(cat, cat)


def to_iso(ts) -> str | None:
    """Normalise a timestamp column value to an ISO string for JSON/templates."""
    if ts is None:
        return None
    if hasattr(ts, "isoformat"):
        return ts.isoformat()
    return str(ts)
