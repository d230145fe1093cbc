from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

LAST_RFID_CACHE_KEY = "school:last-detected-rfid"


def remember_last_rfid(rfid_tag: str, device_id: str) -> dict:
    """Overwrite the single last-scanned slot; the latest write wins."""
    entry = {
        "rfid_tag": rfid_tag,
        "device_id": device_id,
        "detected_at": timezone.now().isoformat(),
    }
    cache.set(LAST_RFID_CACHE_KEY, entry, timeout=getattr(settings, "LAST_RFID_TTL_SECONDS", 300))
    return entry


def last_rfid() -> dict | None:
    return cache.get(LAST_RFID_CACHE_KEY)
