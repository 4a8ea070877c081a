from __future__ import annotations

from datetime import date

from nora_today.core.errors import StoreError
from nora_today.core.logging import DOMAIN_TODAY, get_domain_logger
from nora_today.memory.store import KeyValueStore

logger = get_domain_logger(__name__, DOMAIN_TODAY)

REPORT_READ_PREFIX = "report_read_"


def marker_key(day: date) -> str:
    return f"{REPORT_READ_PREFIX}{day.isoformat()}"


class ReportReadMarkers:
    """Per-day ``date -> recording id`` markers recording which report the user has opened."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def get(self, day: date) -> str | None:
        try:
            value = await self._store.get_item(marker_key(day))
        except StoreError as exc:
            logger.warning("Report-read marker unreadable for %s, treating as unread: %s", day, exc)
            return None
        # Markers written before ids were stored only hold "true"/"false"; neither names a recording.
        if value in (None, "", "true", "false"):
            return None
        return value

    async def mark(self, day: date, recording_id: str) -> bool:
        try:
            await self._store.set_item(marker_key(day), recording_id)
            return True
        except StoreError as exc:
            logger.warning("Could not write report-read marker for %s: %s", day, exc)
            return False

    async def invalidate(self, day: date) -> bool:
        try:
            await self._store.remove_item(marker_key(day))
            return True
        except StoreError as exc:
            logger.warning("Could not clear report-read marker for %s: %s", day, exc)
            return False

    async def purge_before(self, day: date) -> int:
        """Drop markers for days earlier than ``day``; they can never match again."""
        try:
            keys = await self._store.keys(REPORT_READ_PREFIX)
            stale = [key for key in keys if key[len(REPORT_READ_PREFIX):] < day.isoformat()]
            await self._store.multi_remove(stale)
        except StoreError as exc:
            logger.warning("Could not purge old report-read markers: %s", exc)
            return 0
        return len(stale)
