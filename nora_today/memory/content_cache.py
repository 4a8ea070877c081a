"""
Lesson content cache: key-value-store-backed snapshots of lesson detail payloads.

One entry per lesson, stamped with the content version that was current when it
was written. Entries are validated on every read against the lesson's segment
structure, dropped wholesale when the server's content version changes, and
purged for completed lessons on app start. Storage failures never escape: a
broken read is a miss, a broken write is a no-op.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone

from pydantic import ValidationError

from nora_today.core import cache_metrics
from nora_today.core.errors import StoreError
from nora_today.core.logging import DOMAIN_CACHE, get_domain_logger
from nora_today.memory.store import KeyValueStore
from nora_today.schemas.remote import LessonDetail, LessonSummary, ProgressStatus
from nora_today.schemas.today import CacheEntry

logger = get_domain_logger(__name__, DOMAIN_CACHE)

CACHE_PREFIX = "@nora_lesson_cache:"
LESSONS_LIST_CACHE_KEY = "@nora_lessons_list_cache"
CONTENT_VERSION_KEY = "@nora_content_version"


def _entry_key(lesson_id: str) -> str:
    return f"{CACHE_PREFIX}{lesson_id}"


def segment_index_in_range(current_segment: int, total_segments: int) -> bool:
    """Saved progress is 1-based; its 0-based index must sit in ``[0, total_segments]``."""
    index = current_segment - 1
    return 0 <= index <= total_segments


class ContentCache:
    def __init__(self, store: KeyValueStore):
        self._store = store

    # ── Lesson detail entries ────────────────────────────────────────────────

    async def _read_entry(self, lesson_id: str) -> CacheEntry | None:
        try:
            raw = await self._store.get_item(_entry_key(lesson_id))
        except StoreError as exc:
            logger.warning("Lesson cache read failed for %s: %s", lesson_id, exc)
            return None
        if not raw:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unparseable cache entry for %s: %s", lesson_id, exc)
            await self.remove(lesson_id)
            return None

    async def get(self, lesson_id: str, total_segments: int | None = None) -> LessonDetail | None:
        """Return the cached detail, or None on miss or when the entry no longer fits the lesson.

        ``total_segments`` is the lesson's current structure when the caller knows it;
        otherwise the cached payload's own structure is used.
        """
        entry = await self._read_entry(lesson_id)
        if entry is None:
            cache_metrics.record_cache_get(False)
            return None
        try:
            detail = LessonDetail.model_validate(entry.payload)
        except ValidationError as exc:
            logger.warning("Discarding malformed cached lesson %s: %s", lesson_id, exc)
            await self.remove(lesson_id)
            cache_metrics.record_validation_miss()
            return None

        total = detail.total_segments if total_segments is None else total_segments
        current = detail.user_progress.current_segment if detail.user_progress else 1
        if not segment_index_in_range(current, total):
            logger.info(
                "Cache validation failed for %s: segment %d outside %d segments, refetching",
                lesson_id,
                current,
                total,
            )
            await self.remove(lesson_id)
            cache_metrics.record_validation_miss()
            return None

        cache_metrics.record_cache_get(True)
        return detail

    async def set(self, lesson_id: str, detail: LessonDetail) -> None:
        entry = CacheEntry(
            lesson_id=lesson_id,
            payload=detail.model_dump(mode="json", by_alias=True),
            content_version=await self.get_content_version(),
            cached_at=datetime.now(timezone.utc),
        )
        try:
            await self._store.set_item(_entry_key(lesson_id), entry.model_dump_json())
            cache_metrics.record_cache_set()
        except StoreError as exc:
            logger.warning("Lesson cache write failed for %s: %s", lesson_id, exc)

    async def set_multiple(self, details: list[tuple[str, LessonDetail]]) -> None:
        for lesson_id, detail in details:
            await self.set(lesson_id, detail)

    async def remove(self, lesson_id: str) -> None:
        try:
            await self._store.remove_item(_entry_key(lesson_id))
            cache_metrics.record_invalidation()
        except StoreError as exc:
            logger.warning("Lesson cache remove failed for %s: %s", lesson_id, exc)

    async def cached_lesson_ids(self) -> list[str]:
        try:
            keys = await self._store.keys(CACHE_PREFIX)
        except StoreError as exc:
            logger.warning("Lesson cache key scan failed: %s", exc)
            return []
        return [key[len(CACHE_PREFIX):] for key in keys]

    async def clear(self) -> None:
        try:
            keys = await self._store.keys(CACHE_PREFIX)
            if keys:
                await self._store.multi_remove(keys)
                cache_metrics.record_invalidation()
                logger.info("Cleared %d cached lessons", len(keys))
        except StoreError as exc:
            logger.warning("Lesson cache clear failed: %s", exc)

    async def mark_completed(self, lesson_id: str, completed_at: datetime) -> None:
        """Flip the cached copy to COMPLETED so the next app start purges it."""
        entry = await self._read_entry(lesson_id)
        if entry is None:
            return
        try:
            detail = LessonDetail.model_validate(entry.payload)
        except ValidationError:
            await self.remove(lesson_id)
            return
        if detail.user_progress is not None:
            detail.user_progress.status = ProgressStatus.COMPLETED
            detail.user_progress.completed_at = completed_at
            await self.set(lesson_id, detail)

    async def cleanup_completed_lessons(self) -> list[str]:
        removed: list[str] = []
        for lesson_id in await self.cached_lesson_ids():
            entry = await self._read_entry(lesson_id)
            if entry is None:
                continue
            progress = (entry.payload.get("userProgress") or {}) if isinstance(entry.payload, dict) else {}
            if progress.get("status") == ProgressStatus.COMPLETED.value:
                removed.append(lesson_id)
        if removed:
            try:
                await self._store.multi_remove([_entry_key(lesson_id) for lesson_id in removed])
                cache_metrics.record_invalidation()
                logger.info("Cleaned up completed lessons from cache: %s", removed)
            except StoreError as exc:
                logger.warning("Completed-lesson cleanup failed: %s", exc)
                return []
        return removed

    # ── Lesson list ──────────────────────────────────────────────────────────

    async def set_lessons_list(self, lessons: list[LessonSummary]) -> None:
        payload = [lesson.model_dump(mode="json", by_alias=True) for lesson in lessons]
        try:
            await self._store.set_item(LESSONS_LIST_CACHE_KEY, json.dumps(payload))
        except StoreError as exc:
            logger.warning("Lesson list cache write failed: %s", exc)

    async def get_lessons_list(self) -> list[LessonSummary] | None:
        try:
            raw = await self._store.get_item(LESSONS_LIST_CACHE_KEY)
        except StoreError as exc:
            logger.warning("Lesson list cache read failed: %s", exc)
            return None
        if not raw:
            return None
        try:
            return [LessonSummary.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as exc:
            logger.warning("Discarding unparseable lesson list cache: %s", exc)
            await self.remove_lessons_list()
            return None

    async def remove_lessons_list(self) -> None:
        try:
            await self._store.remove_item(LESSONS_LIST_CACHE_KEY)
        except StoreError as exc:
            logger.warning("Lesson list cache remove failed: %s", exc)

    # ── Content version ──────────────────────────────────────────────────────

    async def get_content_version(self) -> str | None:
        try:
            return await self._store.get_item(CONTENT_VERSION_KEY)
        except StoreError as exc:
            logger.warning("Content version read failed: %s", exc)
            return None

    async def check_and_update_version(self, server_version: str | None) -> bool:
        """Clear everything when the server's content version differs from the stored one."""
        if not server_version:
            return False
        stored = await self.get_content_version()
        if stored == server_version:
            return False
        logger.info("Content version changed (%s -> %s), clearing lesson cache", stored, server_version)
        await self.clear()
        await self.remove_lessons_list()
        try:
            await self._store.set_item(CONTENT_VERSION_KEY, server_version)
        except StoreError as exc:
            logger.warning("Content version write failed: %s", exc)
        return True

    async def invalidate_for_missing_lesson(self, lesson_id: str) -> None:
        """A lesson vanished server-side: nothing cached can be trusted to address it."""
        logger.info("Lesson %s not found upstream, clearing lesson cache and lesson list", lesson_id)
        await self.clear()
        await self.remove_lessons_list()
