from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncIterator

from nora_today.core.errors import ApiError, ContentUpdatedError, LessonNotFoundError, RemoteUnavailableError
from nora_today.core.event_bus import EventBus, event_bus
from nora_today.core.logging import DOMAIN_CACHE, get_domain_logger
from nora_today.memory.content_cache import ContentCache
from nora_today.schemas.remote import LessonDetail, LessonSummary, ProgressStatus
from nora_today.schemas.today import LessonLoad

logger = get_domain_logger(__name__, DOMAIN_CACHE)


def resume_index(detail: LessonDetail, total_segments: int | None = None) -> int:
    """0-based segment to open: the start for completed lessons or out-of-range progress."""
    total = detail.total_segments if total_segments is None else total_segments
    progress = detail.user_progress
    if progress is None or progress.status == ProgressStatus.COMPLETED:
        return 0
    index = progress.current_segment - 1
    if index < 0 or index >= total:
        return 0
    return index


def _phase(lesson_id: str, detail: LessonDetail, *, is_stale: bool) -> LessonLoad:
    total = detail.total_segments
    return LessonLoad(
        lesson_id=lesson_id,
        data=detail,
        is_stale=is_stale,
        total_segments=total,
        resume_index=resume_index(detail, total),
    )


class LessonDetailLoader:
    """Cache-first lesson detail loading with an explicit stale phase and fresh phase."""

    def __init__(self, lesson_service, cache: ContentCache, bus: EventBus = event_bus):
        self.lesson_service = lesson_service
        self.cache = cache
        self.bus = bus

    async def _content_gone(self, lesson_id: str) -> ContentUpdatedError:
        await self.cache.invalidate_for_missing_lesson(lesson_id)
        error = ContentUpdatedError(lesson_id)
        await self.bus.publish("content_updated", "lesson_loader", {"lesson_id": lesson_id})
        return error

    async def load(self, lesson_id: str, total_segments: int | None = None) -> AsyncIterator[LessonLoad]:
        """Yield the cached phase (if valid) and then the fresh phase.

        Raises ContentUpdatedError after purging the cache when the lesson no longer exists.
        A transient failure of the background refresh ends the stream after the stale phase;
        a transient failure with nothing cached propagates.
        """
        cached = await self.cache.get(lesson_id, total_segments)
        if cached is not None:
            stale = _phase(lesson_id, cached, is_stale=True)
            await self.bus.publish("lesson_loaded", "lesson_loader", {"lesson_id": lesson_id, "is_stale": True})
            yield stale

        try:
            fresh = await self.lesson_service.get_lesson_detail(lesson_id)
        except LessonNotFoundError:
            raise await self._content_gone(lesson_id)
        except (ApiError, RemoteUnavailableError) as exc:
            if cached is None:
                raise
            logger.warning("Background refresh failed for lesson %s: %s", lesson_id, exc)
            return

        await self.cache.set(lesson_id, fresh)
        await self.bus.publish("lesson_loaded", "lesson_loader", {"lesson_id": lesson_id, "is_stale": False})
        yield _phase(lesson_id, fresh, is_stale=False)

    async def load_latest(self, lesson_id: str, total_segments: int | None = None) -> LessonLoad:
        latest: LessonLoad | None = None
        async for phase in self.load(lesson_id, total_segments):
            latest = phase
        if latest is None:
            raise RemoteUnavailableError(f"lesson {lesson_id} unavailable")
        return latest

    async def prefetch(self, lessons: list[LessonSummary], count: int = 2) -> list[str]:
        """Cache the first ``count`` unlocked lessons so today's and the next lesson open instantly."""
        fetched: list[tuple[str, LessonDetail]] = []
        for lesson in [item for item in lessons if not item.is_locked][:count]:
            try:
                fetched.append((lesson.id, await self.lesson_service.get_lesson_detail(lesson.id)))
            except (ApiError, RemoteUnavailableError) as exc:
                logger.info("Prefetch failed for lesson %s: %s", lesson.id, exc)
        await self.cache.set_multiple(fetched)
        return [lesson_id for lesson_id, _ in fetched]


class LessonProgressTracker:
    """Progress writes for one lesson-viewing flow.

    A not-found response ends the flow: the cache and lesson list are cleared once,
    the caller gets ContentUpdatedError, and later writes are skipped.
    """

    def __init__(self, lesson_id: str, lesson_service, cache: ContentCache, bus: EventBus = event_bus):
        self.lesson_id = lesson_id
        self.lesson_service = lesson_service
        self.cache = cache
        self.bus = bus
        self.is_gone = False

    async def _write(self, *, current_segment: int, time_spent_seconds: int, status: ProgressStatus | None) -> bool:
        if self.is_gone:
            logger.info("Skipping progress write for removed lesson %s", self.lesson_id)
            return False
        try:
            await self.lesson_service.update_progress(
                self.lesson_id,
                current_segment=current_segment,
                time_spent_seconds=time_spent_seconds,
                status=status,
            )
            return True
        except LessonNotFoundError:
            self.is_gone = True
            await self.cache.invalidate_for_missing_lesson(self.lesson_id)
            await self.bus.publish("content_updated", "progress_tracker", {"lesson_id": self.lesson_id})
            raise ContentUpdatedError(self.lesson_id)
        except (ApiError, RemoteUnavailableError) as exc:
            # Progress is not worth blocking the reader for.
            logger.warning("Progress update failed for lesson %s: %s", self.lesson_id, exc)
            return False

    async def update_progress(self, segment_index: int, time_spent_seconds: int = 0) -> bool:
        return await self._write(
            current_segment=segment_index + 1,
            time_spent_seconds=time_spent_seconds,
            status=None,
        )

    async def complete(self, total_segments: int, time_spent_seconds: int = 0) -> bool:
        written = await self._write(
            current_segment=total_segments,
            time_spent_seconds=time_spent_seconds,
            status=ProgressStatus.COMPLETED,
        )
        if written:
            await self.cache.mark_completed(self.lesson_id, datetime.now(timezone.utc))
        return written
