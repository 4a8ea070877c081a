from __future__ import annotations

import asyncio
from datetime import datetime

from pydantic import ValidationError

from nora_today.core.clock import ReferenceClock
from nora_today.core.errors import ApiError, NoraError, RemoteUnavailableError, user_message_for
from nora_today.core.event_bus import EventBus, event_bus
from nora_today.core.logging import DOMAIN_DASHBOARD, get_domain_logger
from nora_today.core.settings import settings
from nora_today.memory.content_cache import ContentCache
from nora_today.memory.experience import ExperiencedUserLatch
from nora_today.schemas.remote import LessonSummary, Recording
from nora_today.schemas.today import AnalysisSummary, DashboardViewModel, ScreenPhase
from nora_today.today.resolver import TodayStateResolver, card_state_for
from nora_today.today.streak import StreakCalculator

logger = get_domain_logger(__name__, DOMAIN_DASHBOARD)


def next_lesson_id(lessons: list[LessonSummary]) -> str | None:
    for lesson in lessons:
        if not lesson.is_locked and not lesson.is_completed:
            return lesson.id
    for lesson in lessons:
        if not lesson.is_locked:
            return lesson.id
    return None


class DashboardAggregator:
    """One consolidated home-screen view-model from the lesson and recording services."""

    def __init__(
        self,
        lesson_service,
        recording_service,
        cache: ContentCache,
        resolver: TodayStateResolver,
        streak: StreakCalculator,
        latch: ExperiencedUserLatch,
        clock: ReferenceClock,
    ):
        self.lesson_service = lesson_service
        self.recording_service = recording_service
        self.cache = cache
        self.resolver = resolver
        self.streak = streak
        self.latch = latch
        self.clock = clock

    async def _analysis_summary(self, latest: Recording | None) -> AnalysisSummary:
        if latest is None:
            return AnalysisSummary()
        try:
            analysis = await self.recording_service.get_analysis(latest.id)
        except (ApiError, RemoteUnavailableError, ValidationError) as exc:
            logger.info("Analysis for %s unavailable, showing dashboard without it: %s", latest.id, exc)
            return AnalysisSummary()
        return AnalysisSummary(
            recording_id=latest.id,
            score=round(analysis.nora_score) if analysis.nora_score is not None else None,
            encouragement=analysis.encouragement,
        )

    async def aggregate(self, now: datetime | None = None, generation: int = 0) -> DashboardViewModel:
        """Fetch in parallel, then compute. Any failure of the three base fetches fails the whole call."""
        now = now or self.clock.now()
        lesson_list, dashboard, recording_list = await asyncio.gather(
            self.lesson_service.get_lessons(),
            self.recording_service.get_dashboard(),
            self.recording_service.get_recordings(),
        )
        lessons = lesson_list.lessons

        if await self.cache.check_and_update_version(lesson_list.content_version):
            logger.info("Lesson cache cleared due to content update")
        await self.cache.set_lessons_list(lessons)

        resolution = await self.resolver.resolve(lessons, dashboard.today_recordings, now)

        completion_times = [lesson.progress.completed_at for lesson in lessons if lesson.is_completed]
        recordings = {r.id: r for r in recording_list.recordings}
        for recording in dashboard.this_week_recordings + dashboard.today_recordings:
            recordings.setdefault(recording.id, recording)
        streak = self.streak.compute([r.created_at for r in recordings.values()], completion_times, now)

        async def _has_history() -> bool:
            return bool(completion_times) or bool(recordings)

        experienced = await self.latch.ensure(_has_history)
        analysis = await self._analysis_summary(dashboard.latest_with_report)

        return DashboardViewModel(
            day=resolution.day,
            today=resolution.state,
            card_state=resolution.card_state,
            streak=streak,
            analysis=analysis,
            is_experienced_user=experienced,
            next_lesson_id=next_lesson_id(lessons),
            lessons=lessons,
            generation=generation,
            loaded_at=now,
        )


class DashboardController:
    """Screen lifecycle around the aggregator: IDLE -> LOADING -> READY, with silent REFRESHING.

    Every load is tagged with a generation number; a response that lands after a newer
    load was issued is discarded. The view-model is only ever replaced whole.
    """

    def __init__(
        self,
        aggregator: DashboardAggregator,
        *,
        loader=None,
        bus: EventBus = event_bus,
        prefetch_count: int = settings.lesson_prefetch_count,
        day_check_seconds: int = settings.day_rollover_check_seconds,
    ):
        self.aggregator = aggregator
        self.loader = loader
        self.bus = bus
        self.prefetch_count = prefetch_count
        self.day_check_seconds = day_check_seconds
        self.phase = ScreenPhase.IDLE
        self.view_model: DashboardViewModel | None = None
        self.last_error: str | None = None
        self._issued_generation = 0
        self._watch_task: asyncio.Task | None = None
        self._prefetch_task: asyncio.Task | None = None
        self._running = False

    @property
    def clock(self) -> ReferenceClock:
        return self.aggregator.clock

    async def start(self) -> None:
        """App-start housekeeping: latch read, completed-lesson purge, old marker purge."""
        await self.aggregator.latch.init()
        await self.aggregator.cache.cleanup_completed_lessons()
        await self.aggregator.resolver.markers.purge_before(self.clock.today())

    async def load(self, now: datetime | None = None) -> DashboardViewModel | None:
        self.phase = ScreenPhase.REFRESHING if self.view_model is not None else ScreenPhase.LOADING
        return await self._run(now)

    async def refresh(self, now: datetime | None = None) -> DashboardViewModel | None:
        return await self.load(now)

    async def on_focus(self, now: datetime | None = None) -> DashboardViewModel | None:
        return await self.load(now)

    async def _run(self, now: datetime | None) -> DashboardViewModel | None:
        self._issued_generation += 1
        generation = self._issued_generation
        try:
            view_model = await self.aggregator.aggregate(now, generation)
        except (NoraError, ValidationError) as exc:
            if generation != self._issued_generation:
                return self.view_model
            logger.warning("Dashboard load %d failed, keeping previous state: %s", generation, exc)
            self.last_error = user_message_for(exc)
            self.phase = ScreenPhase.READY if self.view_model is not None else ScreenPhase.FAILED
            return self.view_model

        if generation != self._issued_generation:
            logger.info("Discarding dashboard load %d superseded by %d", generation, self._issued_generation)
            await self.bus.publish(
                "dashboard_refresh_discarded",
                "dashboard",
                {"generation": generation, "latest": self._issued_generation},
            )
            return self.view_model

        self.view_model = view_model
        self.phase = ScreenPhase.READY
        self.last_error = None
        await self.bus.publish(
            "dashboard_ready",
            "dashboard",
            {"generation": generation, "day": view_model.day.isoformat(), "card_state": view_model.card_state.value},
        )
        self._schedule_prefetch(view_model.lessons)
        return view_model

    def _schedule_prefetch(self, lessons: list[LessonSummary]) -> None:
        if self.loader is None or self.prefetch_count <= 0 or not lessons:
            return
        if self._prefetch_task is not None and not self._prefetch_task.done():
            return
        self._prefetch_task = asyncio.create_task(self.loader.prefetch(lessons, self.prefetch_count))

    async def wait_for_prefetch(self) -> list[str]:
        if self._prefetch_task is None:
            return []
        return await self._prefetch_task

    async def check_day_rollover(self, now: datetime | None = None) -> bool:
        """Refresh when the reference-timezone day has moved past the loaded view-model's day."""
        if self.view_model is None:
            return False
        today = self.clock.today(now)
        if today == self.view_model.day:
            return False
        logger.info("Day rolled over from %s to %s, refreshing dashboard", self.view_model.day, today)
        await self.bus.publish(
            "day_rollover",
            "dashboard",
            {"from": self.view_model.day.isoformat(), "to": today.isoformat()},
        )
        await self.refresh(now)
        return True

    async def mark_report_read(self, recording_id: str, now: datetime | None = None) -> DashboardViewModel | None:
        await self.aggregator.resolver.mark_report_read(recording_id, now)
        current = self.view_model
        if current is None or current.today.latest_recording_id != recording_id:
            return current
        today = current.today.model_copy(update={"is_report_read": True})
        self.view_model = current.model_copy(update={"today": today, "card_state": card_state_for(today)})
        return self.view_model

    async def start_record_again(self, now: datetime | None = None) -> DashboardViewModel | None:
        await self.aggregator.resolver.start_record_again(now)
        current = self.view_model
        if current is None:
            return None
        today = current.today.model_copy(update={"is_report_read": False})
        self.view_model = current.model_copy(update={"today": today, "card_state": card_state_for(today)})
        return self.view_model

    async def _watch(self) -> None:
        while self._running:
            await asyncio.sleep(max(1, self.day_check_seconds))
            await self.check_day_rollover()

    async def start_day_watch(self) -> None:
        if self._running:
            return
        self._running = True
        self._watch_task = asyncio.create_task(self._watch())

    async def stop(self) -> None:
        self._running = False
        for task in (self._watch_task, self._prefetch_task):
            if task and not task.done():
                task.cancel()
