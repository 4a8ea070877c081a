from __future__ import annotations

from dataclasses import dataclass, field

from nora_today.core.clock import ReferenceClock
from nora_today.core.event_bus import EventBus, event_bus
from nora_today.core.logging import DOMAIN_DASHBOARD, get_domain_logger
from nora_today.core.settings import Settings, settings
from nora_today.memory.content_cache import ContentCache
from nora_today.memory.experience import ExperiencedUserLatch
from nora_today.memory.read_markers import ReportReadMarkers
from nora_today.memory.store import KeyValueStore, build_store
from nora_today.services.auth import AuthService
from nora_today.services.base import build_http_client
from nora_today.services.lessons import LessonService
from nora_today.services.recordings import RecordingService
from nora_today.today.dashboard import DashboardAggregator, DashboardController
from nora_today.today.lesson_flow import LessonDetailLoader, LessonProgressTracker
from nora_today.today.report_poller import AnalysisPoller
from nora_today.today.resolver import TodayStateResolver
from nora_today.today.streak import StreakCalculator

logger = get_domain_logger(__name__, DOMAIN_DASHBOARD)


@dataclass
class Container:
    """Every long-lived component, built once and shared (the latch in particular is process-wide)."""

    config: Settings
    store: KeyValueStore
    clock: ReferenceClock
    bus: EventBus
    latch: ExperiencedUserLatch
    markers: ReportReadMarkers
    cache: ContentCache
    lesson_service: object
    recording_service: object
    auth_service: object | None
    resolver: TodayStateResolver
    streak: StreakCalculator
    aggregator: DashboardAggregator
    dashboard: DashboardController
    loader: LessonDetailLoader
    poller: AnalysisPoller
    http_client: object | None = None
    trackers: dict[str, LessonProgressTracker] = field(default_factory=dict)

    def progress_tracker(self, lesson_id: str) -> LessonProgressTracker:
        """One tracker per lesson, so a removed lesson stays removed across requests."""
        tracker = self.trackers.get(lesson_id)
        if tracker is None:
            tracker = LessonProgressTracker(lesson_id, self.lesson_service, self.cache, self.bus)
            self.trackers[lesson_id] = tracker
        return tracker

    async def startup(self) -> None:
        if self.auth_service is not None:
            await self.auth_service.init()
        await self.dashboard.start()
        await self.dashboard.start_day_watch()
        logger.info("Today core started (reference timezone %s)", self.clock.tz_name)

    async def shutdown(self) -> None:
        await self.dashboard.stop()
        if self.http_client is not None:
            await self.http_client.aclose()
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()


def assemble(
    *,
    config: Settings,
    store: KeyValueStore,
    lesson_service,
    recording_service,
    auth_service=None,
    clock: ReferenceClock | None = None,
    bus: EventBus = event_bus,
    http_client=None,
) -> Container:
    clock = clock or ReferenceClock(config.reference_timezone)
    latch = ExperiencedUserLatch(store)
    markers = ReportReadMarkers(store)
    cache = ContentCache(store)
    resolver = TodayStateResolver(clock, markers, latch, bus)
    streak = StreakCalculator(clock)
    aggregator = DashboardAggregator(lesson_service, recording_service, cache, resolver, streak, latch, clock)
    loader = LessonDetailLoader(lesson_service, cache, bus)
    dashboard = DashboardController(
        aggregator,
        loader=loader,
        bus=bus,
        prefetch_count=config.lesson_prefetch_count,
        day_check_seconds=config.day_rollover_check_seconds,
    )
    poller = AnalysisPoller(
        recording_service,
        interval_seconds=config.analysis_poll_interval_seconds,
        max_attempts=config.analysis_poll_max_attempts,
    )
    return Container(
        config=config,
        store=store,
        clock=clock,
        bus=bus,
        latch=latch,
        markers=markers,
        cache=cache,
        lesson_service=lesson_service,
        recording_service=recording_service,
        auth_service=auth_service,
        resolver=resolver,
        streak=streak,
        aggregator=aggregator,
        dashboard=dashboard,
        loader=loader,
        poller=poller,
        http_client=http_client,
    )


def build_container(config: Settings = settings) -> Container:
    store = build_store(config)
    client = build_http_client(config)
    retry = {"max_retries": config.remote_max_retries, "base_delay_seconds": config.remote_retry_base_delay_seconds}
    auth = AuthService(client, store, **retry)
    return assemble(
        config=config,
        store=store,
        lesson_service=LessonService(client, auth, **retry),
        recording_service=RecordingService(client, auth, **retry),
        auth_service=auth,
        http_client=client,
    )
