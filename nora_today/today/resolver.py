"""
Today-state resolution.

Reconciles the lesson list and today's recordings with the locally stored
report-read marker to decide which single next action the home screen offers.
``resolve_card_state`` is pure; ``TodayStateResolver`` adds the store reads,
the experienced-user latch and the marker writes around it.
"""
from __future__ import annotations

from datetime import date, datetime

from nora_today.core.clock import ReferenceClock, ensure_aware
from nora_today.core.event_bus import EventBus, event_bus
from nora_today.core.logging import DOMAIN_TODAY, get_domain_logger
from nora_today.memory.experience import ExperiencedUserLatch
from nora_today.memory.read_markers import ReportReadMarkers
from nora_today.schemas.remote import LessonSummary, ProgressStatus, Recording
from nora_today.schemas.today import CardState, TodayResolution, TodayState

logger = get_domain_logger(__name__, DOMAIN_TODAY)


def resolve_card_state(lesson_completed_today: bool, has_recorded_today: bool, is_report_read: bool) -> CardState:
    # Precedence matters: the first and third rows both have a read report and differ only on the lesson.
    if not lesson_completed_today and has_recorded_today and is_report_read:
        return CardState.LESSON
    if has_recorded_today and not is_report_read:
        return CardState.READ_REPORT
    if lesson_completed_today and has_recorded_today and is_report_read:
        return CardState.RECORD_AGAIN
    if lesson_completed_today and not has_recorded_today:
        return CardState.RECORD
    return CardState.LESSON


def card_state_for(state: TodayState) -> CardState:
    return resolve_card_state(state.lesson_completed_today, state.has_recorded_today, state.is_report_read)


def latest_recording(recordings: list[Recording]) -> Recording | None:
    if not recordings:
        return None
    return max(recordings, key=lambda recording: ensure_aware(recording.created_at))


class TodayStateResolver:
    def __init__(
        self,
        clock: ReferenceClock,
        markers: ReportReadMarkers,
        latch: ExperiencedUserLatch,
        bus: EventBus = event_bus,
    ):
        self.clock = clock
        self.markers = markers
        self.latch = latch
        self.bus = bus

    def completed_lesson_on(self, lessons: list[LessonSummary], day: date) -> LessonSummary | None:
        for lesson in lessons:
            progress = lesson.progress
            if progress is None or progress.status != ProgressStatus.COMPLETED:
                continue
            if self.clock.is_on_day(progress.completed_at, day):
                return lesson
        return None

    async def resolve(
        self,
        lessons: list[LessonSummary],
        today_recordings: list[Recording],
        now: datetime | None = None,
    ) -> TodayResolution:
        day = self.clock.today(now)

        completed = self.completed_lesson_on(lessons, day)
        if completed is not None:
            await self.latch.promote_to_experienced()

        on_day = [recording for recording in today_recordings if self.clock.is_on_day(recording.created_at, day)]
        latest = latest_recording(on_day)
        if latest is not None:
            await self.latch.promote_to_experienced()

        is_report_read = False
        if latest is not None:
            marker = await self.markers.get(day)
            is_report_read = marker == latest.id
            if marker is not None and not is_report_read:
                logger.debug("Read marker %s for %s does not match latest recording %s", marker, day, latest.id)

        state = TodayState(
            lesson_completed_today=completed is not None,
            has_recorded_today=latest is not None,
            is_report_read=is_report_read,
            latest_recording_id=latest.id if latest else None,
            today_lesson_id=completed.id if completed else None,
        )
        return TodayResolution(day=day, state=state, card_state=card_state_for(state))

    async def mark_report_read(self, recording_id: str, now: datetime | None = None) -> bool:
        day = self.clock.today(now)
        written = await self.markers.mark(day, recording_id)
        await self.bus.publish(
            "report_read",
            "today_resolver",
            {"day": day.isoformat(), "recording_id": recording_id, "persisted": written},
        )
        return written

    async def start_record_again(self, now: datetime | None = None) -> bool:
        """Drop today's marker so the report of the next recording starts out unread."""
        day = self.clock.today(now)
        cleared = await self.markers.invalidate(day)
        await self.bus.publish("record_again", "today_resolver", {"day": day.isoformat(), "persisted": cleared})
        return cleared
