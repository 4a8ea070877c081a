from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Test-mode runtime guards:
# - no remote API traffic, no file or redis store
# - no real sleeping between analysis polls
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("ANALYSIS_POLL_INTERVAL_SECONDS", "0")
os.environ.setdefault("REMOTE_RETRY_BASE_DELAY_SECONDS", "0")

from nora_today.core import cache_metrics  # noqa: E402
from nora_today.core.clock import ReferenceClock  # noqa: E402
from nora_today.core.errors import LessonNotFoundError, StoreError  # noqa: E402
from nora_today.core.event_bus import EventBus  # noqa: E402
from nora_today.core.resilience import reset_breakers  # noqa: E402
from nora_today.core.settings import Settings  # noqa: E402
from nora_today.memory.store import InMemoryKeyValueStore  # noqa: E402
from nora_today.schemas.remote import (  # noqa: E402
    DashboardResponse,
    LessonBody,
    LessonDetail,
    LessonListResponse,
    LessonProgress,
    LessonQuiz,
    LessonSegment,
    LessonSummary,
    ProgressStatus,
    Recording,
    RecordingAnalysis,
    RecordingListResponse,
)

SGT = ZoneInfo("Asia/Singapore")

# Wednesday 2025-03-12, 10:00 in the reference zone (02:00 UTC).
NOW = datetime(2025, 3, 12, 10, 0, tzinfo=SGT)


def sgt(year: int, month: int, day: int, hour: int = 9, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=SGT)


def make_summary(
    lesson_id: str,
    *,
    status: ProgressStatus = ProgressStatus.NOT_STARTED,
    completed_at: datetime | None = None,
    is_locked: bool = False,
    day_number: int | None = None,
) -> LessonSummary:
    return LessonSummary(
        id=lesson_id,
        title=f"Lesson {lesson_id}",
        day_number=day_number,
        is_locked=is_locked,
        progress=LessonProgress(status=status, completed_at=completed_at),
    )


def make_detail(
    lesson_id: str,
    *,
    segments: int = 5,
    quiz: bool = False,
    current_segment: int = 1,
    status: ProgressStatus = ProgressStatus.IN_PROGRESS,
) -> LessonDetail:
    return LessonDetail(
        lesson=LessonBody(
            id=lesson_id,
            title=f"Lesson {lesson_id}",
            segments=[LessonSegment(id=f"{lesson_id}-s{i}", body_text=f"part {i}") for i in range(segments)],
            quiz=LessonQuiz(id=f"{lesson_id}-q", question="?") if quiz else None,
        ),
        user_progress=LessonProgress(status=status, current_segment=current_segment),
    )


def make_recording(recording_id: str, created_at: datetime) -> Recording:
    return Recording(id=recording_id, created_at=created_at, analysis_status="completed")


class SpyStore(InMemoryKeyValueStore):
    """In-memory store that counts calls and can be switched into a failing mode."""

    def __init__(self, initial: dict[str, str] | None = None):
        super().__init__(initial)
        self.calls: dict[str, int] = {}
        self.fail = False

    def _track(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        if self.fail:
            raise StoreError(f"{name} unavailable")

    async def get_item(self, key: str) -> str | None:
        self._track("get_item")
        return await super().get_item(key)

    async def set_item(self, key: str, value: str) -> None:
        self._track("set_item")
        await super().set_item(key, value)

    async def remove_item(self, key: str) -> None:
        self._track("remove_item")
        await super().remove_item(key)

    async def keys(self, prefix: str = "") -> list[str]:
        self._track("keys")
        return await super().keys(prefix)

    async def multi_remove(self, keys: list[str]) -> None:
        self._track("multi_remove")
        for key in keys:
            self.data.pop(key, None)


class FakeLessonService:
    def __init__(self, lessons: list[LessonSummary] | None = None, content_version: str | None = "v1"):
        self.lessons = lessons or []
        self.content_version = content_version
        self.details: dict[str, LessonDetail] = {}
        self.missing: set[str] = set()
        self.lessons_error: Exception | None = None
        self.detail_error: Exception | None = None
        self.progress_error: Exception | None = None
        self.detail_calls: list[str] = []
        self.progress_calls: list[dict] = []

    async def get_lessons(self, module: str | None = None) -> LessonListResponse:
        if self.lessons_error is not None:
            raise self.lessons_error
        return LessonListResponse(lessons=self.lessons, content_version=self.content_version)

    async def get_lesson_detail(self, lesson_id: str) -> LessonDetail:
        self.detail_calls.append(lesson_id)
        if lesson_id in self.missing:
            raise LessonNotFoundError(lesson_id)
        if self.detail_error is not None:
            raise self.detail_error
        detail = self.details.get(lesson_id) or make_detail(lesson_id)
        return detail.model_copy(deep=True)

    async def update_progress(self, lesson_id: str, *, current_segment: int, time_spent_seconds: int = 0, status=None):
        self.progress_calls.append(
            {"lesson_id": lesson_id, "current_segment": current_segment, "status": status}
        )
        if lesson_id in self.missing:
            raise LessonNotFoundError(lesson_id)
        if self.progress_error is not None:
            raise self.progress_error
        return None


class FakeRecordingService:
    def __init__(self):
        self.dashboard = DashboardResponse()
        self.recordings: list[Recording] = []
        # recording id -> answers returned in order; the last one repeats.
        self.analyses: dict[str, list] = {}
        self.dashboard_error: Exception | None = None
        self.dashboard_gate: asyncio.Event | None = None
        self.analysis_calls: list[str] = []

    async def get_dashboard(self) -> DashboardResponse:
        if self.dashboard_gate is not None:
            await self.dashboard_gate.wait()
        if self.dashboard_error is not None:
            raise self.dashboard_error
        return self.dashboard.model_copy(deep=True)

    async def get_recordings(self) -> RecordingListResponse:
        return RecordingListResponse(recordings=list(self.recordings))

    async def get_analysis(self, recording_id: str) -> RecordingAnalysis:
        self.analysis_calls.append(recording_id)
        answers = self.analyses.get(recording_id)
        if not answers:
            return RecordingAnalysis(id=recording_id, nora_score=21.6, encouragement="Lovely reading!")
        answer = answers.pop(0) if len(answers) > 1 else answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture(autouse=True)
def _reset_module_state():
    cache_metrics.reset_cache_metrics()
    reset_breakers()
    yield
    cache_metrics.reset_cache_metrics()
    reset_breakers()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        store_backend="memory",
        analysis_poll_interval_seconds=0,
        analysis_poll_max_attempts=3,
        day_rollover_check_seconds=3600,
        lesson_prefetch_count=2,
        remote_retry_base_delay_seconds=0,
    )


@pytest.fixture
def clock() -> ReferenceClock:
    return ReferenceClock("Asia/Singapore", now_func=lambda: NOW)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def store() -> SpyStore:
    return SpyStore()


@pytest.fixture
def lesson_service() -> FakeLessonService:
    return FakeLessonService()


@pytest.fixture
def recording_service() -> FakeRecordingService:
    return FakeRecordingService()


@pytest.fixture
def container(test_settings, store, lesson_service, recording_service, clock, bus):
    from nora_today.runtime.container import assemble

    return assemble(
        config=test_settings,
        store=store,
        lesson_service=lesson_service,
        recording_service=recording_service,
        clock=clock,
        bus=bus,
    )


@pytest.fixture
def client(container) -> TestClient:
    from nora_today.main import create_app

    with TestClient(create_app(container)) as tc:
        yield tc
