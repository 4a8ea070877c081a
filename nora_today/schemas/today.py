from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from nora_today.schemas.remote import LessonDetail, LessonSummary, RecordingAnalysis

MAX_NORA_SCORE = 30


class CardState(str, Enum):
    LESSON = "lesson"
    RECORD = "record"
    READ_REPORT = "read_report"
    RECORD_AGAIN = "record_again"


class TodayState(BaseModel):
    lesson_completed_today: bool = False
    has_recorded_today: bool = False
    is_report_read: bool = False
    latest_recording_id: str | None = None
    today_lesson_id: str | None = None


class TodayResolution(BaseModel):
    day: date
    state: TodayState
    card_state: CardState


class StreakRecord(BaseModel):
    current_streak: int = 0
    week_mask: list[bool] = Field(default_factory=lambda: [False] * 7)
    longest_streak: int = 0


class AnalysisSummary(BaseModel):
    recording_id: str | None = None
    score: int | None = None
    max_score: int = MAX_NORA_SCORE
    encouragement: str | None = None


class ScreenPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    REFRESHING = "refreshing"
    FAILED = "failed"


class DashboardViewModel(BaseModel):
    day: date
    today: TodayState
    card_state: CardState
    streak: StreakRecord
    analysis: AnalysisSummary = Field(default_factory=AnalysisSummary)
    is_experienced_user: bool = False
    next_lesson_id: str | None = None
    lessons: list[LessonSummary] = Field(default_factory=list)
    generation: int = 0
    loaded_at: datetime


class CacheEntry(BaseModel):
    lesson_id: str
    payload: dict[str, Any]
    content_version: str | None = None
    cached_at: datetime | None = None


class LessonLoad(BaseModel):
    """One phase of a lesson detail load: cached (stale) first, then fresh."""

    lesson_id: str
    data: LessonDetail
    is_stale: bool
    total_segments: int
    resume_index: int


class PollStatus(str, Enum):
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class PollOutcome(BaseModel):
    recording_id: str
    status: PollStatus
    attempts: int
    analysis: RecordingAnalysis | None = None
    message: str | None = None
