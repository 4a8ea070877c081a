"""Payload shapes returned by the Lesson, Recording and Auth services (camelCase on the wire)."""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RemoteModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ProgressStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    LOCKED = "LOCKED"


class LessonProgress(RemoteModel):
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    completed_at: datetime | None = None
    current_segment: int = 1
    total_segments: int | None = None
    time_spent_seconds: int = 0


class LessonSummary(RemoteModel):
    id: str
    title: str = ""
    module: str | None = None
    day_number: int | None = None
    is_locked: bool = False
    progress: LessonProgress | None = None

    @property
    def is_completed(self) -> bool:
        return self.progress is not None and self.progress.status == ProgressStatus.COMPLETED


class LessonListResponse(RemoteModel):
    lessons: list[LessonSummary] = Field(default_factory=list)
    content_version: str | None = None


class LessonSegment(RemoteModel):
    id: str
    section_title: str | None = None
    body_text: str = ""
    content_type: str = "TEXT"


class LessonQuiz(RemoteModel):
    id: str
    question: str = ""
    correct_answer: str | None = None


class LessonBody(RemoteModel):
    id: str
    title: str = ""
    segments: list[LessonSegment] = Field(default_factory=list)
    quiz: LessonQuiz | None = None


class LessonDetail(RemoteModel):
    lesson: LessonBody
    user_progress: LessonProgress | None = None

    @property
    def total_segments(self) -> int:
        return len(self.lesson.segments) + (1 if self.lesson.quiz else 0)


class ModuleSummary(RemoteModel):
    key: str
    title: str = ""
    lesson_count: int = 0
    completed_lessons: int = 0
    is_locked: bool = False


class ModuleListResponse(RemoteModel):
    modules: list[ModuleSummary] = Field(default_factory=list)


class UpdateProgressRequest(RemoteModel):
    current_segment: int
    time_spent_seconds: int = 0
    status: ProgressStatus | None = None


class Recording(RemoteModel):
    id: str
    created_at: datetime
    analysis_status: str | None = None
    permanent_failure: bool = False


class RecordingListResponse(RemoteModel):
    recordings: list[Recording] = Field(default_factory=list)


class DashboardResponse(RemoteModel):
    today_recordings: list[Recording] = Field(default_factory=list)
    this_week_recordings: list[Recording] = Field(default_factory=list)
    latest_with_report: Recording | None = None


class RecordingAnalysis(RemoteModel):
    id: str
    status: str = "completed"
    nora_score: float | None = None
    encouragement: str | None = None
    tips: str | None = None
    tomorrow_goal: str | None = None


class CurrentUser(RemoteModel):
    id: str
    email: str | None = None
    name: str | None = None
    child_name: str | None = None
    profile_image_url: str | None = None
