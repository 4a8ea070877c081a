from __future__ import annotations

from nora_today.core.errors import LessonNotFoundError
from nora_today.core.logging import DOMAIN_REMOTE, get_domain_logger
from nora_today.schemas.remote import (
    LessonDetail,
    LessonListResponse,
    LessonProgress,
    ModuleListResponse,
    ProgressStatus,
    UpdateProgressRequest,
)
from nora_today.services.base import RemoteService, error_body

logger = get_domain_logger(__name__, DOMAIN_REMOTE)


class LessonService(RemoteService):
    service_name = "lessons"

    async def get_lessons(self, module: str | None = None) -> LessonListResponse:
        params = {"module": module} if module else None
        return await self._get_model("/api/lessons", LessonListResponse, "Failed to fetch lessons", params=params)

    async def get_lesson_detail(self, lesson_id: str) -> LessonDetail:
        response = await self._send("GET", f"/api/lessons/{lesson_id}", parse_body=True)
        if response.status_code == 404:
            raise LessonNotFoundError(lesson_id, str(error_body(response).get("error") or "Lesson not found"))
        self._raise_for_error(response, "Failed to fetch lesson")
        return self._parse(response, LessonDetail, "Failed to fetch lesson")

    async def get_modules(self) -> ModuleListResponse:
        return await self._get_model("/api/modules", ModuleListResponse, "Failed to fetch modules")

    async def update_progress(
        self,
        lesson_id: str,
        *,
        current_segment: int,
        time_spent_seconds: int = 0,
        status: ProgressStatus | None = None,
    ) -> LessonProgress | None:
        request = UpdateProgressRequest(
            current_segment=current_segment,
            time_spent_seconds=time_spent_seconds,
            status=status,
        )
        response = await self._send(
            "PUT",
            f"/api/lessons/{lesson_id}/progress",
            json=request.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        if response.status_code == 404:
            raise LessonNotFoundError(lesson_id)
        self._raise_for_error(response, "Failed to update progress")
        body = error_body(response)
        progress = body.get("progress")
        if not isinstance(progress, dict):
            return None
        try:
            return LessonProgress.model_validate(progress)
        except ValueError as exc:
            # The write itself went through.
            logger.warning("Unreadable progress echo for lesson %s: %s", lesson_id, exc)
            return None
