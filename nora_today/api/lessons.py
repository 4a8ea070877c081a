from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from nora_today.api.deps import get_container
from nora_today.core.errors import ApiError, RemoteUnavailableError, user_message_for
from nora_today.runtime.container import Container

router = APIRouter(prefix="/lessons", tags=["lessons"])


class ProgressUpdateRequest(BaseModel):
    segment_index: int = Field(..., ge=0)
    time_spent_seconds: int = Field(0, ge=0)
    completed: bool = False
    total_segments: int | None = Field(None, ge=0)


@router.get("/{lesson_id}")
async def get_lesson(lesson_id: str, total_segments: int | None = None, container: Container = Depends(get_container)):
    try:
        load = await container.loader.load_latest(lesson_id, total_segments)
    except (ApiError, RemoteUnavailableError) as exc:
        raise HTTPException(status_code=503, detail=user_message_for(exc)) from exc
    return load.model_dump(mode="json", by_alias=True)


@router.get("/{lesson_id}/phases")
async def get_lesson_phases(lesson_id: str, total_segments: int | None = None, container: Container = Depends(get_container)):
    phases = []
    try:
        async for phase in container.loader.load(lesson_id, total_segments):
            phases.append(phase.model_dump(mode="json", by_alias=True))
    except (ApiError, RemoteUnavailableError) as exc:
        if not phases:
            raise HTTPException(status_code=503, detail=user_message_for(exc)) from exc
    return {"phases": phases}


@router.put("/{lesson_id}/progress")
async def update_progress(lesson_id: str, body: ProgressUpdateRequest, container: Container = Depends(get_container)):
    tracker = container.progress_tracker(lesson_id)
    if body.completed:
        total = body.total_segments if body.total_segments is not None else body.segment_index + 1
        saved = await tracker.complete(total, body.time_spent_seconds)
    else:
        saved = await tracker.update_progress(body.segment_index, body.time_spent_seconds)
    return {"lesson_id": lesson_id, "saved": saved}
