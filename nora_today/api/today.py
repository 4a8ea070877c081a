from __future__ import annotations

from fastapi import APIRouter, Depends

from nora_today.api.deps import get_container
from nora_today.runtime.container import Container
from nora_today.schemas.today import DashboardViewModel, ScreenPhase

router = APIRouter(tags=["today"])


def _screen(container: Container, view_model: DashboardViewModel | None) -> dict:
    return {
        "phase": container.dashboard.phase.value,
        "error": container.dashboard.last_error,
        "view_model": view_model.model_dump(mode="json", exclude={"lessons"}) if view_model else None,
    }


@router.get("/today")
async def get_today(container: Container = Depends(get_container)):
    dashboard = container.dashboard
    if dashboard.view_model is None and dashboard.phase in (ScreenPhase.IDLE, ScreenPhase.FAILED):
        await dashboard.load()
    else:
        await dashboard.check_day_rollover()
    return _screen(container, dashboard.view_model)


@router.post("/today/refresh")
async def refresh_today(container: Container = Depends(get_container)):
    view_model = await container.dashboard.refresh()
    return _screen(container, view_model)


@router.post("/today/focus")
async def focus_today(container: Container = Depends(get_container)):
    view_model = await container.dashboard.on_focus()
    return _screen(container, view_model)


@router.post("/reports/{recording_id}/read")
async def mark_report_read(recording_id: str, container: Container = Depends(get_container)):
    view_model = await container.dashboard.mark_report_read(recording_id)
    return _screen(container, view_model)


@router.post("/recordings/record-again")
async def record_again(container: Container = Depends(get_container)):
    view_model = await container.dashboard.start_record_again()
    return _screen(container, view_model)


@router.get("/reports/{recording_id}/poll")
async def poll_report(recording_id: str, container: Container = Depends(get_container)):
    outcome = await container.poller.poll(recording_id)
    return outcome.model_dump(mode="json")
