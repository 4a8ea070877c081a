from fastapi import APIRouter, Depends

from nora_today.api.deps import get_container
from nora_today.runtime.container import Container

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(container: Container = Depends(get_container)):
    return {
        "status": "ok",
        "service": "nora-today",
        "reference_timezone": container.clock.tz_name,
        "store_backend": container.config.store_backend,
        "dashboard_phase": container.dashboard.phase.value,
        "experienced_user": container.latch.is_experienced,
    }
