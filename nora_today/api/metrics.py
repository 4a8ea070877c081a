from __future__ import annotations

from fastapi import APIRouter

from nora_today.core.cache_metrics import get_cache_metrics
from nora_today.core.resilience import get_breakers_status

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/cache")
async def cache_metrics():
    out = get_cache_metrics()
    alerts = []
    # Frequent validation misses mean cached lesson structure keeps drifting from the server.
    if out["cache_get_total"] >= 10 and out["cache_validation_misses"] > out["cache_get_total"] // 4:
        alerts.append("cache_structure_drift")
    if out["cache_get_total"] >= 10 and (out.get("cache_hit_ratio") or 1.0) < 0.5:
        alerts.append("low_cache_hit_ratio")
    out["alerts"] = alerts
    return out


@router.get("/resilience")
async def resilience_metrics():
    return {"breakers": get_breakers_status()}
