from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from nora_today.api.deps import get_container
from nora_today.runtime.container import Container

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/recent")
async def recent_events(
    event_type: str | None = None,
    after_seq: int = 0,
    container: Container = Depends(get_container),
):
    return {"events": container.bus.history(event_type, after_seq)}


@router.get("/stream")
async def stream_events(container: Container = Depends(get_container)):
    bus = container.bus
    queue = await bus.subscribe(replay_last=20)

    async def generator():
        try:
            while True:
                event = await queue.get()
                yield f"data: {json.dumps(event)}\n\n"
        except asyncio.CancelledError:
            return
        finally:
            await bus.unsubscribe(queue)

    return StreamingResponse(generator(), media_type="text/event-stream")
