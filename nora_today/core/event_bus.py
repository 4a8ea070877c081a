import asyncio
import itertools
from collections import deque
from datetime import datetime, timezone


class EventBus:
    """Fan-out of state-change events (dashboard loads, lesson refresh phases, marker writes).

    Every event gets a monotonically increasing ``seq`` so pollers can ask for
    what happened after the last event they saw.
    """

    def __init__(self, history_size: int = 200, queue_size: int = 100):
        self._subscribers: list[asyncio.Queue] = []
        self._history: deque[dict] = deque(maxlen=history_size)
        self._queue_size = queue_size
        self._seq = itertools.count(1)

    async def publish(self, event_type: str, source: str, data: dict) -> dict:
        event = {
            "seq": next(self._seq),
            "at": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "source": source,
            "data": data,
        }
        self._history.append(event)
        for queue in list(self._subscribers):
            if queue.full():
                # Slow subscriber: drop its oldest event rather than block publishers.
                queue.get_nowait()
            queue.put_nowait(event)
        return event

    async def subscribe(self, replay_last: int = 10) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(queue)
        for event in list(self._history)[-replay_last:] if replay_last > 0 else []:
            queue.put_nowait(event)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def history(self, event_type: str | None = None, after_seq: int = 0) -> list[dict]:
        return [
            event
            for event in self._history
            if event["seq"] > after_seq and (event_type is None or event["type"] == event_type)
        ]

    def clear(self) -> None:
        self._history.clear()


event_bus = EventBus()
