import asyncio
import json
from datetime import datetime, timezone
from typing import AsyncIterator

from switchyard_service.core.types import OutputEvent


class NdjsonEmitter:
    """Emitter producing NDJSON bytes for the output event envelope"""

    def __init__(self, request_id: str):
        self.request_id = request_id
        self._seq = 0

    def emit(self, event: OutputEvent) -> bytes:
        out = {
            "type": str(event.type),
            "request_id": self.request_id,
            "seq": self._seq,
            "data": event.data(),
            "ts": datetime.now(timezone.utc).isoformat(),
        }
        self._seq += 1
        return (json.dumps(out, default=str) + "\n").encode("utf-8")


_CLOSED = object()


class EventChannel:
    """
    Single-producer/single-consumer event channel.

    send() never blocks and never raises; once the channel is closed (by the
    producer when finished, or by the transport when the client leaves) it
    returns False and drops the event.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: OutputEvent) -> bool:
        if self._closed:
            return False
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[OutputEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
