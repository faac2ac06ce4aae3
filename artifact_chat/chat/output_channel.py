"""
Output Channel

Bounded queue between the producers of a turn (orchestrator, artifact agents)
and the consumer that forwards events to the UI. ``send`` waits when the
queue is full, so a slow consumer slows generation down instead of letting
events pile up in memory.

Ending a stream never waits: ``offer`` and ``close`` drop what does not fit,
so a run can always finish even when its consumer has stalled or gone away.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from .logging_utils import should_log_feature
from .models import OutputEvent, OutputEventType

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChannelClosed(RuntimeError):
    """Raised when sending on a closed channel."""


class OutputChannel:
    """Append-only, bounded event sink with a single consumer."""

    def __init__(self, capacity: int = 256) -> None:
        if capacity < 1:
            raise ValueError("Output channel capacity must be at least 1")
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._sent = 0
        self._dropped = 0

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def sent_count(self) -> int:
        return self._sent

    @property
    def dropped_count(self) -> int:
        return self._dropped

    async def send(self, event: OutputEvent) -> None:
        if self._closed:
            raise ChannelClosed("Output channel is closed")
        await self._queue.put(event)
        self._sent += 1
        if event.type == "delta" and should_log_feature("chat", "deltas"):
            logger.debug("→ Channel: %s delta (%s)", event.artifact_kind, event.payload)

    async def emit(
        self,
        event_type: OutputEventType,
        payload: Any = None,
        artifact_kind: str | None = None,
    ) -> None:
        await self.send(OutputEvent(type=event_type, artifact_kind=artifact_kind, payload=payload))

    def offer(
        self,
        event_type: OutputEventType,
        payload: Any = None,
        artifact_kind: str | None = None,
    ) -> bool:
        """Queue an event without waiting. Returns False if it was dropped."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(OutputEvent(type=event_type, artifact_kind=artifact_kind, payload=payload))
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning("Output channel full, dropped %s event", event_type)
            return False
        self._sent += 1
        return True

    async def close(self) -> None:
        """Mark the end of the stream. Idempotent and never waits."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # The consumer stops once it has drained the queue
            pass

    async def __aiter__(self) -> AsyncIterator[OutputEvent]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def drain(self) -> list[OutputEvent]:
        """Consume every event until the channel is closed."""
        return [event async for event in self]
