"""Typed progress channel between the execution service and the orchestrator.

This module provides:
- ProgressChannel: asyncio queue of ProgressEvent with close semantics

Publishers push events with publish(); the orchestrator is the only consumer
(UploadOrchestrator.run). Events for one upload id arrive in the order they
were published; nothing is guaranteed across ids.

Usage:
    channel = ProgressChannel()
    task = asyncio.create_task(orchestrator.run(channel))
    channel.publish(ProgressEvent("id", 40, ExecutionStatus.UPLOADING))
    ...
    channel.close()
    await task
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from permagate.queue.types import ProgressEvent

logger = logging.getLogger(__name__)


class ChannelClosedError(RuntimeError):
    """Publishing to a closed channel."""


class ProgressChannel:
    """Unbounded FIFO of progress events with close semantics."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._closed = False
        self._pending = 0

    def publish(self, event: ProgressEvent) -> None:
        """Push an event without blocking.

        Raises:
            ChannelClosedError: If the channel is closed
        """
        if self._closed:
            raise ChannelClosedError("Progress channel is closed")
        self._queue.put_nowait(event)
        self._pending += 1
        logger.debug(
            "Published progress %s %s%% for %s",
            event.status.value,
            event.progress,
            event.upload_id,
        )

    async def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Wait for the next event.

        Args:
            timeout: Maximum seconds to wait (None = wait forever)

        Returns:
            The next event, or None on timeout or once closed and drained
        """
        if self._closed and self._pending == 0:
            return None
        try:
            event = await asyncio.wait_for(self._queue.get(), timeout)
        except TimeoutError:
            return None
        if event is not None:
            self._pending -= 1
        return event

    def close(self) -> None:
        """Close the channel; consumers drain pending events, then stop."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        logger.debug("Progress channel closed")

    @property
    def is_closed(self) -> bool:
        """Check if channel is closed."""
        return self._closed

    def __len__(self) -> int:
        """Number of undelivered events."""
        return self._pending

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        """Yield events until the channel is closed and drained."""
        while True:
            event = await self.get()
            if event is None:
                return
            yield event
