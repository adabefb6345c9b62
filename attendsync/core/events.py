"""
Typed pipeline events.

Pipelines never call into presentation code.  They publish ``PipelineEvent``
objects on an ``EventBus``; the UI layer subscribes and drains a queue (the
HTTP surface exposes the same stream as server-sent events).
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

EventKind = Literal["phase-started", "phase-completed", "progress", "error"]


class PipelineEvent(BaseModel):
    kind: EventKind
    pipeline: str
    phase: str
    message: str | None = None
    counts: dict[str, int] = Field(default_factory=dict)
    at: datetime = Field(default_factory=datetime.now)


class EventBus:
    def __init__(self, max_queue: int = 256) -> None:
        self._max_queue = max_queue
        self._subscribers: list[asyncio.Queue[PipelineEvent]] = []

    def subscribe(self) -> asyncio.Queue[PipelineEvent]:
        queue: asyncio.Queue[PipelineEvent] = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[PipelineEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: PipelineEvent) -> None:
        for queue in self._subscribers:
            if queue.full():
                # Slow consumer: drop its oldest event rather than block the pipeline
                queue.get_nowait()
            queue.put_nowait(event)


class PipelineReporter:
    """Per-run helper that honours the ``silent`` flag; errors are always published."""

    def __init__(
        self,
        bus: EventBus | None,
        pipeline: str,
        silent: bool = False,
        show_progress: bool = False,
    ) -> None:
        self.bus = bus
        self.pipeline = pipeline
        self.silent = silent
        self.show_progress = show_progress and not silent

    def _emit(self, kind: EventKind, phase: str, message: str | None, counts: dict[str, Any]) -> None:
        if self.bus is None:
            return
        self.bus.publish(
            PipelineEvent(
                kind=kind,
                pipeline=self.pipeline,
                phase=phase,
                message=message,
                counts={k: int(v) for k, v in counts.items()},
            )
        )

    def started(self, phase: str, message: str | None = None, **counts: int) -> None:
        if not self.silent:
            self._emit("phase-started", phase, message, counts)

    def completed(self, phase: str, message: str | None = None, **counts: int) -> None:
        if not self.silent:
            self._emit("phase-completed", phase, message, counts)

    def progress(self, phase: str, message: str | None = None, **counts: int) -> None:
        if self.show_progress:
            self._emit("progress", phase, message, counts)

    def error(self, phase: str, message: str) -> None:
        self._emit("error", phase, message, {})
