"""Step event streaming.

``WorkflowEngine.stream`` returns a WorkflowRun: a single-consumer async
iterator of StepEvents backed by a bounded queue, plus ``result()`` for
the final WorkflowResult.

Backpressure: while a consumer is iterating, a full buffer makes the
workflow wait. Before a consumer attaches, or after it stops iterating,
the oldest buffered events are dropped instead, so an unread stream never
stalls the workflow.
"""

import asyncio
import logging
from typing import Any, AsyncIterator

from ..types import StepEvent, WorkflowResult

logger = logging.getLogger(__name__)

_DONE = object()


class WorkflowRun:
    """Handle on a running, streamed workflow.

    Example:
        run = engine.stream(config, history)
        async for event in run:
            print(event.agent_id, event.step_index, event.partial_output)
        result = await run.result()
    """

    def __init__(self, workflow_id: str, buffer_size: int = 100):
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self.workflow_id = workflow_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=buffer_size)
        self._cancel_event = asyncio.Event()
        self._task: asyncio.Task[WorkflowResult] | None = None
        self._attached = False
        self._closed = False
        self._finished = False
        self._dropped = 0

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel_event

    @property
    def dropped_events(self) -> int:
        return self._dropped

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def attach(self, task: "asyncio.Task[WorkflowResult]") -> None:
        self._task = task
        task.add_done_callback(self._on_done)

    async def publish(self, event: StepEvent) -> None:
        await self._put(event)

    def cancel(self) -> None:
        """Ask the workflow to stop. Running loops end as ``aborted``."""
        self._cancel_event.set()

    async def result(self) -> WorkflowResult:
        """Wait for and return the final result.

        Raises whatever the workflow raised (configuration errors).
        """
        if self._task is None:
            raise RuntimeError("WorkflowRun has no task attached")
        return await asyncio.shield(self._task)

    def __aiter__(self) -> AsyncIterator[StepEvent]:
        if self._attached:
            raise RuntimeError("A WorkflowRun event stream supports a single consumer")
        self._attached = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StepEvent]:
        try:
            while True:
                if self._finished and self._queue.empty():
                    return
                item = await self._queue.get()
                if item is _DONE:
                    return
                yield item
        finally:
            self._closed = True
            while not self._queue.empty():
                self._queue.get_nowait()

    async def _put(self, item: Any) -> None:
        if self._attached and not self._closed:
            await self._queue.put(item)
            return
        if self._closed and item is not _DONE:
            return
        while self._queue.full():
            dropped = self._queue.get_nowait()
            if dropped is not _DONE:
                self._dropped += 1
        self._queue.put_nowait(item)

    def _on_done(self, task: "asyncio.Task[WorkflowResult]") -> None:
        self._finished = True
        if self._closed:
            return
        if self._queue.full():
            if not self._attached:
                self._queue.get_nowait()
                self._dropped += 1
            else:
                # The consumer drains the full buffer, then sees _finished.
                return
        self._queue.put_nowait(_DONE)
        if self._dropped:
            logger.debug(f"Workflow '{self.workflow_id}' dropped {self._dropped} unread events")
