"""
Detached ("wait until") work scheduling.

The response path never awaits connection teardown or cache writes; those
coroutines are handed to an ExecutionContext which runs them as background
tasks. Failures are logged and counted, never propagated to the request
that scheduled them.
"""
import asyncio
import logging
from typing import Awaitable

from fastapi import Request

from registry_search.telemetry import DETACHED_TASK_FAILURES_TOTAL

logger = logging.getLogger(__name__)


class ExecutionContext:
    def __init__(self) -> None:
        # Strong references; the event loop only keeps weak ones.
        self._tasks: set[asyncio.Task] = set()

    def wait_until(self, work: Awaitable, name: str = "detached") -> asyncio.Task:
        """Schedule `work` without awaiting it."""
        task = asyncio.ensure_future(work)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            DETACHED_TASK_FAILURES_TOTAL.labels(task=task.get_name()).inc()
            logger.warning("Detached task %s failed: %s", task.get_name(), exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait (bounded) for outstanding tasks, cancelling stragglers."""
        if not self._tasks:
            return
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled %d detached task(s) at shutdown", len(still_running))


def get_execution_context(request: Request) -> ExecutionContext:
    """FastAPI dependency returning the application's ExecutionContext."""
    return request.app.state.execution_context
