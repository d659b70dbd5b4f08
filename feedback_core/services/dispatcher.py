"""Detached execution of best-effort side effects.

Audit writes and notifications must not delay or fail the request that
triggered them. Handlers hand their coroutines to ``spawn`` and return;
failures are logged here and never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    """Run coroutines as background tasks and keep them referenced until done."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and return immediately."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("side_effect.cancelled", extra={"task_name": task.get_name()})
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "side_effect.failed",
                extra={
                    "task_name": task.get_name(),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )

    async def drain(self) -> None:
        """Wait for every pending side effect (application shutdown)."""
        if not self._tasks:
            return
        logger.info("side_effect.draining", extra={"pending": len(self._tasks)})
        # return_exceptions: failures were already logged by the done callback
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
