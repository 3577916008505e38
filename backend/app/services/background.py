"""
User API Backend — Fire-and-Forget Tasks
=========================================

What:  Runs side effects (welcome emails) without making the caller wait for,
       or fail because of, their outcome.
How:   Schedules an asyncio Task, holds a strong reference until it finishes
       (the event loop only keeps weak ones), and logs any failure at ERROR.

Delivery is at-most-once and best effort: nothing retries a failed task and
nothing persists it across a process restart.
"""

import asyncio
import logging
from typing import Any, Coroutine, Set

logger = logging.getLogger(__name__)

_pending: Set[asyncio.Task] = set()


def fire_and_forget(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """Schedule `coro` on the running loop; its failure is logged, never raised."""
    task = asyncio.ensure_future(coro)
    _pending.add(task)
    task.add_done_callback(lambda done: _finished(done, name))
    return task


def _finished(task: asyncio.Task, name: str) -> None:
    _pending.discard(task)
    if task.cancelled():
        logger.warning("Background task %s was cancelled", name)
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed: %s", name, exc, exc_info=exc)


async def drain(timeout: float = 5.0) -> None:
    """Wait for outstanding tasks, e.g. before a Lambda invocation returns or at shutdown."""
    if _pending:
        await asyncio.wait(set(_pending), timeout=timeout)


def pending_count() -> int:
    return len(_pending)
