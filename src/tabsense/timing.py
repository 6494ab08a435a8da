"""Timeout races that leave the losing operation running."""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_late_result(task: "asyncio.Future") -> None:
    """Retrieve and drop the outcome of an operation that lost a race."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Ignoring late failure from timed-out operation: {exc}")
    else:
        logger.debug("Ignoring late result from timed-out operation")


async def race(operation: Awaitable[T], timeout: Optional[float]) -> T:
    """Await `operation`, giving up after `timeout` seconds.

    Unlike `asyncio.wait_for`, the operation is not cancelled when the
    timeout wins; it keeps running and its eventual result is discarded.

    Raises:
        asyncio.TimeoutError: If the timeout elapses first.
    """
    task = asyncio.ensure_future(operation)
    if timeout is None:
        return await task

    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task in done:
        return task.result()

    task.add_done_callback(_discard_late_result)
    raise asyncio.TimeoutError(f"Operation did not finish within {timeout}s")
