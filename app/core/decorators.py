import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


async def run_best_effort(
    operation: Callable[[], Awaitable[Any]], context: str, default: Any = None
) -> Any:
    """
    Await operation(); on any failure log it under `context` and return `default`.

    Used for work whose failure must never reach the caller: cache
    reads/writes, activity logging and notification delivery.
    """
    try:
        return await operation()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception(f"{context} failed")
        return default


def best_effort(context: str, default: Any = None):
    """
    Decorator form of run_best_effort for async functions and methods.
    Example:
      @best_effort("item cache write")
      async def cache_item(self, entity_id, entity): ...
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            return await run_best_effort(
                lambda: fn(*args, **kwargs), context, default=default
            )

        return wrapper

    return decorator


# Strong references to detached tasks; the event loop only keeps weak ones.
_background_tasks: set[asyncio.Task] = set()


def spawn_background(
    operation: Callable[[], Awaitable[Any]], context: str
) -> asyncio.Task:
    """
    Fire-and-forget: schedule operation() as an independent task.

    The task is not tied to the caller, so cancelling the calling request
    does not cancel it. Failures are logged and otherwise discarded.
    """
    task = asyncio.create_task(run_best_effort(operation, context))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def pending_background_tasks() -> int:
    return len(_background_tasks)


async def drain_background_tasks(timeout: float | None = None) -> None:
    """Wait for detached tasks to finish; used on shutdown and in tests."""
    if not _background_tasks:
        return
    done, pending = await asyncio.wait(set(_background_tasks), timeout=timeout)
    if pending:
        logger.warning(f"{len(pending)} background task(s) still running at shutdown")
