"""Thread offloading for blocking filesystem work in sync operations.

Hashing limits are per call: ``build_sync_state`` creates its own limiter
in the loop it runs in, so nothing here outlives one event loop.
"""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking function in a worker thread.

    Example:
        files = await run_sync(list_syncable_files, root, include, exclude)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


def hashing_limiter(max_parallel: int | None) -> asyncio.Semaphore | None:
    """Semaphore allowing *max_parallel* concurrent reads, or None for no limit.

    Call from inside the coroutine that will use it.

    Raises:
        ValueError: *max_parallel* is less than 1.
    """
    if max_parallel is None:
        return None
    if max_parallel < 1:
        raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")
    return asyncio.Semaphore(max_parallel)


async def run_sync_limited(
    limiter: asyncio.Semaphore | None,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Like ``run_sync``, holding *limiter* while the thread runs."""
    if limiter is None:
        return await run_sync(func, *args, **kwargs)
    async with limiter:
        return await run_sync(func, *args, **kwargs)
