"""Bridges between blocking calls and the event loop."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, TypeVar


T = TypeVar("T")


async def run_in_executor(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run blocking ``func`` on the default thread pool.

    Used for psutil scans, keyring access, key files and the application's
    state database so the loop never blocks on them.
    """
    loop = asyncio.get_running_loop()
    call = partial(func, *args, **kwargs) if kwargs else partial(func, *args)
    return await loop.run_in_executor(None, call)


async def wait_for_condition(
    condition: Callable[[], bool | Awaitable[bool]],
    timeout: float = 30.0,
    interval: float = 0.1,
) -> bool:
    """Poll ``condition`` until it holds or ``timeout`` seconds pass.

    Args:
        condition: Sync or async predicate, checked at least once
        timeout: Give up after this many seconds
        interval: Pause between checks

    Returns:
        Whether the condition was met in time
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        outcome = condition()
        if asyncio.iscoroutine(outcome):
            outcome = await outcome
        if outcome:
            return True
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(interval)
