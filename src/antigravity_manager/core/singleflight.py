"""Keyed de-duplication of concurrent async operations."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import structlog


logger = structlog.get_logger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class SingleFlight(Generic[K, V]):
    """Share one in-flight operation between all callers using the same key.

    The first caller for a key starts the operation; callers arriving while it
    runs await the same task and observe the same result or exception. The
    key is released when the task finishes, before any waiter resumes, so a
    call made after completion always starts fresh work.
    """

    def __init__(self, name: str = "singleflight") -> None:
        self._name = name
        self._inflight: dict[K, asyncio.Task[V]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: K, func: Callable[[], Awaitable[V]]) -> V:
        """Run ``func`` for ``key`` unless an identical call is already pending.

        Args:
            key: De-duplication key
            func: Zero-argument coroutine factory, only called by the leader

        Returns:
            The shared result
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(func())
            self._inflight[key] = task
            # Registered before any waiter so cleanup runs first
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug("singleflight_joined", group=self._name, key=str(key))
        # Shield so one cancelled waiter does not cancel the shared work
        return await asyncio.shield(task)

    def _release(self, key: K, task: asyncio.Task[V]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            # Mark retrieved; waiters re-raise it themselves
            logger.debug(
                "singleflight_failed",
                group=self._name,
                key=str(key),
                error=str(task.exception()),
            )
