"""Per-package single-flight locks.

Each package gets one :class:`PackageLock`. Work started under a key runs at
most once at a time: callers arriving while it is in flight wait for the same
task and receive its result (or its exception) instead of starting their own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .errors import LockTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PackageLock:
    """Single-flight executor keyed by operation for one package."""

    def __init__(self, name: str):
        self.name = name
        self._inflight: Dict[str, asyncio.Future] = {}

    def is_busy(self, key: str) -> bool:
        """True if work is currently running under ``key``."""
        task = self._inflight.get(key)
        return task is not None and not task.done()

    async def run(
        self,
        key: str,
        callback: Callable[[], Awaitable[T]],
        timeout: Optional[float] = None,
    ) -> T:
        """Run ``callback`` exclusively under ``key``.

        Args:
            key: Operation name, e.g. ``"metadata"`` or ``"tarball"``.
            callback: Coroutine function producing the result.
            timeout: Maximum seconds a waiter spends on someone else's work.
                The caller that starts the work is not bounded by it.

        Returns:
            The result of the single execution.

        Raises:
            LockTimeout: A waiter exceeded ``timeout``.
        """
        task = self._inflight.get(key)
        if task is not None and not task.done():
            logger.debug("Waiting for in-flight %s of %s", key, self.name)
            try:
                # Shielded: a waiter giving up must not cancel the shared work.
                return await asyncio.wait_for(asyncio.shield(task), timeout)
            except asyncio.TimeoutError as e:
                raise LockTimeout(self.name, key, timeout or 0) from e

        task = asyncio.ensure_future(callback())
        self._inflight[key] = task
        task.add_done_callback(lambda done: self._release(key, done))
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Retrieve the exception so an unawaited failure is not reported as lost.
        if not task.cancelled():
            task.exception()


class LockRegistry:
    """Hands out one lazily created :class:`PackageLock` per package."""

    def __init__(self) -> None:
        self._locks: Dict[str, PackageLock] = {}

    def get(self, fullname: str) -> PackageLock:
        """Get lock by package name, creating it on first use."""
        lock = self._locks.get(fullname)
        if lock is None:
            lock = PackageLock(fullname)
            self._locks[fullname] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)

    def stats(self) -> Dict[str, Any]:
        busy = sum(
            1
            for lock in self._locks.values()
            for key in list(lock._inflight)  # pylint: disable=protected-access
            if lock.is_busy(key)
        )
        return {"packages": len(self._locks), "in_flight": busy}
