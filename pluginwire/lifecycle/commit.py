"""Commit points for side-effecting domain work.

The host ends a plugin with an uncatchable kill, so nothing can clean up after
a half-finished side effect. Domain code wraps each side effect in a commit
point; the gate lets only one run at a time, and shutdown waits for the active
one to finish before the process exits.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import AsyncIterator, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager, contextmanager

from loguru import logger


class CommitGate:
    """Serializes commit points process-wide."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: str | None = None
        self._started_at = 0.0
        self._waiters: ThreadPoolExecutor | None = None

    @property
    def active(self) -> str | None:
        return self._active

    @contextmanager
    def commit_point(self, name: str) -> Iterator[None]:
        self._lock.acquire()
        self._enter(name)
        try:
            yield
        finally:
            self._exit(name)
            self._lock.release()

    @asynccontextmanager
    async def async_commit_point(self, name: str) -> AsyncIterator[None]:
        # threading.Lock shared with the sync commit point; async waiters queue
        # on one dedicated thread, not the default pool
        acquire = asyncio.get_running_loop().run_in_executor(self._waiter_pool(), self._lock.acquire)
        try:
            await asyncio.shield(acquire)
        except asyncio.CancelledError:
            acquire.add_done_callback(self._release_abandoned)
            raise
        self._enter(name)
        try:
            yield
        finally:
            self._exit(name)
            self._lock.release()

    def _waiter_pool(self) -> ThreadPoolExecutor:
        if self._waiters is None:
            self._waiters = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pluginwire-commit")
        return self._waiters

    def _release_abandoned(self, acquire: asyncio.Future) -> None:
        if not acquire.cancelled() and acquire.exception() is None and acquire.result():
            self._lock.release()

    def wait_released(self, timeout: float) -> bool:
        """Block until no commit point is active; False if timeout expired first."""
        if not self._lock.acquire(timeout=max(timeout, 0.0)):
            logger.warning("Commit point {!r} still active after {}s", self._active, timeout)
            return False
        self._lock.release()
        return True

    def _enter(self, name: str) -> None:
        self._active = name
        self._started_at = time.monotonic()
        logger.debug("commit point {!r} entered", name)

    def _exit(self, name: str) -> None:
        logger.debug("commit point {!r} left after {:.3f}s", name, time.monotonic() - self._started_at)
        self._active = None
