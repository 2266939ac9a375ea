"""
Concurrency utilities like the single-flight guard.
"""
import asyncio
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

logger = structlog.get_logger(__name__)


class _PendingAcquire:
    """One blocking acquisition of a threading.Lock, run in a worker thread.

    If the awaiting task gives up before the worker gets the lock, the worker
    releases it again as soon as it does. Whichever side comes second
    performs the release.
    """
    def __init__(self, lock: threading.Lock):
        self._lock = lock
        self._state = threading.Lock()
        self._acquired = False
        self._abandoned = False

    def run(self) -> None:
        self._lock.acquire()
        with self._state:
            if self._abandoned:
                self._lock.release()
            else:
                self._acquired = True

    def abandon(self) -> None:
        with self._state:
            self._abandoned = True
            if self._acquired:
                self._lock.release()


class SingleFlightGuard:
    """
    Asynchronous mutual exclusion shared by every caller in the process.

    Backed by a single threading.Lock, so operations started from event loops
    in different threads exclude each other too. A contended acquisition
    waits in a worker thread and never blocks the event loop. Acquire it with
    `async with guard.hold():` so that every exit path releases it.
    """
    def __init__(self, name: str | None = None):
        self.name = name or f"guard-{id(self)}"
        self._lock = threading.Lock()
        self.logger = logger.bind(guard_name=self.name)

    def locked(self) -> bool:
        """Whether an operation currently holds the guard."""
        return self._lock.locked()

    async def _acquire(self) -> None:
        if self._lock.acquire(blocking=False):
            return
        self.logger.debug("Waiting for in-flight operation to finish.")
        pending = _PendingAcquire(self._lock)
        try:
            await asyncio.to_thread(pending.run)
        except asyncio.CancelledError:
            pending.abandon()
            raise

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        await self._acquire()
        self.logger.debug("Guard acquired.")
        try:
            yield
        finally:
            self._lock.release()
            self.logger.debug("Guard released.")
