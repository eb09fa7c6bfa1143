"""asyncio coordination primitives: request coalescing and a bounded permit gate.

Both rely on the event loop being single threaded: every check-and-act below
runs without an ``await`` between the lookup and the mutation, which makes
it atomic with respect to other coroutines.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


class SingleFlight:
    """Keyed table of in-flight calls shared by concurrent callers.

    A caller finding an entry for its key attaches to it instead of starting
    a new call. The entry is dropped exactly once, when the underlying call
    settles, whatever the number of attached callers.
    """

    def __init__(self) -> None:
        self._pending: Dict[Hashable, asyncio.Future] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Await the shared call for ``key``, starting it with ``factory`` if needed.

        Args:
            key: Request identity, e.g. ``"list-tools"`` or a page number.
            factory: Zero-argument callable returning the awaitable to share.

        Returns:
            The shared call result; its exception is raised to every caller.
        """
        future = self._pending.get(key)
        if future is None:
            future = asyncio.ensure_future(factory())
            self._pending[key] = future
            future.add_done_callback(lambda done, k=key: self._forget(k, done))
        # a cancelled caller must not cancel the call other callers wait for
        return await asyncio.shield(future)

    def _forget(self, key: Hashable, done: asyncio.Future) -> None:
        if self._pending.get(key) is done:
            del self._pending[key]
        if not done.cancelled() and done.exception() is not None:
            logger.debug("Shared call %r failed: %s", key, done.exception())


class Permit:
    """One unit of the gate; releasing twice is a no-op."""

    def __init__(self, gate: "ConcurrencyGate"):
        self._gate = gate
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._gate._release()  # pylint: disable=protected-access


class ConcurrencyGate:
    """Async semaphore with FIFO hand-off, used to cap concurrent outbound streams."""

    def __init__(self, permits: int):
        if permits <= 0:
            raise ValueError(f"permits must be positive, got {permits}")
        self._permits = permits
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def available(self) -> int:
        return self._permits

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def acquire(self) -> "asyncio.Future[Permit]":
        """Return a future resolved with a permit, immediately when one is free."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        if self._permits > 0:
            self._permits -= 1
            future.set_result(Permit(self))
        else:
            self._waiters.append(future)
        return future

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # hand over directly, the counter is untouched
                waiter.set_result(Permit(self))
                return
        self._permits += 1

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[Permit]:
        """Hold a permit for the duration of the block."""
        future = self.acquire()
        try:
            permit = await future
        except asyncio.CancelledError:
            if future.done() and not future.cancelled():
                future.result().release()
            raise
        try:
            yield permit
        finally:
            permit.release()


@asynccontextmanager
async def maybe_hold(gate: Optional[ConcurrencyGate]) -> AsyncIterator[Optional[Permit]]:
    """Hold a permit from ``gate``, or nothing when the transport is not capped."""
    if gate is None:
        yield None
        return
    async with gate.hold() as permit:
        yield permit
