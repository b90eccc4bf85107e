"""Counting semaphore used to bound in-flight render dispatches."""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar
from uuid import UUID

T = TypeVar("T")


class ConcurrencyGate:
    """FIFO counting semaphore with direct permit hand-off.

    A released permit goes straight to the longest waiting caller, so no other
    coroutine can take it between the release and the waiter resuming.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._available = capacity
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def available(self) -> int:
        """Number of permits free right now."""
        return self._available

    @property
    def in_use(self) -> int:
        """Number of permits currently held."""
        return self.capacity - self._available

    @property
    def waiting(self) -> int:
        """Number of callers suspended in ``acquire``."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        """Take a permit, suspending until one is handed over."""
        if self._available > 0:
            self._available -= 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The permit was handed over before the cancellation landed.
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        """Return a permit, handing it to the next waiter if there is one."""
        if self._available < 0:
            # Paying back permits held when the gate shrank.
            self._available += 1
            return
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        if self._available >= self.capacity:
            raise RuntimeError("ConcurrencyGate released more times than acquired")
        self._available += 1

    def resize(self, capacity: int) -> None:
        """Change capacity in place, keeping permits already held.

        Shrinking below the number of held permits leaves the gate in debt
        until enough of them are released. Growing wakes queued waiters.
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._available += capacity - self.capacity
        self.capacity = capacity
        while self._available > 0 and self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                self._available -= 1
                waiter.set_result(None)

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` while holding a permit."""
        await self.acquire()
        try:
            return await fn()
        finally:
            self.release()


@dataclass
class GateRegistry:
    """Keeps one gate per tenant, sized from the tenant's plan."""

    _gates: dict[UUID, ConcurrencyGate] = field(default_factory=dict)

    def gate_for(self, tenant_id: UUID, capacity: int) -> ConcurrencyGate:
        """Return the tenant's gate, resizing it in place if the plan changed."""
        gate = self._gates.get(tenant_id)
        if gate is None:
            gate = ConcurrencyGate(capacity)
            self._gates[tenant_id] = gate
        elif gate.capacity != capacity:
            gate.resize(capacity)
        return gate
