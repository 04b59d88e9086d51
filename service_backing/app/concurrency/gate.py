"""
Bounded-concurrency admission gates.
"""

import asyncio
import time
from collections import deque
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, Mapping, Optional, TypeVar, Union, TYPE_CHECKING

from shared.errors import ValidationError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BackingConfig
    from shared.metrics import MetricsCollector


T = TypeVar("T")


class GateName(str, Enum):
    """Workload classes with their own admission gate."""
    DB_READ = "db_read"
    DB_WRITE = "db_write"
    EXTERNAL_API = "external_api"
    CPU = "cpu"


# Default ceilings per workload class
DEFAULT_CAPACITIES: Dict[GateName, int] = {
    GateName.DB_READ: 50,       # cheap reads, favour throughput
    GateName.DB_WRITE: 10,      # lock contention and replication lag
    GateName.EXTERNAL_API: 5,   # third-party rate limits
    GateName.CPU: 2,            # keep the event loop responsive
}


class ConcurrencyGate:
    """Caps the number of tasks of one class running at the same time.

    Callers beyond the capacity wait in arrival order. A released slot is
    handed straight to the oldest waiter, so late arrivals can never overtake
    queued ones. There is no timeout: wrap ``run`` in ``asyncio.wait_for``
    if a deadline is needed.
    """

    def __init__(self, name: Union[GateName, str], capacity: int,
                 metrics: Optional["MetricsCollector"] = None):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ValidationError(
                "Gate capacity must be a positive integer",
                {"gate": str(name), "capacity": capacity},
            )
        self.name = name.value if isinstance(name, GateName) else str(name)
        self.capacity = capacity
        self.metrics = metrics
        self.logger = get_logger(f"backing.gate.{self.name}")

        self._in_flight = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def run(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Run ``func(*args, **kwargs)`` once a slot is free."""
        async with self.slot():
            return await func(*args, **kwargs)

    async def run_in_thread(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Run a blocking callable in a worker thread while holding a slot."""
        async with self.slot():
            return await asyncio.to_thread(func, *args, **kwargs)

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block."""
        await self._acquire()
        try:
            yield
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._in_flight < self.capacity and not self._waiters:
            self._in_flight += 1
            self._admitted(queued=False, waited=0.0)
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._update_gauges()
        started = time.perf_counter()
        self.logger.debug("Gate full, task queued", in_flight=self._in_flight, waiting=len(self._waiters))

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was already handed over; give it to the next in line.
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
                self._update_gauges()
            raise

        self._admitted(queued=True, waited=time.perf_counter() - started)

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Hand the slot over; in-flight count is unchanged.
                waiter.set_result(None)
                self._update_gauges()
                return
        self._in_flight -= 1
        self._update_gauges()

    def _admitted(self, queued: bool, waited: float) -> None:
        self._update_gauges()
        if self.metrics:
            self.metrics.increment_counter("gate_admissions_total", gate=self.name, queued=str(queued).lower())
            if queued:
                self.metrics.observe_histogram("gate_wait_seconds", waited, gate=self.name)

    def _update_gauges(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("gate_in_flight", self._in_flight, gate=self.name)
            self.metrics.set_gauge("gate_waiting", self.waiting, gate=self.name)

    def get_state(self) -> Dict[str, Any]:
        """Get current gate state."""
        return {
            "name": self.name,
            "capacity": self.capacity,
            "in_flight": self._in_flight,
            "waiting": self.waiting,
        }


class GateRegistry:
    """The four workload gates, built once and shared by consumers."""

    def __init__(self, capacities: Optional[Mapping[Union[GateName, str], int]] = None,
                 metrics: Optional["MetricsCollector"] = None):
        merged: Dict[GateName, int] = dict(DEFAULT_CAPACITIES)
        for name, capacity in (capacities or {}).items():
            merged[GateName(name)] = capacity

        self.logger = get_logger("backing.gates")
        self._gates: Dict[GateName, ConcurrencyGate] = {
            name: ConcurrencyGate(name, capacity, metrics=metrics)
            for name, capacity in merged.items()
        }
        self.logger.info("Concurrency gates created", capacities={n.value: c for n, c in merged.items()})

    @classmethod
    def from_config(cls, config: "BackingConfig",
                    metrics: Optional["MetricsCollector"] = None) -> "GateRegistry":
        return cls(
            {
                GateName.DB_READ: config.gate_db_read_capacity,
                GateName.DB_WRITE: config.gate_db_write_capacity,
                GateName.EXTERNAL_API: config.gate_external_api_capacity,
                GateName.CPU: config.gate_cpu_capacity,
            },
            metrics=metrics,
        )

    def get(self, name: Union[GateName, str]) -> ConcurrencyGate:
        try:
            return self._gates[GateName(name)]
        except ValueError:
            raise ValidationError("Unknown gate", {"gate": str(name)}) from None

    def __getitem__(self, name: Union[GateName, str]) -> ConcurrencyGate:
        return self.get(name)

    async def run(self, name: Union[GateName, str], func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Run a task through the named gate."""
        return await self.get(name).run(func, *args, **kwargs)

    @property
    def db_read(self) -> ConcurrencyGate:
        return self._gates[GateName.DB_READ]

    @property
    def db_write(self) -> ConcurrencyGate:
        return self._gates[GateName.DB_WRITE]

    @property
    def external_api(self) -> ConcurrencyGate:
        return self._gates[GateName.EXTERNAL_API]

    @property
    def cpu(self) -> ConcurrencyGate:
        return self._gates[GateName.CPU]

    def get_all_states(self) -> Dict[str, Dict[str, Any]]:
        """Get states of all gates."""
        return {name.value: gate.get_state() for name, gate in self._gates.items()}
