"""Time-windowed sample caches for hostpulse."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from hostpulse.models import MetricsSnapshot, ProcessRecord, SystemInfo
from hostpulse.monitor import SystemMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class CacheEntry(Generic[T]):
    """A cached value and the monotonic time it was captured."""

    value: T
    captured_at: float
    generation: int = 0


class CachedValue(Generic[T]):
    """
    One cache key with a TTL and a coalesced refresh.

    At most one refresh runs per key: readers arriving while a refresh is in
    flight await the same task (shielded, so a cancelled reader never cancels
    the refresh for the others). invalidate() bumps the generation, which
    marks the stored entry stale and stops new readers from joining a refresh
    that began before the invalidation.

    A failed refresh never raises to readers: the stale value is served, or
    the key's default when nothing has been captured yet.
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[T]],
        ttl: float,
        default_factory: Callable[[], T],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the CachedValue.

        Args:
            name: Key name used in log messages.
            loader: Coroutine function producing a fresh value.
            ttl: Seconds a captured value stays fresh.
            default_factory: Produces the value served when no value exists.
            clock: Monotonic time source.
        """
        self._name = name
        self._loader = loader
        self._ttl = ttl
        self._default_factory = default_factory
        self._clock = clock
        self._entry: CacheEntry[T] | None = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task[T] | None = None
        self._inflight_generation = -1

    @property
    def name(self) -> str:
        """Get the key name."""
        return self._name

    @property
    def ttl(self) -> float:
        """Get the freshness window in seconds."""
        return self._ttl

    @property
    def entry(self) -> CacheEntry[T] | None:
        """Get the stored entry, fresh or not."""
        return self._entry

    def is_fresh(self) -> bool:
        """True when the stored entry can be served without recomputation."""
        entry = self._entry
        if entry is None or entry.generation != self._generation:
            return False
        return self._clock() - entry.captured_at < self._ttl

    def invalidate(self) -> None:
        """Force the next read to recompute."""
        self._generation += 1

    async def get(self, force: bool = False) -> T:
        """
        Return the cached value, refreshing it first when stale or forced.

        A forced read joins a refresh already in flight for the current
        generation rather than starting a second one.
        """
        if not force and self.is_fresh():
            return self._entry.value

        task = self._inflight
        if task is None or task.done() or self._inflight_generation != self._generation:
            task = asyncio.create_task(
                self._refresh(self._generation),
                name=f"hostpulse-refresh-{self._name}",
            )
            self._inflight = task
            self._inflight_generation = self._generation
        return await asyncio.shield(task)

    async def _refresh(self, generation: int) -> T:
        # Serializes refreshes of this key; an invalidated refresh finishes
        # before its replacement starts.
        async with self._lock:
            try:
                value = await self._loader()
            except Exception as exc:
                return self._fallback(exc)

            current = self._entry
            if current is None or generation >= current.generation:
                self._entry = CacheEntry(value, self._clock(), generation)
            return value

    def _fallback(self, exc: Exception) -> T:
        entry = self._entry
        if entry is None:
            logger.warning("Refresh of %s failed with nothing cached: %s", self._name, exc)
            return self._default_factory()
        logger.warning("Refresh of %s failed, serving stale value: %s", self._name, exc)
        return entry.value


class SampleCache:
    """
    Canonical cache of the latest metrics, process view and system info.

    Each key has its own TTL. Refreshes of different keys run independently.
    """

    def __init__(
        self,
        monitor: SystemMonitor,
        metrics_ttl: float = 1.0,
        processes_ttl: float = 30.0,
        system_info_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the SampleCache.

        Args:
            monitor: Sampling engine used to refresh entries.
            metrics_ttl: Freshness window for metrics snapshots.
            processes_ttl: Freshness window for the process view.
            system_info_ttl: Freshness window for the system description.
            clock: Monotonic time source.
        """
        self.metrics: CachedValue[MetricsSnapshot | None] = CachedValue(
            "metrics", monitor.sample_metrics, metrics_ttl, lambda: None, clock
        )
        self.processes: CachedValue[list[ProcessRecord]] = CachedValue(
            "processes", monitor.sample_processes, processes_ttl, list, clock
        )
        self.system_info: CachedValue[SystemInfo | None] = CachedValue(
            "system_info", monitor.sample_system_info, system_info_ttl, lambda: None, clock
        )

    async def get_metrics(self, force: bool = False) -> MetricsSnapshot | None:
        """Latest metrics snapshot, None if the provider never answered."""
        return await self.metrics.get(force)

    async def get_processes(self, force: bool = False) -> list[ProcessRecord]:
        """Latest process view, empty if the provider never answered."""
        return await self.processes.get(force)

    async def get_system_info(self, force: bool = False) -> SystemInfo | None:
        """Latest system description, None if the provider never answered."""
        return await self.system_info.get(force)

    def invalidate_processes(self) -> None:
        """Make the next process read recompute."""
        self.processes.invalidate()
