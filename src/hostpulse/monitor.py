"""System sampling engine for hostpulse."""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from hostpulse.errors import ProviderUnavailable
from hostpulse.models import CpuStats, MemoryStats, MetricsSnapshot, ProcessRecord, SystemInfo
from hostpulse.provider import MetricProvider
from hostpulse.snapshotter import ProcessSnapshotter, user_table

logger = logging.getLogger(__name__)

# Value used for a metrics field whose sub-query failed
DEGRADED_DEFAULTS: dict[str, Any] = {
    "cpu_load": [],
    "cpu_counts": (0, 0),
    "cpu_speed": 0.0,
    "temperature": None,
    "memory": MemoryStats(),
    "disks": [],
    "boot_time": 0.0,
    "load_average": (0.0, 0.0, 0.0),
}


def uptime_seconds(boot_time: float, now: float) -> float:
    """Seconds since boot, 0.0 when boot time is unknown."""
    if boot_time <= 0:
        return 0.0
    return max(0.0, now - boot_time)


def core_usage(thread_usage: tuple[float, ...], physical: int) -> tuple[float, ...]:
    """
    Average the logical CPUs of each physical core.

    Logical CPU i is counted toward core i % physical, the order Linux
    numbers hyperthread siblings in. Without a usable core count the
    per-thread values are returned unchanged.
    """
    if physical <= 0 or physical >= len(thread_usage):
        return thread_usage
    groups = (thread_usage[core::physical] for core in range(physical))
    return tuple(sum(group) / len(group) for group in groups)


class SystemMonitor:
    """
    Runs one sampling pass against the metric provider.

    Sub-queries of a metrics pass are dispatched concurrently and joined
    before the snapshot is assembled. A failed sub-query degrades its field
    to the value in DEGRADED_DEFAULTS instead of failing the whole pass.
    """

    def __init__(
        self,
        provider: MetricProvider,
        snapshotter: ProcessSnapshotter,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            provider: Query layer over the OS.
            snapshotter: Builds the process view from the raw table.
            clock: Source of snapshot timestamps (epoch seconds).
        """
        self._provider = provider
        self._snapshotter = snapshotter
        self._clock = clock

    async def sample_metrics(self) -> MetricsSnapshot:
        """
        Collect one metrics snapshot.

        Raises:
            ProviderUnavailable: Every sub-query failed.
        """
        queries = {
            "cpu_load": self._provider.cpu_load(),
            "cpu_counts": self._provider.cpu_counts(),
            "cpu_speed": self._provider.cpu_speed(),
            "temperature": self._provider.temperature(),
            "memory": self._provider.memory(),
            "disks": self._provider.disks(),
            "boot_time": self._provider.boot_time(),
            "load_average": self._provider.load_average(),
        }
        results = await asyncio.gather(*queries.values(), return_exceptions=True)
        timestamp = self._clock()

        values: dict[str, Any] = {}
        failed: list[str] = []
        for name, result in zip(queries, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failed.append(name)
                logger.warning("Metric query %s failed: %s", name, result)
                values[name] = DEGRADED_DEFAULTS[name]
            else:
                values[name] = result

        if len(failed) == len(queries):
            raise ProviderUnavailable(query="metrics", failed=failed)

        threads = tuple(max(0.0, min(100.0, float(u))) for u in values["cpu_load"])
        physical, logical = values["cpu_counts"]
        boot_time = float(values["boot_time"] or 0.0)
        return MetricsSnapshot(
            timestamp=timestamp,
            boot_time=boot_time,
            memory=values["memory"],
            cpu=CpuStats(
                cores=physical,
                threads=logical or len(threads),
                usage=core_usage(threads, physical),
                thread_usage=threads,
                average_usage=sum(threads) / len(threads) if threads else 0.0,
                temperature=values["temperature"],
                speed=float(values["cpu_speed"] or 0.0),
            ),
            load_average=tuple(values["load_average"]),
            uptime=uptime_seconds(boot_time, timestamp),
            disks=tuple(values["disks"]),
        )

    async def sample_processes(self) -> list[ProcessRecord]:
        """
        Walk the process table once and rank it.

        Owner names come from the same walk. A failed walk raises.
        """
        table = await self._provider.process_table()
        return self._snapshotter.snapshot(table, user_table(table))

    async def sample_system_info(self) -> SystemInfo:
        """Collect the static hardware/OS description."""
        return await self._provider.system_info()
