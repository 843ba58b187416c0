"""psutil-backed metric provider for hostpulse."""

import asyncio
import logging
import os
import platform
import socket
from collections.abc import Callable
from enum import Enum
from typing import Any, TypeVar

import psutil

from hostpulse.errors import PermissionDeniedError, ProviderUnavailable, TargetNotFoundError
from hostpulse.models import (
    CpuInfo,
    DiskUsage,
    MemoryInfo,
    MemoryStats,
    OsInfo,
    RawProcess,
    SwapStats,
    SystemInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Attributes fetched per process in one process_iter() pass
PROCESS_ATTRS = [
    "pid",
    "name",
    "cpu_percent",
    "memory_percent",
    "memory_info",
    "status",
    "create_time",
    "username",
    "cmdline",
    "exe",
]

# Sensor names tried in order when reading the CPU package temperature
CPU_SENSORS = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "acpitz")


class Liveness(Enum):
    """Result of a zero-effect existence probe."""

    EXISTS = "exists"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"  # Exists, owned by someone else


class MetricProvider:
    """
    Query layer over psutil.

    Every public query is a coroutine that runs the blocking psutil call in a
    worker thread, so one slow query never stalls the event loop. psutil
    errors are wrapped in ProviderUnavailable.
    """

    def __init__(self) -> None:
        """Initialize the MetricProvider."""
        self._primed = False

    def prime(self) -> None:
        """Initialize CPU percent counters (the first call returns 0.0)."""
        if self._primed:
            return
        psutil.cpu_percent(percpu=True)
        self._primed = True

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except (psutil.Error, OSError) as exc:
            raise ProviderUnavailable(query=getattr(func, "__name__", "query"), reason=str(exc)) from exc

    async def cpu_load(self) -> list[float]:
        """Per logical CPU load since the previous call."""
        return await self._call(psutil.cpu_percent, None, True)

    async def cpu_counts(self) -> tuple[int, int]:
        """Physical and logical core counts."""
        return await self._call(self._read_cpu_counts)

    async def cpu_speed(self) -> float:
        """Current CPU clock in MHz."""
        return await self._call(self._read_cpu_speed)

    async def temperature(self) -> float | None:
        """CPU package temperature in Celsius, None when no sensor reports."""
        return await self._call(self._read_temperature)

    async def memory(self) -> MemoryStats:
        """Physical memory and swap usage."""
        return await self._call(self._read_memory)

    async def disks(self) -> list[DiskUsage]:
        """Usage of every mounted physical filesystem."""
        return await self._call(self._read_disks)

    async def boot_time(self) -> float:
        """Boot time as epoch seconds."""
        return await self._call(psutil.boot_time)

    async def load_average(self) -> tuple[float, float, float]:
        """1, 5 and 15 minute load averages."""
        return await self._call(psutil.getloadavg)

    async def process_table(self) -> list[RawProcess]:
        """Raw rows for every visible process."""
        return await self._call(self._read_process_table)

    async def system_info(self) -> SystemInfo:
        """Static hardware and OS description."""
        return await self._call(self._read_system_info)

    async def process_exists(self, pid: int) -> Liveness:
        """Probe a pid without affecting it."""
        return await asyncio.to_thread(probe_pid, pid)

    async def signal_process(self, pid: int, forced: bool = False) -> None:
        """
        Ask a process to exit.

        Args:
            pid: Target process id.
            forced: Send SIGKILL instead of SIGTERM.

        Raises:
            TargetNotFoundError: The process no longer exists.
            PermissionDeniedError: The OS refused the signal.
        """
        await asyncio.to_thread(send_signal, pid, forced)

    @staticmethod
    def _read_cpu_counts() -> tuple[int, int]:
        logical = psutil.cpu_count(logical=True) or 0
        physical = psutil.cpu_count(logical=False) or logical
        return physical, logical

    @staticmethod
    def _read_cpu_speed() -> float:
        freq = psutil.cpu_freq()
        return float(freq.current) if freq else 0.0

    @staticmethod
    def _read_temperature() -> float | None:
        # Not available on every platform
        read_sensors = getattr(psutil, "sensors_temperatures", None)
        if read_sensors is None:
            return None
        sensors = read_sensors()
        for name in CPU_SENSORS:
            entries = sensors.get(name)
            if entries:
                return float(entries[0].current)
        return None

    @staticmethod
    def _read_memory() -> MemoryStats:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return MemoryStats(
            total=mem.total,
            used=mem.used,
            free=mem.available,
            percentage=mem.percent,
            swap=SwapStats(
                total=swap.total,
                used=swap.used,
                free=swap.free,
                percentage=swap.percent,
            ),
        )

    @staticmethod
    def _read_disks() -> list[DiskUsage]:
        disks: list[DiskUsage] = []
        for part in psutil.disk_partitions(all=False):
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                # Unmounted media, unreadable mounts
                logger.debug("Skipping unreadable mount %s", part.mountpoint)
                continue
            disks.append(
                DiskUsage(
                    device=part.device,
                    fs_type=part.fstype,
                    total=usage.total,
                    used=usage.used,
                    free=usage.free,
                    percentage=usage.percent,
                    mount=part.mountpoint,
                )
            )
        return disks

    @staticmethod
    def _read_process_table() -> list[RawProcess]:
        """
        Collect raw rows for all running processes.

        Processes that die mid-walk, deny access or are zombies are skipped.
        process_iter() hands every caller the same cached Process objects, so
        each row is read into its own dict rather than through proc.info.
        """
        rows: list[RawProcess] = []
        for proc in psutil.process_iter():
            try:
                with proc.oneshot():
                    info = proc.as_dict(attrs=PROCESS_ATTRS)
                    mem_info = info.get("memory_info")
                    rows.append(
                        RawProcess(
                            pid=info.get("pid", proc.pid),
                            name=info.get("name"),
                            cpu_percent=info.get("cpu_percent"),
                            memory_percent=info.get("memory_percent"),
                            memory_rss=mem_info.rss if mem_info else None,
                            status=info.get("status"),
                            create_time=info.get("create_time"),
                            username=info.get("username"),
                            cmdline=info.get("cmdline"),
                            exe=info.get("exe"),
                        )
                    )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return rows

    @staticmethod
    def _read_system_info() -> SystemInfo:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        freq = psutil.cpu_freq()
        logical = psutil.cpu_count(logical=True) or 0
        uname = platform.uname()
        brand = platform.processor() or uname.machine
        return SystemInfo(
            cpu=CpuInfo(
                manufacturer=_cpu_vendor(brand),
                brand=brand,
                physical_cores=psutil.cpu_count(logical=False) or logical,
                cores=logical,
                speed=float(freq.max or freq.current) if freq else 0.0,
            ),
            memory=MemoryInfo(
                total=mem.total,
                free=mem.available,
                used=mem.used,
                swap_total=swap.total,
                swap_used=swap.used,
                # cached/buffers exist on Linux and the BSDs only
                cache_memory=getattr(mem, "cached", 0) + getattr(mem, "buffers", 0),
            ),
            os=OsInfo(
                platform=uname.system.lower(),
                distro=_distro_name(),
                release=uname.release,
                kernel=uname.version,
                arch=uname.machine,
                hostname=socket.gethostname(),
            ),
        )


def probe_pid(pid: int) -> Liveness:
    """
    Check whether a pid exists using a zero-effect signal.

    "Operation not permitted" still means the process exists. Only a genuine
    "no such process" counts as absence.
    """
    if os.name != "posix":
        # Signal 0 would terminate the target on Windows
        return Liveness.EXISTS if psutil.pid_exists(pid) else Liveness.NOT_FOUND
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return Liveness.NOT_FOUND
    except PermissionError:
        return Liveness.PERMISSION_DENIED
    return Liveness.EXISTS


def send_signal(pid: int, forced: bool = False) -> None:
    """Send SIGTERM (or SIGKILL when forced) to a process."""
    try:
        proc = psutil.Process(pid)
        if forced:
            proc.kill()
        else:
            proc.terminate()
    except psutil.NoSuchProcess as exc:
        raise TargetNotFoundError(pid=pid) from exc
    except psutil.AccessDenied as exc:
        raise PermissionDeniedError(pid=pid) from exc


def _cpu_vendor(brand: str) -> str:
    lowered = brand.lower()
    for vendor in ("intel", "amd", "apple", "arm"):
        if vendor in lowered:
            return vendor.upper() if vendor in ("amd", "arm") else vendor.capitalize()
    return "unknown"


def _distro_name() -> str:
    try:
        release = platform.freedesktop_os_release()
    except (AttributeError, OSError):
        return platform.system()
    return release.get("PRETTY_NAME") or release.get("NAME") or platform.system()
