"""Data models for hostpulse."""

from dataclasses import dataclass, field
from typing import Any


def to_millis(seconds: float) -> int:
    """Convert an epoch timestamp in seconds to integer milliseconds."""
    return int(seconds * 1000)


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable view of one process as shown to clients."""

    pid: int
    name: str
    cpu: float  # 0.0 - 100.0
    memory: float  # Percent of physical memory
    memory_raw: int  # Bytes (RSS)
    status: str
    started: float  # Epoch seconds
    user: str
    command: str
    path: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape."""
        return {
            "pid": self.pid,
            "name": self.name,
            "cpu": self.cpu,
            "memory": self.memory,
            "memoryRaw": self.memory_raw,
            "status": self.status,
            "started": to_millis(self.started),
            "user": self.user,
            "command": self.command,
            "path": self.path,
        }


@dataclass(slots=True, frozen=True)
class RawProcess:
    """
    Unfiltered process row as reported by the metric provider.

    Every field except pid may be None (or NaN for the numeric ones) when the
    OS refused to report it.
    """

    pid: int
    name: str | None = None
    cpu_percent: float | None = None
    memory_percent: float | None = None
    memory_rss: int | None = None
    status: str | None = None
    create_time: float | None = None
    username: str | None = None
    cmdline: list[str] | None = None
    exe: str | None = None


@dataclass(slots=True, frozen=True)
class SwapStats:
    """Swap usage in bytes."""

    total: int = 0
    used: int = 0
    free: int = 0
    percentage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape."""
        return {
            "total": self.total,
            "used": self.used,
            "free": self.free,
            "percentage": self.percentage,
        }


@dataclass(slots=True, frozen=True)
class MemoryStats:
    """Physical memory usage in bytes."""

    total: int = 0
    used: int = 0
    free: int = 0
    percentage: float = 0.0
    swap: SwapStats = field(default_factory=SwapStats)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape."""
        return {
            "total": self.total,
            "used": self.used,
            "free": self.free,
            "percentage": self.percentage,
            "swap": self.swap.to_dict(),
        }


@dataclass(slots=True, frozen=True)
class CpuStats:
    """CPU load at one instant."""

    cores: int = 0  # Physical
    threads: int = 0  # Logical
    usage: tuple[float, ...] = ()  # Per physical core, 0.0 - 100.0
    thread_usage: tuple[float, ...] = ()  # Per logical CPU, 0.0 - 100.0
    average_usage: float = 0.0
    temperature: float | None = None  # Celsius
    speed: float = 0.0  # MHz

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape."""
        return {
            "cores": self.cores,
            "threads": self.threads,
            "usage": list(self.usage),
            "threadUsage": list(self.thread_usage),
            "averageUsage": self.average_usage,
            "temperature": self.temperature,
            "speed": self.speed,
        }


@dataclass(slots=True, frozen=True)
class DiskUsage:
    """Usage of one mounted filesystem."""

    device: str
    fs_type: str
    total: int
    used: int
    free: int
    percentage: float
    mount: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape."""
        return {
            "device": self.device,
            "type": self.fs_type,
            "total": self.total,
            "used": self.used,
            "free": self.free,
            "percentage": self.percentage,
            "mount": self.mount,
        }


@dataclass(slots=True, frozen=True)
class MetricsSnapshot:
    """
    Immutable point-in-time capture of host telemetry.

    Produced by one sampling pass and never mutated afterwards. Periodic
    snapshots carry an empty process tuple; process data travels separately.
    """

    timestamp: float  # Epoch seconds
    boot_time: float
    memory: MemoryStats
    cpu: CpuStats
    load_average: tuple[float, float, float]
    uptime: float
    disks: tuple[DiskUsage, ...] = ()
    processes: tuple[ProcessRecord, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape."""
        return {
            "timestamp": to_millis(self.timestamp),
            "bootTime": to_millis(self.boot_time),
            "memory": self.memory.to_dict(),
            "cpu": self.cpu.to_dict(),
            "loadAverage": list(self.load_average),
            "uptime": self.uptime,
            "disk": [disk.to_dict() for disk in self.disks],
            "processes": [proc.to_dict() for proc in self.processes],
        }


@dataclass(slots=True, frozen=True)
class CpuInfo:
    """Static CPU description."""

    manufacturer: str
    brand: str
    physical_cores: int
    cores: int
    speed: float


@dataclass(slots=True, frozen=True)
class MemoryInfo:
    """Memory sizes at connect time."""

    total: int
    free: int
    used: int
    swap_total: int
    swap_used: int
    cache_memory: int = 0  # Page cache plus buffers


@dataclass(slots=True, frozen=True)
class OsInfo:
    """Operating system description."""

    platform: str
    distro: str
    release: str
    kernel: str
    arch: str
    hostname: str


@dataclass(slots=True, frozen=True)
class SystemInfo:
    """One-shot hardware/OS description sent to each new session."""

    cpu: CpuInfo
    memory: MemoryInfo
    os: OsInfo

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape."""
        return {
            "cpu": {
                "manufacturer": self.cpu.manufacturer,
                "brand": self.cpu.brand,
                "physicalCores": self.cpu.physical_cores,
                "cores": self.cpu.cores,
                "speed": self.cpu.speed,
            },
            "memory": {
                "total": self.memory.total,
                "free": self.memory.free,
                "used": self.memory.used,
                "swapTotal": self.memory.swap_total,
                "swapUsed": self.memory.swap_used,
                "cacheMemory": self.memory.cache_memory,
            },
            "os": {
                "platform": self.os.platform,
                "distro": self.os.distro,
                "release": self.os.release,
                "kernel": self.os.kernel,
                "arch": self.os.arch,
                "hostname": self.os.hostname,
            },
        }
