"""Ranked process views for hostpulse."""

import math
from collections.abc import Iterable, Mapping
from enum import Enum

from hostpulse.models import ProcessRecord, RawProcess

DEFAULT_LIMIT = 10
# Processes at or below this cpu% and memory% are noise in the top view
NEGLIGIBLE_PERCENT = 0.1
DEFAULT_USER = "system"
UNKNOWN_STATUS = "unknown"


class SnapshotMode(Enum):
    """How the process view is selected from the full table."""

    TOP = "top"
    ROTATING = "rotating"


def _number(value: object, default: float = 0.0) -> float:
    """Coerce a provider value to a finite float."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    value = float(value)
    return value if math.isfinite(value) else default


def _text(value: object, default: str = "") -> str:
    return value if isinstance(value, str) and value else default


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def to_record(raw: RawProcess, users: Mapping[int, str]) -> ProcessRecord:
    """Build a ProcessRecord from a raw row, replacing unusable fields with defaults."""
    cmdline = raw.cmdline if isinstance(raw.cmdline, list) else []
    name = _text(raw.name)
    command = " ".join(str(part) for part in cmdline) if cmdline else name
    return ProcessRecord(
        pid=raw.pid,
        name=name,
        cpu=_clamp(_number(raw.cpu_percent)),
        memory=_clamp(_number(raw.memory_percent)),
        memory_raw=int(_number(raw.memory_rss)),
        status=_text(raw.status, UNKNOWN_STATUS),
        started=_number(raw.create_time),
        user=users.get(raw.pid) or DEFAULT_USER,
        command=command,
        path=_text(raw.exe),
    )


def user_table(table: Iterable[RawProcess]) -> dict[int, str]:
    """Owning user name per pid, taken from the same table walk."""
    return {raw.pid: raw.username for raw in table if isinstance(raw.username, str) and raw.username}


def rank(records: Iterable[ProcessRecord]) -> list[ProcessRecord]:
    """
    Sort by descending cpu, then descending memory.

    sorted() is stable, so equal keys keep their table order.
    """
    return sorted(records, key=lambda p: (-p.cpu, -p.memory))


def is_negligible(record: ProcessRecord) -> bool:
    """True when a process uses next to no CPU and memory."""
    return record.cpu <= NEGLIGIBLE_PERCENT and record.memory <= NEGLIGIBLE_PERCENT


class ProcessSnapshotter:
    """
    Build the process view sent to clients from the raw process table.

    In TOP mode the view is the top consumers, capped at ``limit``. In
    ROTATING mode successive calls page through the full sorted table,
    ``limit`` records at a time.
    """

    def __init__(self, limit: int = DEFAULT_LIMIT, mode: SnapshotMode = SnapshotMode.TOP) -> None:
        """
        Initialize the ProcessSnapshotter.

        Args:
            limit: Maximum number of records per view. Default 10.
            mode: Selection mode. Default top consumers.
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._mode = mode
        self._offset = 0

    @property
    def limit(self) -> int:
        """Get the view size."""
        return self._limit

    @property
    def mode(self) -> SnapshotMode:
        """Get the selection mode."""
        return self._mode

    @property
    def offset(self) -> int:
        """Get the rotating-window offset."""
        return self._offset

    def snapshot(self, table: Iterable[RawProcess], users: Mapping[int, str]) -> list[ProcessRecord]:
        """Produce the ranked view for one process table."""
        records = [to_record(raw, users) for raw in table]
        if self._mode is SnapshotMode.ROTATING:
            return self._next_page(rank(records))
        return rank(r for r in records if not is_negligible(r))[: self._limit]

    def _next_page(self, ordered: list[ProcessRecord]) -> list[ProcessRecord]:
        total = len(ordered)
        if total == 0:
            self._offset = 0
            return []
        start = self._offset % total
        size = min(self._limit, total)
        page = [ordered[(start + i) % total] for i in range(size)]
        self._offset = (start + size) % total
        return page
