"""Tests for the ProcessSnapshotter."""

import math

import pytest

from hostpulse.models import RawProcess
from hostpulse.snapshotter import (
    DEFAULT_USER,
    ProcessSnapshotter,
    SnapshotMode,
    to_record,
    user_table,
)


def raw(pid: int, cpu: float, mem: float = 0.05, **kwargs) -> RawProcess:
    return RawProcess(pid=pid, name=f"proc{pid}", cpu_percent=cpu, memory_percent=mem, **kwargs)


class TestTopMode:
    """Tests for the top-consumers view."""

    def test_filters_and_ranks_with_stable_ties(self):
        """Test [10, 10, 30, 0.05] ranks as [30, 10, 10] with the 0.05 entry dropped."""
        table = [raw(1, 10.0), raw(2, 10.0), raw(3, 30.0), raw(4, 0.05)]

        result = ProcessSnapshotter().snapshot(table, {})

        assert [p.cpu for p in result] == [30.0, 10.0, 10.0]
        assert [p.pid for p in result] == [3, 1, 2]

    def test_memory_breaks_cpu_ties(self):
        """Test memory orders processes with equal cpu."""
        table = [raw(1, 5.0, mem=1.0), raw(2, 5.0, mem=3.0)]

        result = ProcessSnapshotter().snapshot(table, {})

        assert [p.pid for p in result] == [2, 1]

    def test_keeps_memory_heavy_idle_process(self):
        """Test a process with no CPU but real memory use is not negligible."""
        result = ProcessSnapshotter().snapshot([raw(1, 0.0, mem=4.0)], {})

        assert [p.pid for p in result] == [1]

    def test_caps_at_limit(self):
        """Test the top view is capped at the limit."""
        table = [raw(pid, float(pid)) for pid in range(1, 30)]

        result = ProcessSnapshotter(limit=10).snapshot(table, {})

        assert len(result) == 10
        assert result[0].pid == 29

    def test_resolves_user_from_table(self):
        """Test owners are looked up in the user table."""
        table = [raw(1, 5.0), raw(2, 5.0)]

        result = ProcessSnapshotter().snapshot(table, {1: "alice"})

        assert result[0].user == "alice"
        assert result[1].user == DEFAULT_USER

    def test_empty_table(self):
        """Test an empty table gives an empty view."""
        assert ProcessSnapshotter().snapshot([], {}) == []

    def test_invalid_limit(self):
        """Test a limit below one is rejected."""
        with pytest.raises(ValueError):
            ProcessSnapshotter(limit=0)


class TestRotatingMode:
    """Tests for the rotating-window view."""

    def test_pages_through_sorted_table(self):
        """Test rotating mode pages through the sorted table."""
        table = [raw(pid, float(pid)) for pid in range(1, 6)]  # Ranked 5,4,3,2,1
        snapshotter = ProcessSnapshotter(limit=2, mode=SnapshotMode.ROTATING)

        pages = [[p.pid for p in snapshotter.snapshot(table, {})] for _ in range(4)]

        assert pages == [[5, 4], [3, 2], [1, 5], [4, 3]]

    def test_offset_advances_modulo_length(self):
        """Test the rotating offset wraps around the table."""
        table = [raw(pid, float(pid)) for pid in range(1, 4)]
        snapshotter = ProcessSnapshotter(limit=2, mode=SnapshotMode.ROTATING)

        snapshotter.snapshot(table, {})
        assert snapshotter.offset == 2
        snapshotter.snapshot(table, {})
        assert snapshotter.offset == 1

    def test_includes_negligible_processes(self):
        """Test rotating mode keeps idle processes."""
        table = [raw(1, 0.0, mem=0.0)]
        snapshotter = ProcessSnapshotter(mode=SnapshotMode.ROTATING)

        assert [p.pid for p in snapshotter.snapshot(table, {})] == [1]

    def test_page_never_repeats_when_table_smaller_than_limit(self):
        """Test a short table is returned once per page."""
        table = [raw(1, 2.0), raw(2, 1.0)]
        snapshotter = ProcessSnapshotter(limit=5, mode=SnapshotMode.ROTATING)

        assert [p.pid for p in snapshotter.snapshot(table, {})] == [1, 2]

    def test_empty_table_resets_offset(self):
        """Test an empty table resets the rotating offset."""
        snapshotter = ProcessSnapshotter(limit=1, mode=SnapshotMode.ROTATING)
        snapshotter.snapshot([raw(1, 1.0), raw(2, 2.0)], {})

        assert snapshotter.snapshot([], {}) == []
        assert snapshotter.offset == 0


class TestToRecord:
    """Tests for coercion of raw provider rows."""

    def test_missing_fields_get_defaults(self):
        """Test missing raw fields get defaults."""
        record = to_record(RawProcess(pid=7), {})

        assert record.name == ""
        assert record.cpu == 0.0
        assert record.memory == 0.0
        assert record.memory_raw == 0
        assert record.status == "unknown"
        assert record.started == 0.0
        assert record.user == DEFAULT_USER
        assert record.command == ""
        assert record.path == ""

    def test_nan_values_become_zero(self):
        """Test NaN and infinite values become zero."""
        record = to_record(RawProcess(pid=7, cpu_percent=math.nan, memory_percent=math.inf), {})

        assert record.cpu == 0.0
        assert record.memory == 0.0

    def test_cpu_is_clamped(self):
        """Test cpu is clamped to 0-100."""
        assert to_record(RawProcess(pid=7, cpu_percent=380.0), {}).cpu == 100.0
        assert to_record(RawProcess(pid=7, cpu_percent=-3.0), {}).cpu == 0.0

    def test_command_line_joined(self):
        """Test the command line is joined with spaces."""
        record = to_record(RawProcess(pid=7, name="sh", cmdline=["sh", "-c", "true"], exe="/bin/sh"), {})

        assert record.command == "sh -c true"
        assert record.path == "/bin/sh"

    def test_command_falls_back_to_name(self):
        """Test an empty command line falls back to the name."""
        assert to_record(RawProcess(pid=7, name="kworker", cmdline=[]), {}).command == "kworker"


def test_user_table_from_rows():
    """Test owners are read from the rows themselves, skipping blanks."""
    table = [
        RawProcess(pid=1, username="root"),
        RawProcess(pid=2, username=""),
        RawProcess(pid=3),
    ]

    users = user_table(table)

    assert users == {1: "root"}
    assert [to_record(r, users).user for r in table] == ["root", DEFAULT_USER, DEFAULT_USER]
