"""Tests for the SampleCache and CachedValue."""

import asyncio

import pytest

from hostpulse.cache import CachedValue


class TestMetricsFreshness:
    """Tests for TTL handling of the metrics key."""

    @pytest.mark.asyncio
    async def test_reads_within_ttl_return_same_snapshot(self, cache, provider, clock):
        """Test reads inside the TTL return the cached snapshot."""
        first = await cache.get_metrics()
        clock.advance(0.5)
        second = await cache.get_metrics()

        assert second is first
        assert provider.calls["cpu_load"] == 1

    @pytest.mark.asyncio
    async def test_read_after_ttl_recomputes(self, cache, provider, clock):
        """Test a read after the TTL refreshes the value."""
        first = await cache.get_metrics()
        clock.advance(1.0)
        second = await cache.get_metrics()

        assert second is not first
        assert second.timestamp > first.timestamp
        assert provider.calls["cpu_load"] == 2

    @pytest.mark.asyncio
    async def test_force_bypasses_ttl(self, cache, provider):
        """Test a forced read refreshes a fresh value."""
        first = await cache.get_metrics()
        second = await cache.get_metrics(force=True)

        assert second is not first
        assert provider.calls["cpu_load"] == 2

    @pytest.mark.asyncio
    async def test_keys_have_independent_ttls(self, cache, provider, clock):
        """Test each cached key expires on its own TTL."""
        await cache.get_metrics()
        await cache.get_processes()
        clock.advance(5.0)
        await cache.get_metrics()
        await cache.get_processes()

        assert provider.calls["cpu_load"] == 2
        assert provider.calls["process_table"] == 1


class TestCoalescing:
    """Tests for single-flight refresh."""

    @pytest.mark.asyncio
    async def test_concurrent_stale_reads_refresh_once(self, cache, provider):
        """Test concurrent stale reads share one refresh."""
        provider.delay = 0.05

        results = await asyncio.gather(*(cache.get_metrics() for _ in range(10)))

        assert provider.calls["cpu_load"] == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_forced_read_joins_inflight_refresh(self, cache, provider):
        """Test a forced read joins a refresh already running."""
        provider.delay = 0.05

        a, b = await asyncio.gather(cache.get_processes(), cache.get_processes(force=True))

        assert a is b
        assert provider.calls["process_table"] == 1

    @pytest.mark.asyncio
    async def test_different_keys_refresh_concurrently(self, cache, provider):
        """Test refreshes of different keys do not wait on each other."""
        provider.delay = 0.1
        loop = asyncio.get_running_loop()
        started = loop.time()

        await asyncio.gather(cache.get_metrics(), cache.get_processes())

        # Serial refreshes would take at least 0.2s
        assert loop.time() - started < 0.19

    @pytest.mark.asyncio
    async def test_cancelled_reader_does_not_cancel_refresh(self, cache, provider):
        """Test cancelling one reader leaves the shared refresh running."""
        provider.delay = 0.05
        doomed = asyncio.create_task(cache.get_metrics())
        survivor = asyncio.create_task(cache.get_metrics())
        await asyncio.sleep(0.01)

        doomed.cancel()
        snapshot = await survivor

        assert snapshot is not None
        assert provider.calls["cpu_load"] == 1


class TestInvalidation:
    """Tests for process cache invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_forces_recompute(self, cache, provider):
        """Test invalidate makes the next read refresh."""
        first = await cache.get_processes()
        cache.invalidate_processes()
        second = await cache.get_processes()

        assert provider.calls["process_table"] == 2
        assert second is not first

    @pytest.mark.asyncio
    async def test_invalidate_during_refresh_starts_new_one(self, cache, provider):
        """Test an invalidate during a refresh discards its result."""
        provider.delay = 0.05
        before = asyncio.create_task(cache.get_processes())
        await asyncio.sleep(0.01)

        cache.invalidate_processes()
        after = await cache.get_processes()
        await before

        assert provider.calls["process_table"] == 2
        assert cache.processes.is_fresh()
        assert after is cache.processes.entry.value


class TestProviderFailure:
    """Tests for availability under provider failure."""

    @pytest.mark.asyncio
    async def test_serves_stale_value(self, cache, provider, clock):
        """Test a failed refresh serves the last good value."""
        first = await cache.get_metrics()
        provider.fail.update(
            {"cpu_load", "cpu_counts", "cpu_speed", "temperature", "memory", "disks", "boot_time", "load_average"}
        )
        clock.advance(2.0)

        assert await cache.get_metrics() is first

    @pytest.mark.asyncio
    async def test_no_value_yet_returns_default(self, cache, provider):
        """Test a failed first refresh returns the default."""
        provider.fail.add("process_table")

        assert await cache.get_processes() == []

    @pytest.mark.asyncio
    async def test_no_metrics_yet_returns_none(self, cache, provider):
        """Test metrics are None until a sample succeeds."""
        provider.fail.update(
            {"cpu_load", "cpu_counts", "cpu_speed", "temperature", "memory", "disks", "boot_time", "load_average"}
        )

        assert await cache.get_metrics() is None

    @pytest.mark.asyncio
    async def test_failed_refresh_is_retried_next_read(self, cache, provider):
        """Test a failed refresh is retried on the next read."""
        provider.fail.add("system_info")
        assert await cache.get_system_info() is None

        provider.fail.clear()

        assert (await cache.get_system_info()).os.hostname == "box"


@pytest.mark.asyncio
async def test_cached_value_with_plain_loader(clock):
    """Test CachedValue works with any coroutine loader."""
    calls = []

    async def load():
        calls.append(clock.now)
        return len(calls)

    value = CachedValue("counter", load, ttl=10.0, default_factory=lambda: 0, clock=clock)

    assert await value.get() == 1
    assert await value.get() == 1
    clock.advance(10.0)
    assert await value.get() == 2
    assert value.entry.captured_at == clock.now
