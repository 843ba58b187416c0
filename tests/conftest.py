"""Shared fixtures for hostpulse tests."""

import pytest

from fakes import FakeClock, FakeProvider
from hostpulse.cache import SampleCache
from hostpulse.monitor import SystemMonitor
from hostpulse.snapshotter import ProcessSnapshotter


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def monitor(provider, clock):
    return SystemMonitor(provider, ProcessSnapshotter(), clock=clock)


@pytest.fixture
def cache(monitor, clock):
    return SampleCache(monitor, metrics_ttl=1.0, processes_ttl=30.0, system_info_ttl=300.0, clock=clock)
