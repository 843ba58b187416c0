"""Tests for the TelemetryService wiring."""

import logging

import pytest

from fakes import FakeProvider
from hostpulse.config import ServerConfig
from hostpulse.logger import setup_logging
from hostpulse.provider import Liveness
from hostpulse.service import TelemetryService
from hostpulse.snapshotter import SnapshotMode


@pytest.fixture
def service():
    return TelemetryService(ServerConfig(grace_period=0.01, push_interval=10.0), provider=FakeProvider())


def test_builds_from_config():
    """Test the service wires its parts from the config."""
    config = ServerConfig(process_limit=3, process_mode="rotating", push_interval=2.0, grace_period=0.5)

    service = TelemetryService(config, provider=FakeProvider())

    assert service.snapshotter.limit == 3
    assert service.snapshotter.mode is SnapshotMode.ROTATING
    assert service.broadcaster.interval == 2.0
    assert service.controller.grace_period == 0.5


@pytest.mark.asyncio
async def test_confirmed_kill_reaches_sessions(service):
    """Test a confirmed kill is pushed to open sessions."""
    service.provider.liveness[33000] = Liveness.EXISTS
    messages = []

    async def send(event, data):
        messages.append(event)

    await service.broadcaster.open_session(send)
    await service.control.terminate(33000)
    await service.controller.drain()
    await service.stop()

    assert "processKilled" in messages
    assert messages[-1] == "processData"


@pytest.mark.asyncio
async def test_stop_closes_everything(service):
    """Test stop closes sessions and settles pending terminations."""
    service.start()
    service.provider.liveness[33001] = Liveness.EXISTS
    session = await service.broadcaster.open_session(_discard)
    request = await service.controller.terminate(33001)

    await service.stop()

    assert not session.live
    assert service.broadcaster.sessions == []
    assert request.state.is_terminal


async def _discard(event, data):
    return None


def test_setup_logging_adds_handlers_once(tmp_path):
    """Test repeated logging setup does not duplicate handlers."""
    logger = setup_logging("DEBUG", str(tmp_path / "logs"))
    try:
        setup_logging("DEBUG", str(tmp_path / "logs"))

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert (tmp_path / "logs" / "hostpulse.log").exists()
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
