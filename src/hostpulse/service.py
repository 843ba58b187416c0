"""Service object wiring the hostpulse core together."""

import logging
from typing import Optional

from hostpulse.broadcaster import SessionBroadcaster
from hostpulse.cache import SampleCache
from hostpulse.config import ServerConfig
from hostpulse.control import ControlEndpoint
from hostpulse.monitor import SystemMonitor
from hostpulse.provider import MetricProvider
from hostpulse.snapshotter import ProcessSnapshotter, SnapshotMode
from hostpulse.termination import TerminationController

logger = logging.getLogger(__name__)


class TelemetryService:
    """
    Owns the caches, the session registry and the termination controller.

    Built once at startup and handed to every request handler.
    """

    def __init__(self, config: ServerConfig, provider: Optional[MetricProvider] = None) -> None:
        """
        Initialize the TelemetryService.

        Args:
            config: Server configuration.
            provider: Metric provider; defaults to the psutil-backed one.
        """
        self.config = config
        self.provider = provider or MetricProvider()
        self.snapshotter = ProcessSnapshotter(
            limit=config.process_limit,
            mode=SnapshotMode(config.process_mode),
        )
        self.monitor = SystemMonitor(self.provider, self.snapshotter)
        self.cache = SampleCache(
            self.monitor,
            metrics_ttl=config.metrics_ttl,
            processes_ttl=config.processes_ttl,
            system_info_ttl=config.system_info_ttl,
        )
        self.broadcaster = SessionBroadcaster(self.cache, interval=config.push_interval)
        self.controller = TerminationController(
            self.provider,
            self.cache,
            grace_period=config.grace_period,
            on_confirmed=self.broadcaster.broadcast_process_killed,
        )
        self.control = ControlEndpoint(self.controller)

    def start(self) -> None:
        """Prepare the provider before the first sample."""
        self.provider.prime()
        logger.info(
            "Telemetry service started (push every %.2fs, process view %s/%d)",
            self.config.push_interval,
            self.config.process_mode,
            self.config.process_limit,
        )

    async def stop(self) -> None:
        """Close all sessions and cancel pending escalations."""
        await self.broadcaster.close()
        await self.controller.close()
        logger.info("Telemetry service stopped")
