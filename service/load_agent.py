"""
One measurement-and-publish cycle of the load reporting agent.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Callable, Optional

from config.config import ServerConfig
from core.bandwidth_sampler import BandwidthSampler
from core.connection_counter import ConnectionCounter
from core.load_aggregator import aggregate, connection_load_from_count
from core.logging_config import LoggerMixin, log_performance
from core.system_load import SystemLoadReader
from core.types import FallbackPolicy, LoadReport, LoadSample, PublishResult
from data.db import Database
from data.server_repository import ServerRepository
from service.load_publisher import LoadPublisher


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LoadAgent(LoggerMixin):
    """Measures the three load signals, aggregates them and publishes the score."""

    def __init__(
        self,
        config: ServerConfig,
        counter: ConnectionCounter,
        sampler: BandwidthSampler,
        system_reader: SystemLoadReader,
        publisher: Optional[LoadPublisher],
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.counter = counter
        self.sampler = sampler
        self.system_reader = system_reader
        self.publisher = publisher
        self.clock = clock
        self.last_publish: Optional[PublishResult] = None

    @classmethod
    def from_config(cls, config: ServerConfig) -> 'LoadAgent':
        """Wire the agent with the real host probes and MySQL publisher."""
        repository = ServerRepository(Database(config.database))
        return cls(
            config=config,
            counter=ConnectionCounter(),
            sampler=BandwidthSampler(),
            system_reader=SystemLoadReader(),
            publisher=LoadPublisher(repository),
        )

    def measure(self) -> LoadSample:
        connections = self.counter.measure(self.config)
        connection_load = connection_load_from_count(connections.count, self.config.max_connections)
        self.logger.info(
            "Connection load component",
            active_connections=connections.count,
            max_connections=self.config.max_connections,
            source=connections.source,
            load_percent=round(connection_load, 2),
        )

        bandwidth_load = self.sampler.sample_bandwidth_load(self.config.interfaces)
        self.logger.info(
            "Bandwidth load component",
            interfaces=self.config.interfaces,
            load_percent=round(bandwidth_load, 2),
        )

        system_load = self.system_reader.read_system_load()
        self.logger.info("System load component", load_percent=round(system_load, 2))

        return LoadSample(
            connection_load=connection_load,
            bandwidth_load=bandwidth_load,
            system_load=system_load,
            active_connections=connections.count,
            connections_estimated=connections.estimated,
        )

    def build_report(self, sample: LoadSample) -> LoadReport:
        load = aggregate(
            sample.connection_load,
            sample.bandwidth_load,
            sample.system_load,
            self.config.weights,
        )
        report = LoadReport(
            server_id=self.config.server_id,
            load=load,
            timestamp=self.clock(),
            sample=sample,
        )
        self.logger.info(
            "Calculated load",
            server_id=report.server_id,
            load=report.load,
            weights=asdict(self.config.weights),
        )
        return report

    def should_publish(self, sample: LoadSample) -> bool:
        if sample.connections_estimated and self.config.fallback_policy is FallbackPolicy.SKIP:
            self.logger.warning(
                "Connection count was estimated and fallback policy is 'skip'; not publishing",
                server_id=self.config.server_id,
            )
            return False
        return True

    @log_performance
    def run_once(self, publish: bool = True) -> Optional[LoadReport]:
        """
        Run one cycle.

        Returns the report, or None when the fallback policy suppressed
        publishing. Raises PublishConnectionError when the store is unreachable.
        """
        self.last_publish = None
        sample = self.measure()
        report = self.build_report(sample)
        if not publish or self.publisher is None:
            return report
        if not self.should_publish(sample):
            return None
        self.last_publish = self.publisher.publish(report.server_id, report.load)
        return report
