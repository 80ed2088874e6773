"""Shared state owned by the scrape loop and the HTTP listener"""
import time
from dataclasses import dataclass, field
from typing import Optional
from config import Config
from fetchers.base import BaseFetcher, create_fetcher
from metrics.exporters.base import BaseExporter, ExporterFactory
from metrics.registry import MetricsRegistry


@dataclass
class ScrapeStats:
    """Counters updated by the scrape loop and read by status endpoints"""
    started_at: float = field(default_factory=time.time)
    last_cycle_time: float = 0
    cycle_count: int = 0
    metric_errors: int = 0
    last_cycle_duration: float = 0
    last_failed_metrics: list = field(default_factory=list)


@dataclass
class ExporterContext:
    """Everything built at startup: config, metric table, fetcher, exporter and stats"""
    config: Config
    registry: MetricsRegistry
    fetcher: BaseFetcher
    exporter: BaseExporter
    stats: ScrapeStats = field(default_factory=ScrapeStats)

    @classmethod
    def from_config(cls, config: Config, fetcher: Optional[BaseFetcher] = None,
                    exporter: Optional[BaseExporter] = None) -> "ExporterContext":
        """Build the context for a configuration"""
        return cls(
            config=config,
            registry=MetricsRegistry(config),
            fetcher=fetcher or create_fetcher(config),
            exporter=exporter or ExporterFactory.create_exporter(config),
        )

    async def start(self) -> None:
        """Start the exporter and declare every metric; failures here are fatal"""
        await self.exporter.start()
        await self.registry.declare(self.exporter)

    async def shutdown(self) -> None:
        await self.exporter.shutdown()
        self.fetcher.cleanup()
