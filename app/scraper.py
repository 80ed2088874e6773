"""Periodic scrape loop: fetch, aggregate and report every configured metric"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List
from .context import ExporterContext
from metrics.aggregator import aggregate
from metrics.errors import FetchError, ReportError
from metrics.registry import ResourceMetric
from metrics.reporter import Reporter
from logging_config import get_logger, log_error, log_scrape_cycle


logger = get_logger(__name__)


class ScrapeState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    AGGREGATING = "aggregating"
    REPORTING = "reporting"
    SLEEPING = "sleeping"


@dataclass
class CycleResult:
    """Outcome of one pass over all metrics"""
    reported: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    duration: float = 0


class ScrapeLoop:
    """Runs scrape cycles forever, one metric at a time"""

    def __init__(self, context: ExporterContext):
        self.context = context
        self.reporter = Reporter(context.exporter)
        self.state = ScrapeState.IDLE
        self.current_metric = None

    async def run_forever(self) -> None:
        """Scrape, then sleep the configured interval, until cancelled"""
        interval = self.context.config.scrape_interval
        while True:
            await self.run_cycle()
            self.state = ScrapeState.SLEEPING
            await asyncio.sleep(interval)

    async def run_cycle(self) -> CycleResult:
        """Process every enabled metric once; a failing metric never aborts the cycle"""
        logger.info("Starting scrape cycle", event_type="scrape_start")
        start_time = time.time()
        result = CycleResult()

        for metric in self.context.registry.metrics:
            try:
                await self.process_metric(metric)
                result.reported.append(metric.name)
            except (FetchError, ReportError) as e:
                result.failed.append(metric.name)
                logger.warning(
                    "Metric skipped this cycle",
                    metric=metric.name,
                    kind=metric.kind.value,
                    stage=self.state.value,
                    error=str(e),
                    error_type=type(e).__name__,
                    output=getattr(e, 'output', None),
                    event_type="metric_error"
                )
            except Exception as e:
                result.failed.append(metric.name)
                log_error(logger, e, {"component": "scrape_loop", "metric": metric.name, "kind": metric.kind.value})
            finally:
                self.current_metric = None

        result.duration = time.time() - start_time
        stats = self.context.stats
        stats.cycle_count += 1
        stats.metric_errors += len(result.failed)
        stats.last_cycle_time = time.time()
        stats.last_cycle_duration = result.duration
        stats.last_failed_metrics = list(result.failed)

        log_scrape_cycle(logger, len(result.reported), len(result.failed), result.duration)
        return result

    async def process_metric(self, metric: ResourceMetric) -> None:
        """Fetch, aggregate and report a single metric"""
        self.current_metric = metric.name
        project = self.context.config.project

        self.state = ScrapeState.FETCHING
        records = await self.context.fetcher.fetch_async(project, metric.kind)
        logger.debug("Fetched records", metric=metric.name, kind=metric.kind.value, count=len(records))

        self.state = ScrapeState.AGGREGATING
        counts = aggregate(records, metric.selector)

        self.state = ScrapeState.REPORTING
        await self.reporter.report(metric.descriptor, counts)
