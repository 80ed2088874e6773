"""Convert aggregated counts into gauge observations and hand them to the exporter"""
import time
from typing import List, Optional
from .errors import ExporterError, ReportError
from .models import AggregatedCount, GaugeObservation, MetricDescriptor, UNLABELED
from logging_config import get_logger


logger = get_logger(__name__)


def build_observations(descriptor: MetricDescriptor, counts: AggregatedCount,
                       timestamp: Optional[float] = None) -> List[GaugeObservation]:
    """Produce one observation per bucket, all stamped with the same instant"""
    now = timestamp if timestamp is not None else time.time()
    observations = []

    for label_value, count in counts.items():
        labels = {}
        if descriptor.is_labeled and label_value != UNLABELED:
            labels = {descriptor.labels[0]: label_value}

        observations.append(GaugeObservation(
            name=descriptor.name,
            value=float(count),
            labels=labels,
            timestamp=now,
        ))

    return observations


class Reporter:
    """Reports aggregated counts through a single exporter"""

    def __init__(self, exporter):
        self.exporter = exporter

    async def report(self, descriptor: MetricDescriptor, counts: AggregatedCount) -> List[GaugeObservation]:
        """Report the counts of one metric; an empty mapping is a no-op"""
        observations = build_observations(descriptor, counts)
        if not observations:
            logger.debug("Nothing to report", metric=descriptor.name, event_type="report_skipped")
            return []

        try:
            await self.exporter.export(descriptor, observations)
        except ReportError:
            raise
        except ExporterError as e:
            raise ReportError(descriptor.name, str(e)) from e

        logger.debug(
            "Reported metric",
            metric=descriptor.name,
            observations=len(observations),
            event_type="report_complete"
        )
        return observations
