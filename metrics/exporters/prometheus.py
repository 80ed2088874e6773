"""Prometheus exporter serving gauges from an in-process registry"""
from typing import Dict, List, Set, Tuple
from prometheus_client import CollectorRegistry, Gauge, generate_latest
from .base import BaseExporter
from metrics.errors import RegistrationError, ReportError
from metrics.models import GaugeObservation, MetricDescriptor
from config import Config
from logging_config import get_logger


logger = get_logger(__name__)


class PrometheusExporter(BaseExporter):
    """Pull-style exporter: gauges are set each cycle and read by the scrape endpoint"""

    serves_metrics = True

    def __init__(self, config: Config):
        super().__init__(config)
        self.registry = CollectorRegistry(auto_describe=True)
        self.gauges: Dict[str, Gauge] = {}
        self._label_sets: Dict[str, Set[Tuple[str, ...]]] = {}
        self._healthy = False

    async def start(self) -> None:
        self._healthy = True
        logger.info("Prometheus exporter started", metrics_path=self.config.metrics_path)

    async def declare(self, descriptors: List[MetricDescriptor]) -> None:
        """Create one gauge handle per descriptor"""
        for descriptor in descriptors:
            if descriptor.name in self.gauges:
                continue
            try:
                self.gauges[descriptor.name] = Gauge(
                    descriptor.name,
                    descriptor.description,
                    labelnames=descriptor.labels,
                    registry=self.registry,
                )
            except ValueError as e:
                raise RegistrationError(descriptor.name, str(e)) from e
            self._label_sets[descriptor.name] = set()
            logger.debug("Created gauge", metric=descriptor.name, labels=list(descriptor.labels))

    async def export(self, descriptor: MetricDescriptor, observations: List[GaugeObservation]) -> None:
        """Set gauge values, dropping label series absent from this batch"""
        gauge = self.gauges.get(descriptor.name)
        if gauge is None:
            raise ReportError(descriptor.name, "metric was not declared")

        if not descriptor.is_labeled:
            for observation in observations:
                gauge.set(observation.value)
            return

        current = set()
        for observation in observations:
            label_values = tuple(observation.labels.get(key, "") for key in descriptor.labels)
            gauge.labels(*label_values).set(observation.value)
            current.add(label_values)

        for stale in self._label_sets[descriptor.name] - current:
            try:
                gauge.remove(*stale)
            except KeyError:
                pass
        self._label_sets[descriptor.name] = current

    async def shutdown(self) -> None:
        self._healthy = False
        logger.info("Prometheus exporter shutdown")

    def is_healthy(self) -> bool:
        return self._healthy

    def render(self) -> bytes:
        return generate_latest(self.registry)
