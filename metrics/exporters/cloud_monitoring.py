"""Cloud Monitoring exporter writing custom metric time series"""
import re
import time
from typing import Dict, List, Optional
from google.api import label_pb2 as ga_label
from google.api import metric_pb2 as ga_metric
from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud import monitoring_v3
from .base import BaseExporter
from metrics.errors import RegistrationError, ReportError
from metrics.models import GaugeObservation, MetricDescriptor, ValueType
from config import Config
from logging_config import get_logger


logger = get_logger(__name__)

# create_time_series accepts at most this many series per call
MAX_TIME_SERIES_PER_REQUEST = 200

_VALUE_TYPES = {
    ValueType.INT64: ga_metric.MetricDescriptor.ValueType.INT64,
    ValueType.DOUBLE: ga_metric.MetricDescriptor.ValueType.DOUBLE,
}

_INVALID_LABEL_CHARS = re.compile(r"[^a-z0-9_]")


def label_key(label: str) -> str:
    """Translate a label name into a valid Cloud Monitoring label key"""
    key = _INVALID_LABEL_CHARS.sub("_", label.lower())
    if not key or not key[0].isalpha():
        key = f"label_{key}"
    return key[:100]


class CloudMonitoringExporter(BaseExporter):
    """Push-style exporter for Cloud Monitoring custom metrics"""

    def __init__(self, config: Config, client: Optional[monitoring_v3.MetricServiceAsyncClient] = None):
        super().__init__(config)
        self.client = client
        self.project_name = f"projects/{config.project}"
        self.descriptors: Dict[str, MetricDescriptor] = {}
        self._healthy = False

    def metric_type(self, name: str) -> str:
        """Namespaced metric type for a metric name"""
        return f"{self.config.metric_prefix.rstrip('/')}/{name}"

    async def start(self) -> None:
        if self.client is None:
            self.client = monitoring_v3.MetricServiceAsyncClient()
        self._healthy = True
        logger.info(
            "Cloud Monitoring exporter started",
            project=self.config.project,
            metric_prefix=self.config.metric_prefix
        )

    async def declare(self, descriptors: List[MetricDescriptor]) -> None:
        """Create each metric descriptor unless an identical one already exists"""
        for descriptor in descriptors:
            await self._declare_one(descriptor)
            self.descriptors[descriptor.name] = descriptor

    async def _declare_one(self, descriptor: MetricDescriptor) -> None:
        metric_type = self.metric_type(descriptor.name)
        wanted_type = _VALUE_TYPES[descriptor.value_type]

        try:
            existing = await self.client.get_metric_descriptor(
                name=f"{self.project_name}/metricDescriptors/{metric_type}"
            )
        except NotFound:
            existing = None
        except GoogleAPICallError as e:
            raise RegistrationError(descriptor.name, f"lookup failed: {e}") from e

        if existing is not None:
            if existing.value_type != wanted_type:
                raise RegistrationError(
                    descriptor.name,
                    f"already registered with value type {ga_metric.MetricDescriptor.ValueType.Name(existing.value_type)}"
                )
            if existing.metric_kind != ga_metric.MetricDescriptor.MetricKind.GAUGE:
                raise RegistrationError(
                    descriptor.name,
                    f"already registered with metric kind {ga_metric.MetricDescriptor.MetricKind.Name(existing.metric_kind)}"
                )
            existing_keys = sorted(label.key for label in existing.labels)
            wanted_keys = sorted(label_key(label) for label in descriptor.labels)
            if existing_keys != wanted_keys:
                raise RegistrationError(
                    descriptor.name,
                    f"already registered with label keys {existing_keys}, expected {wanted_keys}"
                )
            logger.info("Metric descriptor exists", metric_type=metric_type, event_type="descriptor_exists")
            return

        request = ga_metric.MetricDescriptor(
            type=metric_type,
            display_name=descriptor.name,
            description=descriptor.description,
            metric_kind=ga_metric.MetricDescriptor.MetricKind.GAUGE,
            value_type=wanted_type,
            unit="1",
        )
        for label in descriptor.labels:
            request.labels.append(ga_label.LabelDescriptor(
                key=label_key(label),
                value_type=ga_label.LabelDescriptor.ValueType.STRING,
                description=label,
            ))

        try:
            created = await self.client.create_metric_descriptor(
                name=self.project_name, metric_descriptor=request
            )
        except GoogleAPICallError as e:
            raise RegistrationError(descriptor.name, str(e)) from e

        logger.info("Created metric descriptor", metric_type=created.type, event_type="descriptor_created")

    async def export(self, descriptor: MetricDescriptor, observations: List[GaugeObservation]) -> None:
        """Write the batch as gauge points whose interval starts and ends now"""
        if descriptor.name not in self.descriptors:
            raise ReportError(descriptor.name, "metric was not declared")

        series = [self._create_time_series(descriptor, o) for o in observations]

        for start in range(0, len(series), MAX_TIME_SERIES_PER_REQUEST):
            batch = series[start:start + MAX_TIME_SERIES_PER_REQUEST]
            try:
                await self.client.create_time_series(name=self.project_name, time_series=batch)
            except GoogleAPICallError as e:
                logger.error(
                    "Cloud Monitoring write failed",
                    metric=descriptor.name,
                    error=str(e),
                    event_type="cloud_monitoring_write_error"
                )
                self._healthy = False
                raise ReportError(descriptor.name, str(e)) from e

        self._healthy = True
        logger.debug("Wrote time series", metric=descriptor.name, series=len(series))

    def _create_time_series(self, descriptor: MetricDescriptor, observation: GaugeObservation) -> monitoring_v3.TimeSeries:
        now = observation.timestamp or time.time()
        seconds = int(now)
        nanos = int((now - seconds) * 10**9)
        instant = {"seconds": seconds, "nanos": nanos}

        if descriptor.value_type == ValueType.INT64:
            value = {"int64_value": int(observation.value)}
        else:
            value = {"double_value": float(observation.value)}

        series = monitoring_v3.TimeSeries()
        series.metric.type = self.metric_type(descriptor.name)
        for key, label_value in observation.labels.items():
            series.metric.labels[label_key(key)] = label_value
        series.resource.type = "global"
        series.resource.labels["project_id"] = self.config.project
        series.points = [monitoring_v3.Point({
            "interval": monitoring_v3.TimeInterval({"start_time": instant, "end_time": instant}),
            "value": value,
        })]
        return series

    async def shutdown(self) -> None:
        self._healthy = False
        logger.info("Cloud Monitoring exporter shutdown")

    def is_healthy(self) -> bool:
        return self._healthy
