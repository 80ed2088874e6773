"""OTLP exporter using direct gRPC communication"""
import time
import grpc
from typing import Dict, List
from opentelemetry.proto.metrics.v1 import metrics_pb2
from opentelemetry.proto.collector.metrics.v1 import metrics_service_pb2_grpc
from opentelemetry.proto.collector.metrics.v1 import metrics_service_pb2
from opentelemetry.proto.common.v1 import common_pb2
from opentelemetry.proto.resource.v1 import resource_pb2
from .base import BaseExporter
from metrics.errors import ReportError
from metrics.models import GaugeObservation, MetricDescriptor, ValueType
from config import Config
from logging_config import get_logger


logger = get_logger(__name__)


class OTLPExporter(BaseExporter):
    """Push-style exporter sending each metric's batch as an OTLP gauge"""

    def __init__(self, config: Config):
        super().__init__(config)
        self.channel = None
        self.stub = None
        self.descriptors: Dict[str, MetricDescriptor] = {}
        self._healthy = False

    async def start(self) -> None:
        """Initialize gRPC connection"""
        try:
            if self.config.otel_insecure:
                self.channel = grpc.aio.insecure_channel(self.config.otel_endpoint)
            else:
                credentials = grpc.ssl_channel_credentials()
                self.channel = grpc.aio.secure_channel(self.config.otel_endpoint, credentials)

            self.stub = metrics_service_pb2_grpc.MetricsServiceStub(self.channel)
            self._healthy = True

            logger.info(
                "OTLP exporter started",
                endpoint=self.config.otel_endpoint,
                insecure=self.config.otel_insecure
            )
        except Exception as e:
            logger.error(f"Failed to start OTLP exporter: {e}")
            self._healthy = False
            raise

    async def declare(self, descriptors: List[MetricDescriptor]) -> None:
        """OTLP needs no registration; descriptors only serve as metric templates"""
        for descriptor in descriptors:
            self.descriptors[descriptor.name] = descriptor

    async def export(self, descriptor: MetricDescriptor, observations: List[GaugeObservation]) -> None:
        """Export one metric via OTLP gRPC"""
        if descriptor.name not in self.descriptors:
            raise ReportError(descriptor.name, "metric was not declared")
        if not self.stub:
            raise ReportError(descriptor.name, "OTLP exporter is not started")

        scope_metrics = metrics_pb2.ScopeMetrics(
            scope=common_pb2.InstrumentationScope(
                name=self.config.service_name,
                version=self.config.service_version
            ),
            metrics=[self._create_gauge_metric(descriptor, observations)]
        )
        request = metrics_service_pb2.ExportMetricsServiceRequest(
            resource_metrics=[metrics_pb2.ResourceMetrics(
                resource=self._create_resource(),
                scope_metrics=[scope_metrics]
            )]
        )

        try:
            response = await self.stub.Export(
                request,
                timeout=10.0,
                metadata=[(k.lower(), v) for k, v in self.config.otel_headers.items()] or None
            )
        except grpc.RpcError as e:
            self._healthy = False
            logger.error(
                "gRPC error during OTLP export",
                metric=descriptor.name,
                grpc_code=e.code().name if hasattr(e, 'code') else 'unknown',
                endpoint=self.config.otel_endpoint,
                event_type="otlp_grpc_error"
            )
            raise ReportError(descriptor.name, str(e)) from e

        self._healthy = True
        rejected = response.partial_success.rejected_data_points if response.HasField("partial_success") else 0
        if rejected:
            raise ReportError(
                descriptor.name,
                f"{rejected} data points rejected: {response.partial_success.error_message}"
            )

        logger.debug(
            "Exported metric via OTLP",
            metric=descriptor.name,
            data_points=len(observations),
            event_type="otlp_export"
        )

    async def shutdown(self) -> None:
        """Cleanup gRPC resources"""
        if self.channel:
            await self.channel.close()
        self._healthy = False
        logger.info("OTLP exporter shutdown")

    def is_healthy(self) -> bool:
        return self._healthy

    def _create_gauge_metric(self, descriptor: MetricDescriptor, observations: List[GaugeObservation]) -> metrics_pb2.Metric:
        """Create OTLP gauge metric"""
        data_points = []
        for observation in observations:
            time_unix_nano = int((observation.timestamp or time.time()) * 1_000_000_000)
            data_point = metrics_pb2.NumberDataPoint(
                attributes=self._convert_labels_to_attributes(observation.labels),
                time_unix_nano=time_unix_nano,
            )
            if descriptor.value_type == ValueType.INT64:
                data_point.as_int = int(observation.value)
            else:
                data_point.as_double = float(observation.value)
            data_points.append(data_point)

        return metrics_pb2.Metric(
            name=descriptor.name,
            description=descriptor.description,
            unit="1",
            gauge=metrics_pb2.Gauge(data_points=data_points)
        )

    def _convert_labels_to_attributes(self, labels: Dict[str, str]) -> List[common_pb2.KeyValue]:
        """Convert metric labels to OTLP attributes"""
        return [
            common_pb2.KeyValue(key=key, value=common_pb2.AnyValue(string_value=str(value)))
            for key, value in labels.items()
        ]

    def _create_resource(self) -> resource_pb2.Resource:
        """Create OTLP resource"""
        return resource_pb2.Resource(
            attributes=self._convert_labels_to_attributes(self.config.get_otel_resource_attributes())
        )
