"""Base exporter interface and factory"""
import abc
from typing import List
from config import Config
from metrics.models import ExportFormat, GaugeObservation, MetricDescriptor


class BaseExporter(abc.ABC):
    """Abstract base class for metric sinks"""

    # Pull-style exporters serve their values on the local metrics endpoint
    serves_metrics = False

    def __init__(self, config: Config):
        self.config = config

    @abc.abstractmethod
    async def start(self) -> None:
        """Initialize the exporter"""
        pass

    @abc.abstractmethod
    async def declare(self, descriptors: List[MetricDescriptor]) -> None:
        """Register metric descriptors, raising RegistrationError on rejection"""
        pass

    @abc.abstractmethod
    async def export(self, descriptor: MetricDescriptor, observations: List[GaugeObservation]) -> None:
        """Write one metric's observations, raising ReportError on rejection"""
        pass

    @abc.abstractmethod
    async def shutdown(self) -> None:
        """Cleanup the exporter"""
        pass

    @abc.abstractmethod
    def is_healthy(self) -> bool:
        """Check if exporter is healthy"""
        pass

    def render(self) -> bytes:
        """Current values in text exposition format, for pull-style exporters"""
        raise NotImplementedError(f"{type(self).__name__} does not serve metrics")


class ExporterFactory:
    """Factory for creating exporters based on configuration"""

    @staticmethod
    def create_exporter(config: Config) -> BaseExporter:
        """Create an exporter based on the configured export format"""
        if config.export_format == ExportFormat.PROMETHEUS:
            from .prometheus import PrometheusExporter
            return PrometheusExporter(config)
        elif config.export_format == ExportFormat.CLOUD_MONITORING:
            from .cloud_monitoring import CloudMonitoringExporter
            return CloudMonitoringExporter(config)
        elif config.export_format == ExportFormat.OTLP:
            from .otlp import OTLPExporter
            return OTLPExporter(config)
        else:
            raise ValueError(f"Unsupported export format: {config.export_format}")
