"""Configuration management for the GCE resource exporter"""
import socket
from pathlib import Path
from typing import Dict, List, Literal, Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from metrics.models import ExportFormat, FetchTransport, ResourceKind


DEFAULT_RESOURCES = ",".join(kind.value for kind in ResourceKind)


class Config(BaseSettings):
    """Configuration class with Pydantic validation and environment-based settings"""

    # Core settings
    project: str = Field(..., description="Project whose resources are counted (required)")
    scrape_interval: int = Field(default=300, ge=1, description="Scrape interval in seconds")

    # Server settings
    metrics_port: int = Field(default=8400, ge=1, le=65535, description="Metrics server port")
    metrics_host: str = Field(default="0.0.0.0", description="Metrics server host")
    metrics_path: str = Field(default="/metrics", description="Path of the scrape endpoint")

    # Export configuration - mutually exclusive formats
    export_format: ExportFormat = Field(default=ExportFormat.PROMETHEUS, description="Export format")
    metric_prefix: str = Field(default="custom.googleapis.com", description="Cloud Monitoring custom metric prefix")

    # Fetch configuration
    fetch_transport: FetchTransport = Field(default=FetchTransport.GCLOUD, description="Inventory transport (gcloud or api)")
    gcloud_path: str = Field(default="gcloud", description="Path to the gcloud binary")
    fetch_timeout: Optional[float] = Field(default=None, gt=0, description="Per-call fetch timeout in seconds")
    enabled_resources_str: str = Field(
        default=DEFAULT_RESOURCES,
        description="Enabled resource kinds (comma-separated)"
    )

    # OpenTelemetry configuration (only used when export_format=otlp)
    otel_endpoint: Optional[str] = Field(default=None, description="OTLP gRPC endpoint")
    otel_insecure: bool = Field(default=True, description="Use insecure OTLP connection")
    otel_headers_str: str = Field(default="", description="OTLP headers (key=value, comma-separated)")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO", description="Log level")
    log_file: Optional[Path] = Field(default=None, description="Log file path")

    # Service settings
    service_name: str = Field(default="gce-resource-exporter", description="Service name")
    service_version: str = Field(default="1.0.0", description="Service version")
    instance_id: Optional[str] = Field(default=None, description="Instance ID (hostname if not specified)")

    enable_request_logging: bool = Field(default=True, description="Enable HTTP request logging")

    class Config:
        env_prefix = ""
        case_sensitive = False

    @validator('project')
    def validate_project(cls, v):
        """Reject an empty project"""
        v = v.strip()
        if not v:
            raise ValueError("PROJECT must be set to a non-empty project id")
        return v

    @validator('metrics_path')
    def validate_metrics_path(cls, v):
        if not v.startswith('/'):
            return f"/{v}"
        return v

    @validator('otel_endpoint', always=True)
    def validate_otel_endpoint(cls, v, values):
        """Validate OpenTelemetry endpoint when OTLP format is selected"""
        if values.get('export_format') == ExportFormat.OTLP and not v:
            raise ValueError("OTEL_ENDPOINT must be set when export_format is 'otlp'")
        return v

    @validator('enabled_resources_str')
    def validate_enabled_resources(cls, v):
        """Reject unknown resource kinds"""
        known = {kind.value for kind in ResourceKind}
        unknown = [item.strip() for item in v.split(',') if item.strip() and item.strip() not in known]
        if unknown:
            raise ValueError(f"Unknown resource kinds: {', '.join(unknown)}")
        return v

    @validator('log_file')
    def ensure_log_directory(cls, v):
        if isinstance(v, Path):
            v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def enabled_resources(self) -> List[ResourceKind]:
        """Get enabled resource kinds as a list"""
        return [ResourceKind(item.strip()) for item in self.enabled_resources_str.split(',') if item.strip()]

    @property
    def otel_headers(self) -> Dict[str, str]:
        """Parse OpenTelemetry headers"""
        headers = {}
        for header in self.otel_headers_str.split(','):
            if '=' in header:
                key, value = header.split('=', 1)
                headers[key.strip()] = value.strip()
        return headers

    def is_resource_enabled(self, kind: ResourceKind) -> bool:
        """Check if a specific resource kind is enabled"""
        return kind in self.enabled_resources

    def is_prometheus_format(self) -> bool:
        return self.export_format == ExportFormat.PROMETHEUS

    def get_instance_id(self) -> str:
        """Get or generate instance ID"""
        return self.instance_id or socket.gethostname()

    def get_otel_resource_attributes(self) -> Dict[str, str]:
        """Get OpenTelemetry resource attributes"""
        return {
            "service.name": self.service_name,
            "service.version": self.service_version,
            "service.instance.id": self.get_instance_id(),
            "cloud.provider": "gcp",
            "cloud.account.id": self.project,
        }
