"""Resource and metric data models"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class ResourceKind(Enum):
    """Compute Engine resource collections that can be counted"""
    FIREWALL_RULES = "firewall-rules"
    TARGET_POOLS = "target-pools"
    FORWARDING_RULES = "forwarding-rules"
    GLOBAL_FORWARDING_RULES = "global-forwarding-rules"
    ADDRESSES = "addresses"
    GLOBAL_ADDRESSES = "global-addresses"
    NETWORKS = "networks"
    ROUTES = "routes"


class ExportFormat(Enum):
    """Where aggregated counts are reported"""
    PROMETHEUS = "prometheus"
    CLOUD_MONITORING = "cloud_monitoring"
    OTLP = "otlp"


class FetchTransport(Enum):
    """How resource lists are retrieved"""
    GCLOUD = "gcloud"
    API = "api"


class ValueType(Enum):
    """Numeric type of a metric, fixed for the lifetime of the process"""
    INT64 = "INT64"
    DOUBLE = "DOUBLE"


# Label value used when a record does not carry the grouped field
UNKNOWN_LABEL = "unknown"

# Bucket key of unlabeled metrics
UNLABELED = ""

AggregatedCount = Dict[str, int]


def short_name(value: Optional[str]) -> str:
    """Reduce a resource URL to its last path segment"""
    if not value:
        return ""
    return value.rstrip("/").rsplit("/", 1)[-1]


@dataclass
class ResourceRecord:
    """A single inventory item, reduced to the fields used for grouping"""
    kind: ResourceKind
    name: str = ""
    network: str = ""
    status: str = ""
    region: str = ""

    @classmethod
    def from_dict(cls, kind: ResourceKind, data: Mapping[str, Any]) -> "ResourceRecord":
        """Build a record from a gcloud JSON item"""
        return cls(
            kind=kind,
            name=str(data.get("name") or ""),
            network=short_name(data.get("network")),
            status=str(data.get("status") or ""),
            region=short_name(data.get("region")),
        )

    @classmethod
    def from_message(cls, kind: ResourceKind, message: Any) -> "ResourceRecord":
        """Build a record from a Compute API message"""
        return cls(
            kind=kind,
            name=getattr(message, "name", "") or "",
            network=short_name(getattr(message, "network", "")),
            status=getattr(message, "status", "") or "",
            region=short_name(getattr(message, "region", "")),
        )


@dataclass(frozen=True)
class MetricDescriptor:
    """Declared shape of a published metric"""
    name: str
    description: str
    labels: Tuple[str, ...] = ()
    value_type: ValueType = ValueType.DOUBLE

    @property
    def is_labeled(self) -> bool:
        return bool(self.labels)


@dataclass
class GaugeObservation:
    """A single point-in-time gauge value"""
    name: str
    value: float
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[float] = None

    def __post_init__(self):
        # Ensure labels is never None
        if self.labels is None:
            self.labels = {}

    @property
    def label_value(self) -> Optional[str]:
        """Value of the single label dimension, None when unlabeled"""
        if not self.labels:
            return None
        return next(iter(self.labels.values()))
