"""Metrics registry holding the resource metric table and declaring it to the sink"""
from dataclasses import dataclass
from typing import Dict, List, Optional
from .aggregator import LabelSelector, label_selector
from .errors import RegistrationError
from .models import MetricDescriptor, ResourceKind
from logging_config import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class ResourceMetric:
    """One published metric: which collection to list and how to group it"""
    kind: ResourceKind
    descriptor: MetricDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def selector(self) -> Optional[LabelSelector]:
        """Label selector for the descriptor's label, None when unlabeled"""
        if not self.descriptor.labels:
            return None
        return label_selector(self.descriptor.labels[0])


DEFAULT_METRICS: List[ResourceMetric] = [
    ResourceMetric(
        ResourceKind.FIREWALL_RULES,
        MetricDescriptor(
            name="gce_firewall_rules",
            description="Count of firewall rules in the project, labeled by network",
            labels=("network",),
        ),
    ),
    ResourceMetric(
        ResourceKind.TARGET_POOLS,
        MetricDescriptor(
            name="gce_target_pools",
            description="Count of target pools in the project",
        ),
    ),
    ResourceMetric(
        ResourceKind.FORWARDING_RULES,
        MetricDescriptor(
            name="gce_forwarding_rules",
            description="Count of regional forwarding rules in the project",
        ),
    ),
    ResourceMetric(
        ResourceKind.GLOBAL_FORWARDING_RULES,
        MetricDescriptor(
            name="gce_global_forwarding_rules",
            description="Count of global forwarding rules in the project",
        ),
    ),
    ResourceMetric(
        ResourceKind.ADDRESSES,
        MetricDescriptor(
            name="gce_ip_addresses",
            description="Count of regional IP addresses in the project, labeled by status",
            labels=("status",),
        ),
    ),
    ResourceMetric(
        ResourceKind.GLOBAL_ADDRESSES,
        MetricDescriptor(
            name="gce_global_ip_addresses",
            description="Count of global IP addresses in the project, labeled by status",
            labels=("status",),
        ),
    ),
    ResourceMetric(
        ResourceKind.NETWORKS,
        MetricDescriptor(
            name="gce_networks",
            description="Count of networks in the project",
        ),
    ),
    ResourceMetric(
        ResourceKind.ROUTES,
        MetricDescriptor(
            name="gce_routes",
            description="Count of routes in the project, labeled by network",
            labels=("network",),
        ),
    ),
]


class MetricsRegistry:
    """Central registry for all resource metrics"""

    def __init__(self, config=None, metrics: Optional[List[ResourceMetric]] = None):
        self.config = config
        self._metrics: Dict[str, ResourceMetric] = {}
        self.declared = False

        for metric in metrics if metrics is not None else DEFAULT_METRICS:
            self.register_metric(metric)

    def register_metric(self, metric: ResourceMetric):
        """Register a new resource metric"""
        if self.declared:
            raise RegistrationError(metric.name, "metrics are already declared")
        if len(metric.descriptor.labels) > 1:
            raise ValueError(f"Metric {metric.name} has more than one label dimension")
        if metric.name in self._metrics:
            raise ValueError(f"Metric {metric.name} is already registered")

        self._metrics[metric.name] = metric
        logger.debug("Registered metric", metric=metric.name, kind=metric.kind.value)

    def is_enabled(self, metric: ResourceMetric) -> bool:
        """Check if the metric's resource kind is enabled in config"""
        if self.config and hasattr(self.config, 'is_resource_enabled'):
            return self.config.is_resource_enabled(metric.kind)
        return True

    @property
    def metrics(self) -> List[ResourceMetric]:
        """Enabled metrics in registration order"""
        return [metric for metric in self._metrics.values() if self.is_enabled(metric)]

    @property
    def descriptors(self) -> List[MetricDescriptor]:
        return [metric.descriptor for metric in self.metrics]

    def get_metric(self, name: str) -> Optional[ResourceMetric]:
        """Get metric by name"""
        return self._metrics.get(name)

    def list_metrics(self) -> List[str]:
        """List all registered metric names"""
        return list(self._metrics.keys())

    async def declare(self, exporter) -> None:
        """Declare every enabled metric with the exporter, once, before scraping starts"""
        if self.declared:
            return

        descriptors = self.descriptors
        await exporter.declare(descriptors)
        self.declared = True
        logger.info(
            "Metrics declared",
            metrics=[d.name for d in descriptors],
            event_type="metrics_declared"
        )

    def get_metric_status(self) -> Dict[str, Dict]:
        """Get status information for all registered metrics"""
        status = {}

        for name, metric in self._metrics.items():
            status[name] = {
                "enabled": self.is_enabled(metric),
                "kind": metric.kind.value,
                "labels": list(metric.descriptor.labels),
                "value_type": metric.descriptor.value_type.value,
                "help": metric.descriptor.description,
            }

        return status
