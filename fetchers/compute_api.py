"""Fetch resource lists through the Compute Engine API client"""
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import compute_v1
from .base import BaseFetcher
from metrics.errors import FetchError
from metrics.models import ResourceKind, ResourceRecord
from logging_config import get_logger


logger = get_logger(__name__)

# kind -> (client class, scoped list attribute for aggregated_list, None for plain list)
API_COLLECTIONS: Dict[ResourceKind, Tuple[Callable[[], Any], Any]] = {
    ResourceKind.FIREWALL_RULES: (compute_v1.FirewallsClient, None),
    ResourceKind.TARGET_POOLS: (compute_v1.TargetPoolsClient, "target_pools"),
    ResourceKind.FORWARDING_RULES: (compute_v1.ForwardingRulesClient, "forwarding_rules"),
    ResourceKind.GLOBAL_FORWARDING_RULES: (compute_v1.GlobalForwardingRulesClient, None),
    ResourceKind.ADDRESSES: (compute_v1.AddressesClient, "addresses"),
    ResourceKind.GLOBAL_ADDRESSES: (compute_v1.GlobalAddressesClient, None),
    ResourceKind.NETWORKS: (compute_v1.NetworksClient, None),
    ResourceKind.ROUTES: (compute_v1.RoutesClient, None),
}


class ComputeApiFetcher(BaseFetcher):
    """Lists resources with google-cloud-compute list and aggregated_list calls"""

    def __init__(self, config=None, clients: Optional[Dict[ResourceKind, Any]] = None):
        super().__init__(config, "compute_api")
        self._clients: Dict[ResourceKind, Any] = dict(clients or {})
        self.timeout = getattr(config, 'fetch_timeout', None)

    def _get_client(self, kind: ResourceKind):
        """Get or create the API client for a resource kind"""
        if kind not in self._clients:
            client_cls, _ = API_COLLECTIONS[kind]
            self._clients[kind] = client_cls()
        return self._clients[kind]

    def _iter_items(self, client, scoped_attr, project) -> Iterable[Any]:
        kwargs = {"project": project}
        if self.timeout:
            kwargs["timeout"] = self.timeout

        if scoped_attr is None:
            yield from client.list(**kwargs)
            return

        # aggregated_list yields (scope, scoped list) pairs; the "global" scope
        # belongs to the global kinds, which are listed on their own
        for scope, scoped_list in client.aggregated_list(**kwargs):
            if not scope.startswith("regions/"):
                continue
            yield from getattr(scoped_list, scoped_attr, [])

    def fetch(self, project: str, kind: ResourceKind) -> List[ResourceRecord]:
        try:
            client = self._get_client(kind)
            _, scoped_attr = API_COLLECTIONS[kind]
            records = [
                ResourceRecord.from_message(kind, item)
                for item in self._iter_items(client, scoped_attr, project)
            ]
        except (GoogleAPIError, GoogleAuthError) as e:
            raise FetchError(kind.value, f"{type(e).__name__}: {e}") from e

        logger.debug("Fetched resources", kind=kind.value, count=len(records))
        return records
