"""Base fetcher class and factory"""
import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import List
from metrics.models import FetchTransport, ResourceKind, ResourceRecord


class BaseFetcher(ABC):
    """Base class for resource inventory fetchers"""

    def __init__(self, config=None, name: str = ""):
        self.config = config
        self._name = name
        # A single worker keeps fetches sequential while the event loop stays free
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{name}_fetcher")

    @abstractmethod
    def fetch(self, project: str, kind: ResourceKind) -> List[ResourceRecord]:
        """List resources of one kind, raising FetchError on failure"""
        pass

    async def fetch_async(self, project: str, kind: ResourceKind) -> List[ResourceRecord]:
        """Async version of fetch method"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.fetch, project, kind)

    @property
    def name(self) -> str:
        return self._name

    def cleanup(self):
        """Cleanup resources"""
        self._executor.shutdown(wait=False)


def create_fetcher(config) -> BaseFetcher:
    """Create a fetcher for the configured transport"""
    if config.fetch_transport == FetchTransport.GCLOUD:
        from .gcloud import GcloudFetcher
        return GcloudFetcher(config)
    elif config.fetch_transport == FetchTransport.API:
        from .compute_api import ComputeApiFetcher
        return ComputeApiFetcher(config)
    else:
        raise ValueError(f"Unsupported fetch transport: {config.fetch_transport}")
