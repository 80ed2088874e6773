"""Shared test fixtures"""
from typing import Dict, List, Union
import pytest

from config import Config
from fetchers.base import BaseFetcher
from metrics.models import ResourceKind, ResourceRecord


@pytest.fixture(autouse=True)
def project_env(monkeypatch):
    """Every test runs with a configured project unless it removes it"""
    monkeypatch.setenv("PROJECT", "test-project")


@pytest.fixture
def config():
    return Config()


class StaticFetcher(BaseFetcher):
    """Fetcher returning canned records, or raising a canned error, per kind"""

    def __init__(self, responses: Dict[ResourceKind, Union[List[ResourceRecord], Exception]] = None):
        super().__init__(None, "static")
        self.responses = dict(responses or {})
        self.calls = []

    def fetch(self, project, kind):
        self.calls.append((project, kind))
        response = self.responses.get(kind, [])
        if isinstance(response, Exception):
            raise response
        return list(response)


def records(kind: ResourceKind, **fields_list) -> List[ResourceRecord]:
    """Build records from parallel field lists, e.g. records(kind, network=["a", "b"])"""
    (field_name, values), = fields_list.items()
    return [ResourceRecord(kind=kind, **{field_name: value}) for value in values]


@pytest.fixture
def static_fetcher():
    return StaticFetcher()
