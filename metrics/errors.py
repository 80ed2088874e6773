"""Error taxonomy for fetching, registering and reporting metrics

Fetch and report errors are contained to the metric being processed; the
scrape loop logs them and moves on. Registration errors only occur at
startup and are fatal.
"""
from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors"""


class FetchError(ExporterError):
    """Listing a resource collection failed"""

    def __init__(self, kind: str, message: str, output: Optional[str] = None):
        self.kind = kind
        self.output = output
        super().__init__(f"{kind}: {message}")


class DecodeError(FetchError):
    """The inventory response did not have the expected shape"""


class RegistrationError(ExporterError):
    """The sink rejected a metric declaration"""

    def __init__(self, metric: str, message: str):
        self.metric = metric
        super().__init__(f"{metric}: {message}")


class ReportError(ExporterError):
    """The sink rejected a write"""

    def __init__(self, metric: str, message: str):
        self.metric = metric
        super().__init__(f"{metric}: {message}")
