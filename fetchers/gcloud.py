"""Fetch resource lists by running the gcloud CLI"""
import json
import subprocess
from typing import Dict, List
from .base import BaseFetcher
from metrics.errors import DecodeError, FetchError
from metrics.models import ResourceKind, ResourceRecord
from logging_config import get_logger


logger = get_logger(__name__)

# gcloud compute group and extra flags per resource kind
GCLOUD_COMMANDS: Dict[ResourceKind, List[str]] = {
    ResourceKind.FIREWALL_RULES: ["firewall-rules"],
    ResourceKind.TARGET_POOLS: ["target-pools"],
    ResourceKind.FORWARDING_RULES: ["forwarding-rules", "--filter=region:*"],
    ResourceKind.GLOBAL_FORWARDING_RULES: ["forwarding-rules", "--global"],
    ResourceKind.ADDRESSES: ["addresses", "--filter=region:*"],
    ResourceKind.GLOBAL_ADDRESSES: ["addresses", "--global"],
    ResourceKind.NETWORKS: ["networks"],
    ResourceKind.ROUTES: ["routes"],
}


def build_command(gcloud_path: str, project: str, kind: ResourceKind) -> List[str]:
    """Build the gcloud argument vector listing one resource kind as JSON"""
    group, *extra = GCLOUD_COMMANDS[kind]
    return [
        gcloud_path,
        f"--project={project}",
        "compute",
        group,
        "list",
        *extra,
        "--format=json",
        "--quiet",
    ]


def decode_records(kind: ResourceKind, output: str) -> List[ResourceRecord]:
    """Decode gcloud JSON output into resource records"""
    if not output.strip():
        return []

    try:
        items = json.loads(output)
    except json.JSONDecodeError as e:
        raise DecodeError(kind.value, f"invalid JSON: {e}", output) from e

    if not isinstance(items, list):
        raise DecodeError(kind.value, f"expected a JSON array, got {type(items).__name__}", output)

    records = []
    for item in items:
        if not isinstance(item, dict):
            raise DecodeError(kind.value, f"expected JSON objects, got {type(item).__name__}", output)
        records.append(ResourceRecord.from_dict(kind, item))
    return records


class GcloudFetcher(BaseFetcher):
    """Lists resources with `gcloud compute <resource> list --format=json`"""

    def __init__(self, config=None):
        super().__init__(config, "gcloud")
        self.gcloud_path = getattr(config, 'gcloud_path', 'gcloud')
        self.timeout = getattr(config, 'fetch_timeout', None)

    def fetch(self, project: str, kind: ResourceKind) -> List[ResourceRecord]:
        cmd = build_command(self.gcloud_path, project, kind)
        logger.debug("Running gcloud", args=cmd[1:], kind=kind.value)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise FetchError(kind.value, f"gcloud timed out after {self.timeout}s") from e
        except OSError as e:
            raise FetchError(kind.value, f"could not run {self.gcloud_path}: {e}") from e

        if result.returncode != 0:
            raise FetchError(
                kind.value,
                f"gcloud exited with status {result.returncode}",
                (result.stderr or result.stdout).strip()
            )

        records = decode_records(kind, result.stdout)
        logger.debug("Fetched resources", kind=kind.value, count=len(records))
        return records
