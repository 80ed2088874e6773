"""Tests for converting counts into observations and reporting them"""
from unittest.mock import AsyncMock
import pytest

from metrics.errors import ExporterError, ReportError
from metrics.models import MetricDescriptor
from metrics.reporter import Reporter, build_observations


LABELED = MetricDescriptor("gce_firewall_rules", "Firewall rules", labels=("network",))
UNLABELED = MetricDescriptor("gce_target_pools", "Target pools")


class TestBuildObservations:
    """Test observation construction"""

    def test_one_observation_per_bucket(self):
        observations = build_observations(LABELED, {"a": 2, "b": 1}, timestamp=100.0)

        assert sorted((o.label_value, o.value) for o in observations) == [("a", 2.0), ("b", 1.0)]
        assert all(o.labels.keys() == {"network"} for o in observations)
        assert all(o.name == "gce_firewall_rules" for o in observations)

    def test_shared_timestamp(self):
        observations = build_observations(LABELED, {"a": 1, "b": 1, "c": 1})

        assert len({o.timestamp for o in observations}) == 1

    def test_unlabeled_single_observation(self):
        observations = build_observations(UNLABELED, {"": 0}, timestamp=100.0)

        assert len(observations) == 1
        assert observations[0].labels == {}
        assert observations[0].label_value is None
        assert observations[0].value == 0.0

    def test_empty_mapping(self):
        assert build_observations(LABELED, {}) == []


class TestReporter:
    """Test reporting through an exporter"""

    def setup_method(self):
        self.exporter = AsyncMock()
        self.reporter = Reporter(self.exporter)

    @pytest.mark.asyncio
    async def test_report_exports_batch(self):
        observations = await self.reporter.report(LABELED, {"a": 2, "b": 1})

        assert len(observations) == 2
        self.exporter.export.assert_awaited_once_with(LABELED, observations)

    @pytest.mark.asyncio
    async def test_empty_mapping_is_noop(self):
        observations = await self.reporter.report(LABELED, {})

        assert observations == []
        self.exporter.export.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_report_error_propagates(self):
        self.exporter.export.side_effect = ReportError("gce_firewall_rules", "rejected")

        with pytest.raises(ReportError):
            await self.reporter.report(LABELED, {"a": 1})

    @pytest.mark.asyncio
    async def test_exporter_error_wrapped(self):
        self.exporter.export.side_effect = ExporterError("sink unavailable")

        with pytest.raises(ReportError) as exc_info:
            await self.reporter.report(LABELED, {"a": 1})

        assert exc_info.value.metric == "gce_firewall_rules"
