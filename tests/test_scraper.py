"""Tests for the scrape loop"""
import asyncio
from unittest.mock import AsyncMock, patch
import pytest

from conftest import StaticFetcher, records
from app.context import ExporterContext
from app.scraper import ScrapeLoop, ScrapeState
from metrics.errors import DecodeError, FetchError, ReportError
from metrics.exporters.prometheus import PrometheusExporter
from metrics.models import ResourceKind


def inventory():
    return {
        ResourceKind.FIREWALL_RULES: records(ResourceKind.FIREWALL_RULES, network=["a", "a", "b"]),
        ResourceKind.TARGET_POOLS: records(ResourceKind.TARGET_POOLS, name=["pool-1"]),
        ResourceKind.ADDRESSES: records(ResourceKind.ADDRESSES, status=["IN_USE", "RESERVED"]),
        ResourceKind.NETWORKS: records(ResourceKind.NETWORKS, name=["default", "prod"]),
        ResourceKind.ROUTES: records(ResourceKind.ROUTES, network=["default"] * 4),
    }


async def started_context(config, fetcher):
    context = ExporterContext.from_config(config, fetcher=fetcher, exporter=PrometheusExporter(config))
    await context.start()
    return context


class TestScrapeLoop:
    """Test fetch, aggregate and report cycles"""

    @pytest.mark.asyncio
    async def test_cycle_reports_every_metric(self, config):
        fetcher = StaticFetcher(inventory())
        context = await started_context(config, fetcher)
        loop = ScrapeLoop(context)

        result = await loop.run_cycle()

        assert result.failed == []
        assert len(result.reported) == 8
        assert [kind for _, kind in fetcher.calls] == list(ResourceKind)
        assert all(project == "test-project" for project, _ in fetcher.calls)

        text = context.exporter.render().decode()
        assert 'gce_firewall_rules{network="a"} 2.0' in text
        assert 'gce_firewall_rules{network="b"} 1.0' in text
        assert "gce_target_pools 1.0" in text
        assert 'gce_ip_addresses{status="IN_USE"} 1.0' in text
        assert "gce_networks 2.0" in text
        assert 'gce_routes{network="default"} 4.0' in text

    @pytest.mark.asyncio
    async def test_empty_kinds(self, config):
        """Empty labeled lists report nothing, empty unlabeled lists report zero"""
        context = await started_context(config, StaticFetcher())

        await ScrapeLoop(context).run_cycle()

        text = context.exporter.render().decode()
        assert "gce_global_forwarding_rules 0.0" in text
        assert "gce_firewall_rules{" not in text
        assert "gce_global_ip_addresses{" not in text

    @pytest.mark.asyncio
    async def test_fetch_error_skips_only_that_metric(self, config):
        responses = inventory()
        responses[ResourceKind.ROUTES] = FetchError("routes", "gcloud exited with status 1")
        context = await started_context(config, StaticFetcher(responses))

        result = await ScrapeLoop(context).run_cycle()

        assert result.failed == ["gce_routes"]
        assert len(result.reported) == 7
        assert context.stats.metric_errors == 1
        assert context.stats.last_failed_metrics == ["gce_routes"]
        text = context.exporter.render().decode()
        assert "gce_networks 2.0" in text
        assert "gce_routes{" not in text

    @pytest.mark.asyncio
    async def test_decode_and_unexpected_errors_contained(self, config):
        responses = inventory()
        responses[ResourceKind.FIREWALL_RULES] = DecodeError("firewall-rules", "invalid JSON")
        responses[ResourceKind.NETWORKS] = RuntimeError("boom")
        context = await started_context(config, StaticFetcher(responses))

        result = await ScrapeLoop(context).run_cycle()

        assert result.failed == ["gce_firewall_rules", "gce_networks"]
        assert "gce_routes" in result.reported

    @pytest.mark.asyncio
    async def test_report_error_skips_only_that_metric(self, config):
        context = await started_context(config, StaticFetcher(inventory()))
        loop = ScrapeLoop(context)
        real_report = loop.reporter.report

        async def flaky_report(descriptor, counts):
            if descriptor.name == "gce_target_pools":
                raise ReportError(descriptor.name, "rejected")
            return await real_report(descriptor, counts)

        loop.reporter.report = flaky_report

        result = await loop.run_cycle()

        assert result.failed == ["gce_target_pools"]
        assert len(result.reported) == 7

    @pytest.mark.asyncio
    async def test_second_cycle_supersedes_first(self, config):
        fetcher = StaticFetcher(inventory())
        context = await started_context(config, fetcher)
        loop = ScrapeLoop(context)
        await loop.run_cycle()

        fetcher.responses[ResourceKind.FIREWALL_RULES] = records(ResourceKind.FIREWALL_RULES, network=["a"])
        fetcher.responses[ResourceKind.NETWORKS] = records(ResourceKind.NETWORKS, name=["default"])
        await loop.run_cycle()

        text = context.exporter.render().decode()
        assert 'gce_firewall_rules{network="a"} 1.0' in text
        assert 'network="b"' not in text
        assert "gce_networks 1.0" in text
        assert context.stats.cycle_count == 2

    @pytest.mark.asyncio
    async def test_run_forever_sleeps_between_cycles(self, config):
        context = await started_context(config, StaticFetcher(inventory()))
        loop = ScrapeLoop(context)
        sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])

        with patch("app.scraper.asyncio.sleep", sleep):
            with pytest.raises(asyncio.CancelledError):
                await loop.run_forever()

        assert context.stats.cycle_count == 2
        assert sleep.await_count == 2
        sleep.assert_awaited_with(300)
        assert loop.state == ScrapeState.SLEEPING

    @pytest.mark.asyncio
    async def test_routes_failure_then_next_cycle(self, config):
        """A failed routes fetch is skipped, then retried after the sleep"""
        responses = inventory()
        responses[ResourceKind.ROUTES] = FetchError("routes", "gcloud exited with status 1")
        fetcher = StaticFetcher(responses)
        context = await started_context(config, fetcher)
        loop = ScrapeLoop(context)
        sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])

        with patch("app.scraper.asyncio.sleep", sleep):
            with pytest.raises(asyncio.CancelledError):
                await loop.run_forever()

        assert context.stats.cycle_count == 2
        assert context.stats.metric_errors == 2
        assert context.stats.last_failed_metrics == ["gce_routes"]
        assert [kind for _, kind in fetcher.calls].count(ResourceKind.ROUTES) == 2
        sleep.assert_awaited_with(300)
        text = context.exporter.render().decode()
        assert 'gce_firewall_rules{network="a"} 2.0' in text
        assert "gce_routes{" not in text

    @pytest.mark.asyncio
    async def test_state_after_metric(self, config):
        context = await started_context(config, StaticFetcher(inventory()))
        loop = ScrapeLoop(context)
        assert loop.state == ScrapeState.IDLE

        await loop.process_metric(context.registry.get_metric("gce_routes"))

        assert loop.state == ScrapeState.REPORTING
