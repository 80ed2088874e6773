"""Tests for FastAPI server module"""
import asyncio
import os
import time
from unittest.mock import AsyncMock, patch
import pytest
from fastapi.testclient import TestClient

from conftest import StaticFetcher, records
from app.context import ExporterContext
from app.server import MetricsServer
from config import Config
from metrics.errors import RegistrationError
from metrics.exporters.prometheus import PrometheusExporter
from metrics.models import ResourceKind


def make_server(config, fetcher=None, exporter=None):
    context = ExporterContext.from_config(
        config,
        fetcher=fetcher or StaticFetcher(),
        exporter=exporter or PrometheusExporter(config),
    )
    return MetricsServer(config, context)


class TestMetricsServer:
    """Test FastAPI server functionality"""

    def setup_method(self):
        self.config = Config(enable_request_logging=False)
        self.server = make_server(self.config)
        self.client = TestClient(self.server.get_app())

    def test_health_endpoint_healthy(self):
        """Test health endpoint after a recent cycle"""
        stats = self.server.context.stats
        stats.last_cycle_time = time.time() - 10
        stats.cycle_count = 10
        stats.metric_errors = 0

        response = self.client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["total_cycles"] == 10
        assert data["metric_errors"] == 0
        assert data["export_format"] == "prometheus"

    def test_health_endpoint_unhealthy(self):
        """Test health endpoint when the last cycle is too old"""
        self.server.context.stats.last_cycle_time = time.time() - 3 * self.config.scrape_interval

        response = self.client.get("/health")

        assert response.status_code == 503
        assert response.json()["detail"]["status"] == "unhealthy"

    def test_health_endpoint_before_first_cycle(self):
        response = self.client.get("/health")

        assert response.status_code == 503
        assert response.json()["detail"]["last_cycle_seconds_ago"] is None

    def test_metrics_endpoint(self):
        """Test metrics endpoint serves the last reported values"""
        exporter = self.server.context.exporter
        asyncio.run(self.server.context.start())
        asyncio.run(self.server.scraper.run_cycle())

        response = self.client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == exporter.render().decode()
        assert "gce_target_pools 0.0" in response.text

    def test_metrics_endpoint_custom_path(self):
        with patch.dict(os.environ, {"METRICS_PATH": "/metricsz"}):
            config = Config()
        client = TestClient(make_server(config).get_app())

        assert client.get("/metricsz").status_code == 200
        assert client.get("/metrics").status_code == 404

    def test_metrics_endpoint_push_format(self):
        """Test metrics endpoint when metrics are pushed elsewhere"""
        with patch.dict(os.environ, {"EXPORT_FORMAT": "cloud_monitoring"}):
            config = Config()
        exporter = AsyncMock()
        exporter.serves_metrics = False
        client = TestClient(make_server(config, exporter=exporter).get_app())

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "only served for prometheus" in response.text

    def test_status_endpoint(self):
        """Test status endpoint"""
        stats = self.server.context.stats
        stats.last_cycle_time = time.time() - 10
        stats.cycle_count = 10
        stats.metric_errors = 2
        stats.last_failed_metrics = ["gce_routes"]

        response = self.client.get("/status")

        assert response.status_code == 200
        data = response.json()
        assert data["service"]["name"] == "gce-resource-exporter"
        assert data["scrape"]["project"] == "test-project"
        assert data["scrape"]["state"] == "idle"
        assert data["scrape"]["total_cycles"] == 10
        assert data["scrape"]["metric_errors"] == 2
        assert data["scrape"]["last_failed_metrics"] == ["gce_routes"]
        assert data["exporter"]["metrics_path"] == "/metrics"

    def test_resources_endpoint(self):
        """Test resources endpoint"""
        response = self.client.get("/resources")

        assert response.status_code == 200
        data = response.json()
        assert data["metrics"]["gce_firewall_rules"]["labels"] == ["network"]
        assert data["metrics"]["gce_firewall_rules"]["kind"] == "firewall-rules"
        assert len(data["enabled_resources"]) == len(ResourceKind)

    def test_index_endpoint(self):
        """Test index HTML endpoint"""
        response = self.client.get("/")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "GCE Resource Exporter" in response.text
        assert "gce_routes" in response.text

    def test_request_logging_middleware(self):
        server = make_server(Config(enable_request_logging=True))
        response = TestClient(server.get_app()).get("/resources")

        assert response.status_code == 200
        assert "x-process-time" in response.headers


class TestServerLifecycle:
    """Test startup declaration and the background scrape task"""

    def test_startup_runs_scrape_loop(self):
        fetcher = StaticFetcher({
            ResourceKind.FIREWALL_RULES: records(ResourceKind.FIREWALL_RULES, network=["a", "a", "b"]),
        })
        server = make_server(Config(enable_request_logging=False), fetcher=fetcher)

        with TestClient(server.get_app()) as client:
            deadline = time.time() + 5
            while server.context.stats.cycle_count == 0 and time.time() < deadline:
                time.sleep(0.05)

            response = client.get("/metrics")
            assert 'gce_firewall_rules{network="a"} 2.0' in response.text
            assert client.get("/health").status_code == 200

        assert server.scrape_task.cancelled() or server.scrape_task.done()

    def test_scrape_loop_crash_is_logged(self):
        server = make_server(Config(enable_request_logging=False))
        server.scraper.run_forever = AsyncMock(side_effect=RuntimeError("stats update failed"))

        with patch("app.server.log_error") as mock_log_error:
            with TestClient(server.get_app()):
                deadline = time.time() + 5
                while not mock_log_error.called and time.time() < deadline:
                    time.sleep(0.05)

        mock_log_error.assert_called_once()
        error, context = mock_log_error.call_args.args[1:]
        assert isinstance(error, RuntimeError)
        assert context["component"] == "scrape_loop"

    def test_scrape_loop_cancel_is_not_logged(self):
        server = make_server(Config(enable_request_logging=False))

        with patch("app.server.log_error") as mock_log_error:
            with TestClient(server.get_app()):
                pass

        assert server.scrape_task.cancelled()
        mock_log_error.assert_not_called()

    def test_registration_failure_aborts_startup(self):
        exporter = AsyncMock()
        exporter.declare.side_effect = RegistrationError("gce_routes", "permission denied")
        server = make_server(Config(enable_request_logging=False), exporter=exporter)

        with pytest.raises(RegistrationError):
            with TestClient(server.get_app()):
                pass

        assert server.scrape_task is None
