"""FastAPI server setup and routes"""
import asyncio
import time
import os
from typing import Optional
from fastapi import FastAPI, Response, HTTPException
from fastapi.responses import HTMLResponse
from prometheus_client import CONTENT_TYPE_LATEST
from config import Config
from .context import ExporterContext
from .scraper import ScrapeLoop
from logging_config import get_logger, log_error
from middleware.request_logging import RequestLoggingMiddleware


logger = get_logger(__name__)


class MetricsServer:
    """FastAPI server exposing resource metrics and hosting the scrape loop"""

    def __init__(self, config: Config, context: Optional[ExporterContext] = None):
        self.config = config
        self.context = context or ExporterContext.from_config(config)
        self.app = FastAPI(
            title="GCE Resource Exporter",
            version=config.service_version,
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )
        self.app.state.start_time = time.time()
        self.scraper = ScrapeLoop(self.context)
        self.scrape_task = None

        if self.config.enable_request_logging:
            self.app.add_middleware(RequestLoggingMiddleware)

        self._setup_routes()
        self._setup_events()

    def _setup_routes(self):
        """Setup FastAPI routes"""

        @self.app.get(self.config.metrics_path, response_class=Response)
        def get_metrics():
            """Serve the last reported gauge values in Prometheus text format"""
            exporter = self.context.exporter
            if exporter.serves_metrics:
                return Response(exporter.render(), media_type=CONTENT_TYPE_LATEST)
            return Response(
                f"# Metrics are pushed to {self.config.export_format.value}; this endpoint is only served for prometheus export\n",
                media_type='text/plain'
            )

        @self.app.get('/health')
        def health_check():
            """Health check endpoint"""
            stats = self.context.stats
            age = time.time() - stats.last_cycle_time if stats.last_cycle_time > 0 else float('inf')
            is_healthy = age < self.config.scrape_interval * 2

            health_data = {
                "status": "healthy" if is_healthy else "unhealthy",
                "last_cycle_seconds_ago": round(age, 1) if age != float('inf') else None,
                "scrape_interval": self.config.scrape_interval,
                "total_cycles": stats.cycle_count,
                "metric_errors": stats.metric_errors,
                "export_format": self.config.export_format.value,
                "exporter_healthy": self.context.exporter.is_healthy()
            }

            if not is_healthy:
                raise HTTPException(status_code=503, detail=health_data)

            return health_data

        @self.app.get('/status')
        def get_status():
            """Detailed status information"""
            stats = self.context.stats
            age = time.time() - stats.last_cycle_time if stats.last_cycle_time > 0 else float('inf')

            return {
                "service": {
                    "name": self.config.service_name,
                    "version": self.config.service_version,
                    "uptime_seconds": round(time.time() - self.app.state.start_time, 1),
                    "hostname": os.uname().nodename
                },
                "scrape": {
                    "project": self.config.project,
                    "interval_seconds": self.config.scrape_interval,
                    "state": self.scraper.state.value,
                    "current_metric": self.scraper.current_metric,
                    "last_cycle_seconds_ago": round(age, 1) if age != float('inf') else None,
                    "last_cycle_duration_seconds": round(stats.last_cycle_duration, 3),
                    "last_failed_metrics": stats.last_failed_metrics,
                    "total_cycles": stats.cycle_count,
                    "metric_errors": stats.metric_errors,
                    "fetch_transport": self.config.fetch_transport.value
                },
                "exporter": {
                    "format": self.config.export_format.value,
                    "healthy": self.context.exporter.is_healthy(),
                    "metrics_path": self.config.metrics_path if self.config.is_prometheus_format() else None,
                    "otlp_endpoint": self.config.otel_endpoint
                }
            }

        @self.app.get('/resources')
        def list_resources():
            """List all resource metrics"""
            return {
                "metrics": self.context.registry.get_metric_status(),
                "enabled_resources": [kind.value for kind in self.config.enabled_resources]
            }

        @self.app.get('/', response_class=HTMLResponse)
        def index():
            """Web interface"""
            return self._generate_html_interface()

    def _setup_events(self):
        """Setup FastAPI startup/shutdown events"""

        @self.app.on_event("startup")
        async def startup_event():
            """Declare metrics, then start scraping"""
            self.app.state.start_time = time.time()
            try:
                await self.context.start()
            except Exception as e:
                log_error(logger, e, {"component": "startup", "phase": "metric_declaration"})
                raise
            self.scrape_task = asyncio.create_task(self.scraper.run_forever())
            self.scrape_task.add_done_callback(self._on_scrape_task_done)

        @self.app.on_event("shutdown")
        async def shutdown_event():
            """Cleanup on shutdown"""
            logger.info("Shutting down resource exporter", event_type="server_shutdown")

            # a crashed loop was already logged by its done callback
            if self.scrape_task and not self.scrape_task.done():
                self.scrape_task.cancel()
                try:
                    await self.scrape_task
                except asyncio.CancelledError:
                    pass

            await self.context.shutdown()

    def _on_scrape_task_done(self, task: asyncio.Task) -> None:
        """Log a scrape loop that stopped for any reason other than shutdown"""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log_error(logger, error, {"component": "scrape_loop", "phase": "run_forever"})
        else:
            logger.error("Scrape loop exited unexpectedly", event_type="scrape_loop_exit")

    def _generate_html_interface(self) -> str:
        """Generate HTML interface"""
        metric_status = self.context.registry.get_metric_status()
        rows = ''.join(
            f'<li><strong>{name}</strong> ({info["kind"]}{", by " + info["labels"][0] if info["labels"] else ""}): '
            f'{"Enabled" if info["enabled"] else "Disabled"} - {info["help"]}</li>'
            for name, info in metric_status.items()
        )

        return f"""
        <!DOCTYPE html>
        <html>
        <head><title>GCE Resource Exporter</title></head>
        <body>
            <h1>GCE Resource Exporter</h1>
            <p>Project: {self.config.project}</p>
            <h2>Available Endpoints:</h2>
            <ul>
                <li><a href="{self.config.metrics_path}">{self.config.metrics_path}</a> - Prometheus metrics</li>
                <li><a href="/health">/health</a> - Health check</li>
                <li><a href="/status">/status</a> - Status information</li>
                <li><a href="/resources">/resources</a> - Resource metrics</li>
            </ul>
            <h2>Metrics:</h2>
            <ul>{rows}</ul>
        </body>
        </html>
        """

    def get_app(self) -> FastAPI:
        """Get the FastAPI application"""
        return self.app
