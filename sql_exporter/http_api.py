"""HTTP endpoints exposing the metric store using FastAPI."""
import logging
from typing import Callable, Mapping, Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse, Response

from sql_exporter.encoders import JSON_CONTENT_TYPE, PROMETHEUS_CONTENT_TYPE, encode_json, encode_prometheus
from sql_exporter.self_metrics import SelfMetrics
from sql_exporter.store import MetricStore

logger = logging.getLogger(__name__)


class ExporterAPI:
    """FastAPI application serving the latest metric snapshot."""

    def __init__(
        self,
        store: MetricStore,
        health_check: Callable[[], None],
        help_texts: Optional[Mapping[str, str]] = None,
        self_metrics: Optional[SelfMetrics] = None,
    ):
        """
        Initialize the exporter API.

        Args:
            store: Store read by every request; requests never trigger polls
            health_check: Liveness probe that raises if the database is unreachable
            help_texts: HELP text per metric family
            self_metrics: Exporter self-metrics served on /metrics/exporter
        """
        self.store = store
        self.health_check = health_check
        self.help_texts = dict(help_texts or {})
        self.self_metrics = self_metrics
        self.app = FastAPI(title="SQL Metrics Exporter")

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/metrics")
        def metrics():
            """Prometheus exposition of the current snapshot."""
            body = encode_prometheus(self.store.snapshot(), self.help_texts)
            return Response(content=body, media_type=PROMETHEUS_CONTENT_TYPE)

        @self.app.get("/metrics.json")
        def metrics_json():
            """JSON document of the current snapshot."""
            return Response(content=encode_json(self.store.snapshot()), media_type=JSON_CONTENT_TYPE)

        @self.app.get("/health")
        def health():
            """Database liveness check."""
            try:
                self.health_check()
            except Exception as e:
                logger.warning(f"Health check failed: {e}")
                return PlainTextResponse(f"Database connection error: {e}", status_code=503)
            return PlainTextResponse("OK")

        @self.app.get("/metrics/exporter")
        def exporter_metrics():
            """The exporter's own poll statistics."""
            if self.self_metrics is None:
                return Response(content=b"", media_type=PROMETHEUS_CONTENT_TYPE)
            return Response(content=self.self_metrics.render(), media_type=PROMETHEUS_CONTENT_TYPE)

    def run(self, host: str = "0.0.0.0", port: int = 8080):
        """Run the API server."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")
