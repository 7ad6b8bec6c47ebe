"""
Prometheus metrics for admission decisions and webhook registration.

Metrics live in a private CollectorRegistry, so embedding applications keep
the default prometheus_client registry to themselves. MetricsServer exposes
the registry next to a liveness endpoint:

    GET /metrics   Prometheus text exposition
    GET /healthz   "ok" while the event loop is responsive
"""

import logging

from aiohttp.web import Application, AppRunner, Request, Response, TCPSite
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

_metrics_registry = CollectorRegistry()

ADMISSION_REQUESTS_TOTAL = Counter(
    "chimera_admission_requests_total",
    "Admission reviews answered, by outcome",
    ["webhook", "result"],
    registry=_metrics_registry,
)

# Callbacks run within the API server's webhook timeout (10s by default)
ADMISSION_DURATION = Histogram(
    "chimera_admission_duration_seconds",
    "Time from receiving an admission review to writing its response",
    ["webhook"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=_metrics_registry,
)

REGISTRATION_ATTEMPTS_TOTAL = Counter(
    "chimera_registration_attempts_total",
    "Attempts to create a ValidatingWebhookConfiguration",
    ["admission", "result"],
    registry=_metrics_registry,
)

REGISTERED_WEBHOOKS = Gauge(
    "chimera_registered_webhooks",
    "Webhooks in the installed ValidatingWebhookConfiguration",
    ["admission"],
    registry=_metrics_registry,
)


def get_metrics_registry() -> CollectorRegistry:
    return _metrics_registry


class MetricsCollector:
    """Facade the handler and registrar use to record their metrics."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or _metrics_registry

    def record_admission(self, webhook: str, result: str, duration: float) -> None:
        """
        Count an answered review and observe how long it took.

        Args:
            webhook: Registered webhook name
            result: ``allowed``, ``denied`` or ``error``
            duration: Seconds spent on the review
        """
        ADMISSION_REQUESTS_TOTAL.labels(webhook=webhook, result=result).inc()
        ADMISSION_DURATION.labels(webhook=webhook).observe(duration)

    def record_registration_attempt(self, admission: str, success: bool) -> None:
        result = "success" if success else "failure"
        REGISTRATION_ATTEMPTS_TOTAL.labels(admission=admission, result=result).inc()

    def set_registered_webhooks(self, admission: str, count: int) -> None:
        REGISTERED_WEBHOOKS.labels(admission=admission).set(count)


metrics_collector = MetricsCollector()


async def _serve_metrics(request: Request) -> Response:
    try:
        exposition = generate_latest(get_metrics_registry())
    except Exception as e:
        logger.error(f"Could not render admission metrics: {e}", exc_info=True)
        return Response(status=500, text=f"metrics unavailable ({type(e).__name__})")
    return Response(body=exposition, headers={"Content-Type": CONTENT_TYPE_LATEST})


async def _serve_healthz(request: Request) -> Response:
    return Response(text="ok")


class MetricsServer:
    """
    Standalone aiohttp listener for the metrics registry.

    Runs beside the admission server on its own port, so scrapes do not
    need the webhook serving certificate.
    """

    def __init__(self, port: int = 8081, host: str = "0.0.0.0"):
        self.port = port
        self.host = host
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None

        self.app = Application()
        self.app.router.add_get("/metrics", _serve_metrics)
        self.app.router.add_get("/healthz", _serve_healthz)

    async def start(self) -> None:
        self.runner = AppRunner(self.app)
        await self.runner.setup()
        self.site = TCPSite(self.runner, self.host, self.port)
        try:
            await self.site.start()
        except OSError:
            await self.stop()
            raise
        logger.info(f"Serving admission metrics on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Close the listener. Safe to call more than once."""
        site, self.site = self.site, None
        runner, self.runner = self.runner, None
        if site is not None:
            await site.stop()
        if runner is not None:
            await runner.cleanup()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
