"""
HTTP handler translating AdmissionReviews to decision function calls.

Each request goes through:

    Received -> Decoded -> Decided -> Encoded -> Responded

Any failure along the way answers HTTP 500 with an empty body and leaves
the server serving. The admission outcome itself (allowed or denied)
always travels in a 200 response body.
"""

import asyncio
import inspect
import json
import time

from aiohttp import web
from opentelemetry.trace import SpanKind
from pydantic import ValidationError

from chimera.constants import JSON_CONTENT_TYPE
from chimera.models.decision import AdmissionDecision, DecisionFunction
from chimera.models.review import AdmissionRequest, AdmissionReview
from chimera.observability.logging import AdmissionLogger, LoggerSink, set_correlation_id
from chimera.observability.metrics import metrics_collector
from chimera.observability.tracing import extract_trace_context, get_tracer

tracer = get_tracer(__name__)


class DecisionTypeError(TypeError):
    """A decision function returned something other than an AdmissionDecision."""


class AdmissionHandler:
    """
    aiohttp handler serving one webhook.

    The handler only reads the decision function and names captured at
    construction, so it can serve concurrent requests without locking.
    """

    def __init__(
        self,
        webhook_name: str,
        callback: DecisionFunction,
        logger: LoggerSink | None = None,
    ):
        """
        Initialize the handler.

        Args:
            webhook_name: Registered webhook name, used in logs and metrics
            callback: Decision function for this webhook
            logger: Logger sink, defaults to the module logger
        """
        self.webhook_name = webhook_name
        self.callback = callback
        self.logger = logger or AdmissionLogger(__name__)

    async def decide(self, request: AdmissionRequest) -> AdmissionDecision:
        """
        Invoke the decision function for ``request``.

        Coroutine functions are awaited on the event loop; plain functions
        run on a worker thread so a slow decision does not stall other
        requests.
        """
        if inspect.iscoroutinefunction(self.callback):
            decision = await self.callback(request)
        else:
            decision = await asyncio.to_thread(self.callback, request)
            if inspect.isawaitable(decision):
                decision = await decision

        if not isinstance(decision, AdmissionDecision):
            raise DecisionTypeError(
                f"decision function returned {type(decision).__name__}, "
                "expected AdmissionDecision"
            )
        return decision

    def _internal_server_error(self, error: Exception, path: str) -> web.Response:
        self.logger.error(
            f">>> (500) {error}",
            webhook=self.webhook_name,
            path=path,
            http_status=500,
            error_type=type(error).__name__,
        )
        return web.Response(status=500)

    async def __call__(self, request: web.Request) -> web.Response:
        start_time = time.monotonic()
        body = await request.read()
        self.logger.debug(
            f"<<< {body.decode('utf-8', errors='replace')}",
            webhook=self.webhook_name,
            path=request.path,
        )

        with tracer.start_as_current_span(
            "admission_review",
            context=extract_trace_context(request.headers),
            kind=SpanKind.SERVER,
        ) as span:
            span.set_attribute("admission.webhook", self.webhook_name)

            try:
                review = AdmissionReview.model_validate_json(body)
                if review.request is None:
                    raise ValueError("AdmissionReview carries no request")
            except (ValidationError, ValueError) as e:
                metrics_collector.record_admission(
                    self.webhook_name, "error", time.monotonic() - start_time
                )
                return self._internal_server_error(e, request.path)

            uid = review.request.uid
            set_correlation_id(uid)
            span.set_attribute("admission.uid", uid)
            span.set_attribute("admission.operation", review.request.operation)

            try:
                decision = await self.decide(review.request)
                payload = json.dumps(review.respond(decision).to_wire())
            except Exception as e:
                span.record_exception(e)
                metrics_collector.record_admission(
                    self.webhook_name, "error", time.monotonic() - start_time
                )
                return self._internal_server_error(e, request.path)

            span.set_attribute("admission.allowed", decision.allowed)

        duration = time.monotonic() - start_time
        metrics_collector.record_admission(
            self.webhook_name, "allowed" if decision.allowed else "denied", duration
        )
        self.logger.debug(
            f">>> (200) {payload}",
            webhook=self.webhook_name,
            path=request.path,
            uid=uid,
            http_status=200,
        )
        self.logger.info(
            f"admission request {uid} "
            f"{'allowed' if decision.allowed else 'denied'} by {self.webhook_name}",
            webhook=self.webhook_name,
            uid=uid,
            allowed=decision.allowed,
            duration=duration,
        )
        return web.Response(
            status=200, body=payload.encode("utf-8"), content_type=JSON_CONTENT_TYPE
        )
