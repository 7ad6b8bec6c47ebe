"""
OpenTelemetry tracing for admission reviews and webhook registration.

Spans are opened around every admission decision (as children of the API
server's span when it propagates a ``traceparent`` header) and around every
registration attempt. Until setup_tracing() installs an SDK provider, the
OpenTelemetry API hands out no-op tracers, so components can call
get_tracer() at import time.

    setup_tracing(enabled=True, endpoint="http://otel-collector:4317")
    ...
    shutdown_tracing()
"""

import logging
from collections.abc import Mapping

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

_propagator = TraceContextTextMapPropagator()

# Set once per process by setup_tracing(), cleared by shutdown_tracing()
_tracer_provider: TracerProvider | None = None
_initialized: bool = False


def _build_provider(
    endpoint: str,
    service_name: str,
    sample_rate: float,
    insecure: bool,
    use_simple_processor: bool,
) -> TracerProvider:
    # Follow the API server's sampling decision when it sends one
    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name}),
        sampler=ParentBased(root=TraceIdRatioBased(sample_rate)),
    )
    exporter = OTLPSpanExporter(endpoint=endpoint, insecure=insecure)
    processor_class = SimpleSpanProcessor if use_simple_processor else BatchSpanProcessor
    provider.add_span_processor(processor_class(exporter))
    return provider


def setup_tracing(
    enabled: bool = False,
    endpoint: str = "http://localhost:4317",
    service_name: str = "chimera-admission",
    sample_rate: float = 1.0,
    insecure: bool = True,
    use_simple_processor: bool = False,
) -> TracerProvider | None:
    """
    Install the process-wide tracer provider.

    Only the first call has an effect; later calls return the provider
    installed by the first one.

    Args:
        enabled: Export spans; when False only the no-op API tracer is used
        endpoint: OTLP gRPC collector endpoint
        service_name: ``service.name`` resource attribute
        sample_rate: Fraction of root spans sampled (0.0-1.0)
        insecure: Talk to the collector without TLS
        use_simple_processor: Export each span synchronously (tests)

    Returns:
        The installed TracerProvider, or None when tracing is disabled
    """
    global _tracer_provider, _initialized

    if _initialized:
        return _tracer_provider
    _initialized = True

    if not enabled:
        logger.info("Tracing disabled, admission spans are not exported")
        return None

    _tracer_provider = _build_provider(
        endpoint, service_name, sample_rate, insecure, use_simple_processor
    )
    trace.set_tracer_provider(_tracer_provider)
    logger.info(
        f"Exporting traces for {service_name} to {endpoint} "
        f"(sample rate {sample_rate})"
    )
    return _tracer_provider


def shutdown_tracing() -> None:
    """Flush pending spans and forget the installed provider."""
    global _tracer_provider, _initialized

    provider, _tracer_provider = _tracer_provider, None
    _initialized = False
    if provider is not None:
        provider.shutdown()
        logger.info("Tracing shut down")


def get_tracer(name: str = __name__) -> Tracer:
    return trace.get_tracer(name)


def extract_trace_context(headers: Mapping[str, str]) -> Context:
    """
    Read the W3C ``traceparent``/``tracestate`` headers of an admission request.

    Returns an empty context when the API server sent none, so spans
    started with it become roots.
    """
    return _propagator.extract(headers)


def is_tracing_enabled() -> bool:
    return _tracer_provider is not None
