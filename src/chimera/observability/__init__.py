"""
Observability utilities for the admission webhook kit.

This module provides metrics, tracing and structured logging
capabilities for production monitoring and troubleshooting.
"""

from .logging import (
    AdmissionLogger,
    LoggerSink,
    NullLogger,
    setup_structured_logging,
)
from .metrics import MetricsServer, get_metrics_registry, metrics_collector
from .tracing import get_tracer, setup_tracing, shutdown_tracing

__all__ = [
    "AdmissionLogger",
    "LoggerSink",
    "MetricsServer",
    "NullLogger",
    "get_metrics_registry",
    "get_tracer",
    "metrics_collector",
    "setup_structured_logging",
    "setup_tracing",
    "shutdown_tracing",
]
