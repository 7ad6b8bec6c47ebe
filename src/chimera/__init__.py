"""
Chimera - validating admission webhooks for Kubernetes with minimal ceremony.

Describe the webhooks in an AdmissionConfig and the kit provides:
- A throw-away CA and serving certificate covering the callback address
- Registration of a ValidatingWebhookConfiguration that replaces any
  previous copy
- An HTTPS server translating AdmissionReviews to decision function calls
"""

from chimera.models import (
    AdmissionConfig,
    AdmissionDecision,
    AdmissionRequest,
    WebhookDefinition,
    allow_request,
    reject_request,
)
from chimera.server import AdmissionServer, start_tls_server

__version__ = "0.1.0"

__all__ = [
    "AdmissionConfig",
    "AdmissionDecision",
    "AdmissionRequest",
    "AdmissionServer",
    "WebhookDefinition",
    "allow_request",
    "reject_request",
    "start_tls_server",
]
