"""
Models package - typed values flowing through the admission webhook kit.

Defines:
- AdmissionReview wire models (request and response envelopes)
- AdmissionDecision returned by decision functions
- AdmissionConfig and WebhookDefinition describing a server
"""

from .config import (
    AdmissionConfig,
    WebhookDefinition,
    generate_validate_path,
    rule_from_dict,
)
from .decision import (
    AdmissionDecision,
    DecisionFunction,
    allow_request,
    reject_request,
)
from .review import AdmissionRequest, AdmissionResponse, AdmissionReview

__all__ = [
    "AdmissionConfig",
    "AdmissionDecision",
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "DecisionFunction",
    "WebhookDefinition",
    "allow_request",
    "generate_validate_path",
    "reject_request",
    "rule_from_dict",
]
