"""
Service layer for the admission webhook kit.

This module provides the registrar that installs the webhook configuration
in the cluster, separated from the HTTP handler layer.
"""

from .registrar import (
    RegistrationState,
    WebhookRegistrar,
    build_registration,
    reconcile,
)

__all__ = [
    "RegistrationState",
    "WebhookRegistrar",
    "build_registration",
    "reconcile",
]
