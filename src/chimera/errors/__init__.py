"""
Error handling module for the admission webhook kit.

This module provides the error hierarchy used to separate fatal startup
failures from retryable cluster registry failures.
"""

from .admission_errors import (
    CertificateError,
    ChimeraError,
    ConfigurationError,
    KubernetesAPIError,
    RegistrationError,
    WebhookConfigurationNotFoundError,
)

__all__ = [
    "ChimeraError",
    "CertificateError",
    "ConfigurationError",
    "KubernetesAPIError",
    "RegistrationError",
    "WebhookConfigurationNotFoundError",
]
