"""
Utils package - helper modules for admission webhook serving.

Contains helper modules for:
- Certificate authority and serving certificate generation
- Kubernetes webhook configuration registry access
- Retry policies for registration
"""

from chimera.utils.certificates import (
    CertificateAuthority,
    ServingCertificate,
    generate_ca,
    generate_serving_certificate,
)
from chimera.utils.kubernetes import KubernetesWebhookRegistry, WebhookRegistry
from chimera.utils.retry import RetryPolicy

__all__ = [
    "CertificateAuthority",
    "KubernetesWebhookRegistry",
    "RetryPolicy",
    "ServingCertificate",
    "WebhookRegistry",
    "generate_ca",
    "generate_serving_certificate",
]
