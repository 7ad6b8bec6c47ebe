"""
Kubernetes utilities for webhook registration.

This module provides:
- Kubernetes client configuration (in-cluster first, kubeconfig fallback)
- The narrow WebhookRegistry contract the registrar depends on
- A WebhookRegistry backed by the admissionregistration.k8s.io/v1 API
"""

import asyncio
import logging
from typing import Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from chimera.errors import KubernetesAPIError, WebhookConfigurationNotFoundError

logger = logging.getLogger(__name__)


def get_kubernetes_client() -> client.ApiClient:
    """
    Build an API client from the in-cluster service account or a kubeconfig.

    Tries in-cluster configuration first (when running in a pod) and falls
    back to the local kubeconfig for development.

    Returns:
        ApiClient bound to the loaded credentials

    Raises:
        kubernetes.config.ConfigException: If neither configuration loads
    """
    try:
        config.load_incluster_config()
        logger.debug("Using in-cluster service account credentials")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Using local kubeconfig credentials")
        except config.ConfigException as e:
            logger.error(f"No usable cluster credentials: {e}")
            raise

    return client.ApiClient()


class WebhookRegistry(Protocol):
    """Cluster registry of validating webhook configurations."""

    async def delete(self, name: str) -> None:
        """
        Delete the configuration called ``name``.

        Raises:
            WebhookConfigurationNotFoundError: If it does not exist
        """
        ...

    async def list_names(self) -> list[str]:
        """Names of all registered validating webhook configurations."""
        ...

    async def create(self, configuration: client.V1ValidatingWebhookConfiguration) -> None:
        """Create ``configuration``; fails if the name is already taken."""
        ...


def _api_error(action: str, e: ApiException) -> KubernetesAPIError:
    return KubernetesAPIError(
        f"Failed to {action}: {e.status} {e.reason}",
        reason=e.reason,
        status=e.status,
        cause=e,
    )


class KubernetesWebhookRegistry:
    """
    WebhookRegistry backed by AdmissionregistrationV1Api.

    The kubernetes client is synchronous; calls run on a worker thread so the
    event loop stays responsive and the awaiting task can be cancelled.
    """

    def __init__(self, k8s_client: client.ApiClient | None = None):
        """
        Initialize the registry.

        Args:
            k8s_client: Kubernetes API client, created on first use if not provided
        """
        self.k8s_client = k8s_client
        self._api: client.AdmissionregistrationV1Api | None = None

    @property
    def api(self) -> client.AdmissionregistrationV1Api:
        if self._api is None:
            if self.k8s_client is None:
                self.k8s_client = get_kubernetes_client()
            self._api = client.AdmissionregistrationV1Api(self.k8s_client)
        return self._api

    async def delete(self, name: str) -> None:
        try:
            await asyncio.to_thread(
                self.api.delete_validating_webhook_configuration, name
            )
        except ApiException as e:
            if e.status == 404:
                raise WebhookConfigurationNotFoundError(name) from e
            raise _api_error(f"delete validating webhook configuration {name}", e) from e

    async def list_names(self) -> list[str]:
        try:
            result = await asyncio.to_thread(
                self.api.list_validating_webhook_configuration
            )
        except ApiException as e:
            raise _api_error("list validating webhook configurations", e) from e
        return [item.metadata.name for item in result.items or []]

    async def create(self, configuration: client.V1ValidatingWebhookConfiguration) -> None:
        try:
            await asyncio.to_thread(
                self.api.create_validating_webhook_configuration, configuration
            )
        except ApiException as e:
            raise _api_error(
                f"create validating webhook configuration {configuration.metadata.name}",
                e,
            ) from e
