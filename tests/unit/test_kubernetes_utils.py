"""Unit tests for the Kubernetes-backed webhook registry."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from chimera.errors import KubernetesAPIError, WebhookConfigurationNotFoundError
from chimera.utils.kubernetes import KubernetesWebhookRegistry


@pytest.fixture
def mock_api():
    return MagicMock(spec=client.AdmissionregistrationV1Api)


@pytest.fixture
def registry(mock_api):
    with patch(
        "chimera.utils.kubernetes.client.AdmissionregistrationV1Api",
        return_value=mock_api,
    ):
        registry = KubernetesWebhookRegistry(k8s_client=MagicMock())
        registry.api  # noqa: B018 - build the API object inside the patch
    return registry


def _configuration(name="demo"):
    return client.V1ValidatingWebhookConfiguration(
        metadata=client.V1ObjectMeta(name=name), webhooks=[]
    )


class TestKubernetesWebhookRegistry:
    """Tests for KubernetesWebhookRegistry error translation."""

    @pytest.mark.asyncio
    async def test_delete(self, registry, mock_api):
        await registry.delete("demo")
        mock_api.delete_validating_webhook_configuration.assert_called_once_with("demo")

    @pytest.mark.asyncio
    async def test_delete_missing_raises_not_found(self, registry, mock_api):
        mock_api.delete_validating_webhook_configuration.side_effect = ApiException(
            status=404, reason="Not Found"
        )

        with pytest.raises(WebhookConfigurationNotFoundError) as exc_info:
            await registry.delete("demo")

        assert exc_info.value.name == "demo"

    @pytest.mark.asyncio
    async def test_delete_forbidden_raises_api_error(self, registry, mock_api):
        mock_api.delete_validating_webhook_configuration.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        with pytest.raises(KubernetesAPIError) as exc_info:
            await registry.delete("demo")

        assert exc_info.value.status == 403
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_list_names(self, registry, mock_api):
        mock_api.list_validating_webhook_configuration.return_value = (
            client.V1ValidatingWebhookConfigurationList(
                items=[_configuration("demo"), _configuration("gatekeeper")]
            )
        )

        assert await registry.list_names() == ["demo", "gatekeeper"]

    @pytest.mark.asyncio
    async def test_list_failure_raises_api_error(self, registry, mock_api):
        mock_api.list_validating_webhook_configuration.side_effect = ApiException(
            status=500, reason="Internal Server Error"
        )

        with pytest.raises(KubernetesAPIError):
            await registry.list_names()

    @pytest.mark.asyncio
    async def test_create(self, registry, mock_api):
        configuration = _configuration()

        await registry.create(configuration)

        mock_api.create_validating_webhook_configuration.assert_called_once_with(
            configuration
        )

    @pytest.mark.asyncio
    async def test_create_conflict_raises_api_error(self, registry, mock_api):
        mock_api.create_validating_webhook_configuration.side_effect = ApiException(
            status=409, reason="AlreadyExists"
        )

        with pytest.raises(KubernetesAPIError, match="AlreadyExists"):
            await registry.create(_configuration())

    @patch("chimera.utils.kubernetes.get_kubernetes_client")
    def test_client_is_created_lazily(self, mock_get_k8s_client):
        registry = KubernetesWebhookRegistry()
        mock_get_k8s_client.assert_not_called()

        with patch("chimera.utils.kubernetes.client.AdmissionregistrationV1Api"):
            registry.api  # noqa: B018

        mock_get_k8s_client.assert_called_once()
