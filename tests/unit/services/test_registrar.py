"""
Unit tests for the webhook registrar.

The registrar talks to an in-memory registry, so these tests exercise the
delete, list, create cycle without a Kubernetes cluster.
"""

import asyncio
import base64
import time
from unittest.mock import MagicMock

import pytest

from chimera.errors import KubernetesAPIError, RegistrationError
from chimera.models import AdmissionConfig, WebhookDefinition, allow_request
from chimera.services import (
    RegistrationState,
    WebhookRegistrar,
    build_registration,
    reconcile,
)
from chimera.services.registrar import callback_url
from chimera.utils.retry import RetryPolicy

CA_BUNDLE = b"-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


@pytest.fixture
def config(pod_rule):
    return AdmissionConfig(
        name="demo",
        webhooks=[
            WebhookDefinition(rules=[pod_rule], callback=allow_request),
            WebhookDefinition(
                rules=[pod_rule], callback=allow_request, failure_policy="Fail"
            ),
        ],
        callback_port=9443,
    ).with_defaults()


@pytest.fixture
def registration(config):
    return build_registration(config, CA_BUNDLE)


@pytest.fixture
def logger():
    return MagicMock()


def _api_error(status=500):
    return KubernetesAPIError("boom", status=status)


class TestCallbackUrl:
    """Tests for callback URL formatting."""

    def test_hostname(self):
        assert callback_url("localhost", 8443, "/validate-x") == (
            "https://localhost:8443/validate-x"
        )

    def test_ipv6_is_bracketed(self):
        assert callback_url("::1", 8443, "/p") == "https://[::1]:8443/p"


class TestBuildRegistration:
    """Tests for the desired ValidatingWebhookConfiguration."""

    def test_configuration_is_named_after_admission(self, registration):
        assert registration.metadata.name == "demo"
        assert registration.api_version == "admissionregistration.k8s.io/v1"

    def test_webhooks_are_named_in_order(self, registration):
        assert [hook.name for hook in registration.webhooks] == [
            "rule-0.demo",
            "rule-1.demo",
        ]

    def test_webhooks_declare_no_side_effects_and_v1_reviews(self, registration):
        for hook in registration.webhooks:
            assert hook.side_effects == "None"
            assert hook.admission_review_versions == ["v1"]

    def test_failure_policy_is_only_set_when_defined(self, registration):
        assert registration.webhooks[0].failure_policy is None
        assert registration.webhooks[1].failure_policy == "Fail"

    def test_url_client_config(self, config, registration):
        for hook, webhook in zip(registration.webhooks, config.webhooks, strict=True):
            assert hook.client_config.url == f"https://localhost:9443{webhook.path}"
            assert hook.client_config.service is None

    def test_ca_bundle_is_base64_encoded(self, registration):
        for hook in registration.webhooks:
            assert base64.b64decode(hook.client_config.ca_bundle) == CA_BUNDLE

    def test_service_client_config(self, pod_rule):
        config = AdmissionConfig(
            name="demo",
            webhooks=[WebhookDefinition(rules=[pod_rule], callback=allow_request)],
            callback_port=9443,
            kube_namespace="webhooks",
            kube_service="chimera",
        ).with_defaults()

        hook = build_registration(config, CA_BUNDLE).webhooks[0]

        assert hook.client_config.url is None
        service = hook.client_config.service
        assert service.namespace == "webhooks"
        assert service.name == "chimera"
        assert service.port == 9443
        assert service.path == config.webhooks[0].path

    def test_rules_are_passed_through(self, pod_rule, registration):
        assert registration.webhooks[0].rules == [pod_rule]


class TestReconcile:
    """Tests for the delete, list, create cycle."""

    @pytest.mark.asyncio
    async def test_first_registration(self, fake_registry, config, registration, logger):
        registrar = WebhookRegistrar(
            fake_registry, config, logger=logger, retry_policy=RetryPolicy.immediate()
        )

        await registrar.reconcile(registration)

        assert registrar.state is RegistrationState.REGISTERED
        assert registrar.attempts == 1
        assert fake_registry.configurations == {"demo": registration}
        assert [call for call, _ in fake_registry.calls] == ["delete", "list", "create"]

    @pytest.mark.asyncio
    async def test_previous_configuration_is_replaced(
        self, fake_registry, config, registration, logger
    ):
        fake_registry.configurations["demo"] = object()

        await reconcile(
            fake_registry,
            config,
            registration,
            logger=logger,
            retry_policy=RetryPolicy.immediate(),
        )

        assert fake_registry.configurations["demo"] is registration

    @pytest.mark.asyncio
    async def test_create_failures_repeat_whole_cycle(
        self, fake_registry, config, registration, logger
    ):
        fake_registry.create_errors = [_api_error(), _api_error()]
        registrar = WebhookRegistrar(
            fake_registry, config, logger=logger, retry_policy=RetryPolicy.immediate()
        )

        await registrar.reconcile(registration)

        assert registrar.attempts == 3
        assert fake_registry.count("delete") == 3
        assert fake_registry.count("list") == 3
        assert fake_registry.count("create") == 3
        assert fake_registry.configurations == {"demo": registration}
        error_messages = [call.args[0] for call in logger.error.call_args_list]
        assert sum("could not register webhook" in m for m in error_messages) == 2

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_stop_registration(
        self, fake_registry, config, registration, logger
    ):
        fake_registry.delete_errors = [_api_error(status=403)]

        await reconcile(
            fake_registry,
            config,
            registration,
            logger=logger,
            retry_policy=RetryPolicy.immediate(),
        )

        assert fake_registry.configurations == {"demo": registration}
        warnings = [call.args[0] for call in logger.warning.call_args_list]
        assert any("could not cleanup webhook prior to start" in m for m in warnings)

    @pytest.mark.asyncio
    async def test_other_webhooks_are_reported(
        self, make_registry, config, registration, logger
    ):
        registry = make_registry(existing=["istio-validator", "gatekeeper"])

        await reconcile(
            registry, config, registration, logger=logger, retry_policy=RetryPolicy.immediate()
        )

        warnings = [call.args[0] for call in logger.warning.call_args_list]
        assert any("there are 2 webhook(s) already registered" in m for m in warnings)
        assert any("istio-validator" in m for m in warnings)
        assert any("gatekeeper" in m for m in warnings)

    @pytest.mark.asyncio
    async def test_own_configuration_is_not_reported(
        self, fake_registry, config, registration, logger
    ):
        fake_registry.delete_errors = [_api_error()]
        fake_registry.configurations["demo"] = object()

        await reconcile(
            fake_registry,
            config,
            registration,
            logger=logger,
            retry_policy=RetryPolicy.immediate(),
        )

        warnings = [call.args[0] for call in logger.warning.call_args_list]
        assert not any("already registered" in m for m in warnings)

    @pytest.mark.asyncio
    async def test_list_failure_is_only_a_warning(
        self, fake_registry, config, registration, logger
    ):
        fake_registry.list_errors = [_api_error()]

        await reconcile(
            fake_registry,
            config,
            registration,
            logger=logger,
            retry_policy=RetryPolicy.immediate(),
        )

        assert fake_registry.configurations == {"demo": registration}

    @pytest.mark.asyncio
    async def test_success_is_logged_with_hook_count(
        self, fake_registry, config, registration, logger
    ):
        await reconcile(
            fake_registry,
            config,
            registration,
            logger=logger,
            retry_policy=RetryPolicy.immediate(),
        )

        messages = [call.args[0] for call in logger.info.call_args_list]
        assert (
            "webhook for admission 'demo' correctly installed -- "
            "2 hook(s) active for this admission"
        ) in messages

    @pytest.mark.asyncio
    async def test_bounded_policy_gives_up(
        self, fake_registry, config, registration, logger
    ):
        fake_registry.create_errors = [_api_error() for _ in range(5)]
        registrar = WebhookRegistrar(
            fake_registry,
            config,
            logger=logger,
            retry_policy=RetryPolicy.immediate(max_attempts=3),
        )

        with pytest.raises(RegistrationError) as exc_info:
            await registrar.reconcile(registration)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.cause, KubernetesAPIError)
        assert fake_registry.count("create") == 3
        assert registrar.state is not RegistrationState.REGISTERED


class TestCancellation:
    """Tests for stopping registration from outside with asyncio."""

    @pytest.mark.asyncio
    async def test_timeout_interrupts_pending_registry_call(
        self, make_registry, config, registration, logger
    ):
        registry = make_registry()
        hung = asyncio.Event()

        async def hanging_delete(name):
            hung.set()
            await asyncio.Event().wait()

        registry.delete = hanging_delete

        with pytest.raises(TimeoutError):
            async with asyncio.timeout(0.2):
                await reconcile(registry, config, registration, logger=logger)

        assert hung.is_set()
        assert registry.count("create") == 0

    @pytest.mark.asyncio
    async def test_cancel_interrupts_backoff_sleep(
        self, make_registry, config, registration, logger
    ):
        registry = make_registry(create_errors=[_api_error() for _ in range(10)])
        registrar = WebhookRegistrar(
            registry,
            config,
            logger=logger,
            retry_policy=RetryPolicy(initial_delay=30.0, max_delay=30.0),
        )
        task = asyncio.create_task(registrar.reconcile(registration))

        async with asyncio.timeout(5):
            while registry.count("create") < 1:
                await asyncio.sleep(0.01)

        started = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert time.monotonic() - started < 5
        assert registry.count("create") == 1
        logger.debug.assert_any_call("retrying registration of demo in 30.00s")
