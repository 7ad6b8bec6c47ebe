"""
Webhook registrar: desired state and reconciliation of webhook registration.

build_registration() turns an AdmissionConfig into the
ValidatingWebhookConfiguration the cluster should hold. WebhookRegistrar
then converges the cluster towards it with a delete, list, create cycle
that repeats until create succeeds:

    Idle -> Deleting -> Listing -> Creating -> Registered
                ^                     |
                +----- (failure) -----+

Other validating webhook configurations found while listing are reported
as warnings, never treated as failures.
"""

import asyncio
import base64
import enum
import ipaddress
import time

from kubernetes import client

from chimera.constants import ADMISSION_REVIEW_VERSIONS, SIDE_EFFECTS_NONE
from chimera.errors import RegistrationError, WebhookConfigurationNotFoundError
from chimera.models.config import AdmissionConfig
from chimera.observability.logging import AdmissionLogger, LoggerSink
from chimera.observability.metrics import metrics_collector
from chimera.observability.tracing import get_tracer
from chimera.utils.kubernetes import WebhookRegistry
from chimera.utils.retry import RetryPolicy

tracer = get_tracer(__name__)


class RegistrationState(enum.Enum):
    IDLE = "Idle"
    DELETING = "Deleting"
    LISTING = "Listing"
    CREATING = "Creating"
    REGISTERED = "Registered"


def callback_url(host: str, port: int, path: str) -> str:
    """Build the HTTPS callback URL, bracketing IPv6 literals."""
    try:
        if isinstance(ipaddress.ip_address(host), ipaddress.IPv6Address):
            host = f"[{host}]"
    except ValueError:
        pass
    return f"https://{host}:{port}{path}"


def _client_config(
    config: AdmissionConfig, path: str, ca_bundle: bytes
) -> client.AdmissionregistrationV1WebhookClientConfig:
    # The kubernetes client transports byte fields as base64 strings
    encoded_bundle = base64.b64encode(ca_bundle).decode("ascii")

    if config.uses_service_reference:
        return client.AdmissionregistrationV1WebhookClientConfig(
            ca_bundle=encoded_bundle,
            service=client.AdmissionregistrationV1ServiceReference(
                namespace=config.kube_namespace,
                name=config.kube_service,
                path=path,
                port=config.callback_port,
            ),
        )

    return client.AdmissionregistrationV1WebhookClientConfig(
        ca_bundle=encoded_bundle,
        url=callback_url(config.callback_host, config.callback_port, path),
    )


def build_registration(
    config: AdmissionConfig, ca_bundle: bytes
) -> client.V1ValidatingWebhookConfiguration:
    """
    Build the desired ValidatingWebhookConfiguration.

    Every webhook declares no side effects and the v1 review version; the
    failure policy is only set when the webhook defines one. Webhooks without
    a path get none here, so pass a config returned by ``with_defaults()``.

    Args:
        config: Admission configuration (with paths resolved)
        ca_bundle: PEM encoded CA certificate that signed the serving certificate

    Returns:
        The registration object to create in the cluster
    """
    webhooks = []
    for index, webhook in enumerate(config.webhooks):
        webhooks.append(
            client.V1ValidatingWebhook(
                name=config.registered_name(index),
                client_config=_client_config(config, webhook.path or "", ca_bundle),
                rules=list(webhook.rules),
                side_effects=SIDE_EFFECTS_NONE,
                admission_review_versions=list(ADMISSION_REVIEW_VERSIONS),
                failure_policy=webhook.failure_policy,
            )
        )

    return client.V1ValidatingWebhookConfiguration(
        api_version="admissionregistration.k8s.io/v1",
        kind="ValidatingWebhookConfiguration",
        metadata=client.V1ObjectMeta(name=config.name),
        webhooks=webhooks,
    )


class WebhookRegistrar:
    """
    Installs a ValidatingWebhookConfiguration, replacing any previous copy.

    Runs once on the startup path. It is not re-entrant and is not meant
    to be shared between concurrent tasks.
    """

    def __init__(
        self,
        registry: WebhookRegistry,
        config: AdmissionConfig,
        logger: LoggerSink | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """
        Initialize the registrar.

        Args:
            registry: Cluster registry client
            config: Admission configuration being registered
            logger: Logger sink, defaults to the module logger
            retry_policy: Retry bounds and backoff, defaults to unbounded
        """
        self.registry = registry
        self.config = config
        self.logger = logger or AdmissionLogger(__name__)
        self.retry_policy = retry_policy or RetryPolicy()
        self.state = RegistrationState.IDLE
        self.attempts = 0

    async def _delete_previous(self, name: str) -> None:
        self.state = RegistrationState.DELETING
        try:
            await self.registry.delete(name)
            self.logger.debug(f"removed previous webhook configuration {name}")
        except WebhookConfigurationNotFoundError:
            self.logger.debug(f"no previous webhook configuration {name} to clean up")
        except Exception as e:
            self.logger.warning(
                f"could not cleanup webhook prior to start: {e}",
                admission=name,
                error_type=type(e).__name__,
            )

    async def _warn_about_other_webhooks(self, name: str) -> None:
        self.state = RegistrationState.LISTING
        try:
            registered = await self.registry.list_names()
        except Exception as e:
            self.logger.warning(
                f"could not list current validation webhooks: {e}",
                admission=name,
                error_type=type(e).__name__,
            )
            return

        others = [other for other in registered if other != name]
        if others:
            self.logger.warning(
                f"there are {len(others)} webhook(s) already registered besides "
                "this admission that could reject requests:",
                admission=name,
            )
            for other in others:
                self.logger.warning(f"  - {other}", admission=name)

    async def _create(
        self, registration: client.V1ValidatingWebhookConfiguration
    ) -> Exception | None:
        self.state = RegistrationState.CREATING
        name = registration.metadata.name
        try:
            await self.registry.create(registration)
        except Exception as e:
            self.logger.error(
                f"could not register webhook: {e}",
                admission=name,
                attempt=self.attempts,
                error_type=type(e).__name__,
            )
            metrics_collector.record_registration_attempt(name, success=False)
            return e

        metrics_collector.record_registration_attempt(name, success=True)
        return None

    async def reconcile(
        self, registration: client.V1ValidatingWebhookConfiguration
    ) -> None:
        """
        Converge the cluster on ``registration``.

        Repeats delete, list and create until create succeeds or the retry
        policy is exhausted. With the default policy this blocks until the
        registration is installed or the awaiting task is cancelled.

        Args:
            registration: Object produced by build_registration()

        Raises:
            RegistrationError: If a bounded retry policy is exhausted
        """
        name = registration.metadata.name
        hook_count = len(registration.webhooks or [])
        started = time.monotonic()
        self.attempts = 0

        while True:
            self.attempts += 1
            with tracer.start_as_current_span("webhook_registration_attempt") as span:
                span.set_attribute("admission.name", name)
                span.set_attribute("registration.attempt", self.attempts)

                await self._delete_previous(name)
                await self._warn_about_other_webhooks(name)
                error = await self._create(registration)

                if error is None:
                    self.state = RegistrationState.REGISTERED
                    metrics_collector.set_registered_webhooks(name, hook_count)
                    self.logger.info(
                        f"webhook for admission {name!r} correctly installed -- "
                        f"{hook_count} hook(s) active for this admission",
                        admission=name,
                        attempt=self.attempts,
                        registered_webhooks=hook_count,
                    )
                    return

                span.set_attribute("error", True)
                span.record_exception(error)

            elapsed = time.monotonic() - started
            if not self.retry_policy.should_retry(self.attempts, elapsed):
                self.state = RegistrationState.IDLE
                raise RegistrationError(name, self.attempts, cause=error) from error

            delay = self.retry_policy.delay_for(self.attempts)
            if delay > 0:
                self.logger.debug(f"retrying registration of {name} in {delay:.2f}s")
                await asyncio.sleep(delay)


async def reconcile(
    registry: WebhookRegistry,
    config: AdmissionConfig,
    registration: client.V1ValidatingWebhookConfiguration,
    logger: LoggerSink | None = None,
    retry_policy: RetryPolicy | None = None,
) -> None:
    """Register ``registration`` for ``config`` using a one-off WebhookRegistrar."""
    registrar = WebhookRegistrar(
        registry, config, logger=logger, retry_policy=retry_policy
    )
    await registrar.reconcile(registration)
