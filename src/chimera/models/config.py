"""
Admission configuration models.

An AdmissionConfig is an immutable value: it is built by the caller before
the server starts and never mutated afterwards. Defaulting (callback host,
synthesized webhook paths) produces a new snapshot via ``with_defaults()``.
"""

import dataclasses
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from kubernetes import client

from chimera.constants import (
    DEFAULT_CALLBACK_HOST,
    DEFAULT_CALLBACK_PORT,
    FAILURE_POLICIES,
    SYNTHESIZED_NAME_PREFIX,
    VALIDATE_PATH_PREFIX,
)
from chimera.errors import ConfigurationError
from chimera.models.decision import DecisionFunction

if TYPE_CHECKING:
    from chimera.settings import Settings


def generate_validate_path() -> str:
    """Return a random, unguessable webhook path."""
    return f"{VALIDATE_PATH_PREFIX}{uuid.uuid4()}"


@dataclass(frozen=True)
class WebhookDefinition:
    """
    One validating webhook: which operations trigger it and who decides.

    Attributes:
        rules: Groups/versions/resources/operations that trigger the call
        callback: Decision function invoked for each admission request
        name: Stable name; synthesized from the ordinal position when unset
        path: HTTP path; a random one is synthesized when unset
        failure_policy: ``Fail`` or ``Ignore``; cluster default when unset
    """

    rules: Sequence[client.V1RuleWithOperations]
    callback: DecisionFunction
    name: str | None = None
    path: str | None = None
    failure_policy: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))
        if self.failure_policy is not None and self.failure_policy not in FAILURE_POLICIES:
            raise ConfigurationError(
                f"must be one of {sorted(FAILURE_POLICIES)}, got {self.failure_policy!r}",
                field="failure_policy",
            )
        if self.path is not None and not self.path.startswith("/"):
            raise ConfigurationError(
                f"must start with '/', got {self.path!r}", field="path"
            )

    def resolved_name(self, index: int) -> str:
        return self.name or f"{SYNTHESIZED_NAME_PREFIX}-{index}"


@dataclass(frozen=True)
class AdmissionConfig:
    """
    Root configuration of an admission server.

    When both ``kube_namespace`` and ``kube_service`` are set, the API server
    reaches the webhooks through that Service; otherwise through an HTTPS URL
    built from ``callback_host`` and ``callback_port``.
    """

    name: str
    webhooks: Sequence[WebhookDefinition] = ()
    callback_host: str = ""
    callback_port: int = DEFAULT_CALLBACK_PORT
    kube_namespace: str = ""
    kube_service: str = ""
    tls_extra_sans: Sequence[str] = ()
    cert_file: str | None = None
    key_file: str | None = None
    ca_file: str | None = None
    skip_admission_registration: bool = False
    insecure: bool = False
    serving_key_size: int | None = None
    listen_host: str = "0.0.0.0"

    def __post_init__(self) -> None:
        object.__setattr__(self, "webhooks", tuple(self.webhooks))
        object.__setattr__(self, "tls_extra_sans", tuple(self.tls_extra_sans))

        if not self.name:
            raise ConfigurationError("must not be empty", field="name")
        if not 0 <= self.callback_port <= 65535:
            raise ConfigurationError(
                f"must be between 0 and 65535, got {self.callback_port}",
                field="callback_port",
            )
        if bool(self.cert_file) != bool(self.key_file):
            raise ConfigurationError(
                "cert_file and key_file must be supplied together", field="cert_file"
            )
        if self.insecure and not self.skip_admission_registration:
            raise ConfigurationError(
                "plain HTTP serving requires skip_admission_registration, "
                "the API server only calls webhooks over HTTPS",
                field="insecure",
            )

        paths = [webhook.path for webhook in self.webhooks if webhook.path]
        if len(paths) != len(set(paths)):
            raise ConfigurationError("webhook paths must be unique", field="webhooks")

    @property
    def uses_service_reference(self) -> bool:
        return bool(self.kube_namespace and self.kube_service)

    @property
    def has_certificate_files(self) -> bool:
        return bool(self.cert_file and self.key_file)

    def registered_name(self, index: int) -> str:
        """Cluster-unique name of the webhook at ``index``."""
        return f"{self.webhooks[index].resolved_name(index)}.{self.name}"

    def with_defaults(self) -> "AdmissionConfig":
        """
        Return a snapshot with the callback host and webhook paths resolved.

        The caller's object is left untouched, so handler installation and
        registration both observe the same synthesized paths.
        """
        webhooks = tuple(
            webhook
            if webhook.path
            else dataclasses.replace(webhook, path=generate_validate_path())
            for webhook in self.webhooks
        )
        return dataclasses.replace(
            self,
            callback_host=self.callback_host or DEFAULT_CALLBACK_HOST,
            webhooks=webhooks,
        )

    @classmethod
    def from_settings(
        cls, settings: "Settings", webhooks: Iterable[WebhookDefinition]
    ) -> "AdmissionConfig":
        """Build a config from environment-backed settings plus webhooks."""
        return cls(
            name=settings.admission_name,
            webhooks=tuple(webhooks),
            callback_host=settings.callback_host,
            callback_port=settings.callback_port,
            kube_namespace=settings.kube_namespace,
            kube_service=settings.kube_service,
            tls_extra_sans=settings.extra_sans,
            cert_file=settings.cert_file or None,
            key_file=settings.key_file or None,
            ca_file=settings.ca_file or None,
            skip_admission_registration=settings.skip_admission_registration,
            insecure=settings.insecure,
            serving_key_size=settings.serving_key_size,
            listen_host=settings.listen_host,
        )


def rule_from_dict(data: Mapping[str, Any]) -> client.V1RuleWithOperations:
    """
    Build a rule from its wire form, e.g. ``{"apiGroups": [""], ...}``.

    Unknown keys are ignored.
    """
    fields = {
        attribute: data[key]
        for attribute, key in client.V1RuleWithOperations.attribute_map.items()
        if key in data
    }
    return client.V1RuleWithOperations(**fields)
