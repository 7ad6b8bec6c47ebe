"""Centralized process settings using pydantic-settings.

The core library takes an AdmissionConfig and never reads the environment.
These settings feed the process entry point, which builds the config,
retry policy, logging and observability from environment variables.
"""

from typing import Any

from pydantic import Field, Json
from pydantic_settings import BaseSettings, SettingsConfigDict

from chimera.constants import (
    DEFAULT_CALLBACK_PORT,
    DEFAULT_SERVING_KEY_SIZE,
    MIN_SERVING_KEY_SIZE,
    REGISTRATION_INITIAL_BACKOFF_SECONDS,
    REGISTRATION_MAX_BACKOFF_SECONDS,
)


class Settings(BaseSettings):
    """Admission server configuration loaded from environment variables.

    All settings have defaults suitable for a local test cluster. Override via
    the environment variable named in each field's validation alias.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Admission identity and addressing
    admission_name: str = Field(
        default="chimera",
        validation_alias="ADMISSION_NAME",
        description="Name of the ValidatingWebhookConfiguration and webhook name suffix",
    )
    callback_host: str = Field(
        default="",
        validation_alias="CALLBACK_HOST",
        description="Host the API server calls back (defaults to localhost)",
    )
    callback_port: int = Field(
        default=DEFAULT_CALLBACK_PORT,
        validation_alias="CALLBACK_PORT",
        description="Port the webhook server listens on and is called back on",
    )
    listen_host: str = Field(
        default="0.0.0.0",
        validation_alias="LISTEN_HOST",
        description="Host address to bind the webhook server",
    )
    kube_namespace: str = Field(
        default="",
        validation_alias="KUBE_NAMESPACE",
        description="Namespace of the Service fronting the webhook server",
    )
    kube_service: str = Field(
        default="",
        validation_alias="KUBE_SERVICE",
        description="Name of the Service fronting the webhook server",
    )
    tls_extra_sans: str = Field(
        default="",
        validation_alias="TLS_EXTRA_SANS",
        description="Comma-separated extra DNS names or IPs for the serving certificate",
    )

    # Certificate material
    cert_file: str = Field(
        default="",
        validation_alias="CERT_FILE",
        description="Serving certificate file (skips certificate generation)",
    )
    key_file: str = Field(
        default="",
        validation_alias="KEY_FILE",
        description="Serving private key file (skips certificate generation)",
    )
    ca_file: str = Field(
        default="",
        validation_alias="CA_FILE",
        description="CA bundle file used for registration with supplied certificates",
    )
    serving_key_size: int = Field(
        default=DEFAULT_SERVING_KEY_SIZE,
        ge=MIN_SERVING_KEY_SIZE,
        validation_alias="SERVING_KEY_SIZE",
        description="RSA key size of the generated serving certificate",
    )

    # Server behavior
    skip_admission_registration: bool = Field(
        default=False,
        validation_alias="SKIP_ADMISSION_REGISTRATION",
        description="Do not register the webhooks with the cluster",
    )
    insecure: bool = Field(
        default=False,
        validation_alias="INSECURE",
        description="Serve plain HTTP (local testing only, requires skipped registration)",
    )
    webhook_rules: Json[list[dict[str, Any]]] = Field(
        default='[{"apiGroups": [""], "apiVersions": ["v1"], '
        '"operations": ["CREATE"], "resources": ["pods"]}]',
        validation_alias="WEBHOOK_RULES",
        validate_default=True,
        description="JSON list of admission rules for the entry point webhook",
    )

    # Registration retry policy
    registration_max_attempts: int = Field(
        default=0,
        ge=0,
        validation_alias="REGISTRATION_MAX_ATTEMPTS",
        description="Maximum registration attempts (0 = unbounded)",
    )
    registration_max_duration_seconds: float = Field(
        default=0.0,
        ge=0.0,
        validation_alias="REGISTRATION_MAX_DURATION_SECONDS",
        description="Maximum time spent registering (0 = unbounded)",
    )
    registration_initial_backoff_seconds: float = Field(
        default=REGISTRATION_INITIAL_BACKOFF_SECONDS,
        ge=0.0,
        validation_alias="REGISTRATION_INITIAL_BACKOFF_SECONDS",
        description="Delay before the first registration retry",
    )
    registration_max_backoff_seconds: float = Field(
        default=REGISTRATION_MAX_BACKOFF_SECONDS,
        ge=0.0,
        validation_alias="REGISTRATION_MAX_BACKOFF_SECONDS",
        description="Upper bound for the registration retry delay",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root log level; DEBUG also logs admission request bodies",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Write one JSON object per log line",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Tag log lines with the admission request UID",
    )

    # Metrics endpoint
    metrics_enabled: bool = Field(
        default=True,
        validation_alias="METRICS_ENABLED",
        description="Serve Prometheus metrics",
    )
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port serving /metrics and /healthz",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Interface the metrics listener binds to",
    )
    tracing_enabled: bool = Field(
        default=False,
        validation_alias="OTEL_TRACING_ENABLED",
        description="Export OpenTelemetry traces",
    )
    tracing_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="OTLP gRPC collector endpoint",
    )
    tracing_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        validation_alias="OTEL_TRACES_SAMPLER_ARG",
        description="Fraction of root traces sampled",
    )

    @property
    def extra_sans(self) -> list[str]:
        """Parse extra SAN entries from the comma-separated string."""
        return [san.strip() for san in self.tls_extra_sans.split(",") if san.strip()]
