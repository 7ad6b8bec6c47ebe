"""
Admission server orchestration.

Startup sequence of an AdmissionServer:
1. Snapshot the configuration with defaults (callback host, webhook paths)
2. Use the caller's certificate files or generate a CA and serving
   certificate into temporary files
3. Route one POST path per webhook to its AdmissionHandler
4. Unless skipped, register the webhooks with the cluster (blocks until done)
5. Serve HTTPS (or plain HTTP for local testing)

Usage:
    python -m chimera
    # Or via the console script:
    chimera

Environment Variables:
    ADMISSION_NAME: Name of the ValidatingWebhookConfiguration
    CALLBACK_HOST / CALLBACK_PORT: Address the API server calls back
    WEBHOOK_RULES: JSON list of rules for the smoke-test webhook
"""

import asyncio
import contextlib
import logging
import os
import ssl
import sys
import tempfile

from aiohttp import web

from chimera.constants import (
    CERT_FILE_MODE,
    DEFAULT_SERVING_KEY_SIZE,
    KEY_FILE_MODE,
    TEMP_CA_CERT_PATTERN,
    TEMP_CERT_PATTERN,
    TEMP_KEY_PATTERN,
)
from chimera.errors import ConfigurationError
from chimera.models.config import AdmissionConfig, WebhookDefinition, rule_from_dict
from chimera.models.decision import allow_request
from chimera.observability.logging import (
    AdmissionLogger,
    LoggerSink,
    setup_structured_logging,
)
from chimera.observability.metrics import MetricsServer
from chimera.observability.tracing import setup_tracing, shutdown_tracing
from chimera.services.registrar import WebhookRegistrar, build_registration
from chimera.settings import Settings
from chimera.utils.certificates import generate_ca, generate_serving_certificate
from chimera.utils.kubernetes import KubernetesWebhookRegistry, WebhookRegistry
from chimera.utils.retry import RetryPolicy
from chimera.webhooks.handler import AdmissionHandler


def _remove_file(path: str) -> None:
    with contextlib.suppress(OSError):
        os.remove(path)


class AdmissionServer:
    """
    Serves the webhooks of one AdmissionConfig and registers them.

    Each instance owns its own aiohttp application, so several servers can
    coexist in one process as long as they listen on different ports.
    """

    def __init__(
        self,
        config: AdmissionConfig,
        registry: WebhookRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        logger: LoggerSink | None = None,
    ):
        """
        Initialize the server.

        Args:
            config: Admission configuration; it is not modified
            registry: Cluster registry, defaults to the Kubernetes API
            retry_policy: Registration retry policy, defaults to unbounded
            logger: Logger sink shared by all components
        """
        self.config = config.with_defaults()
        self.registry = registry
        self.retry_policy = retry_policy
        self.logger = logger or AdmissionLogger(__name__)

        self.app = web.Application()
        self.handlers: dict[str, AdmissionHandler] = {}
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

        self.cert_file: str | None = None
        self.key_file: str | None = None
        self.ca_file: str | None = None
        self._cleanup = contextlib.ExitStack()
        self._setup_routes()

    def _setup_routes(self) -> None:
        for index, webhook in enumerate(self.config.webhooks):
            name = self.config.registered_name(index)
            handler = AdmissionHandler(name, webhook.callback, logger=self.logger)
            self.app.router.add_post(webhook.path, handler)
            self.handlers[webhook.path] = handler
            self.logger.debug(f"serving webhook {name} on {webhook.path}")

    def _write_temp_file(
        self, pattern: tuple[str, str], data: bytes, mode: int
    ) -> str:
        prefix, suffix = pattern
        fd, path = tempfile.mkstemp(prefix=prefix, suffix=suffix)
        self._cleanup.callback(_remove_file, path)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(path, mode)
        return path

    def prepare_certificates(self) -> None:
        """
        Resolve the serving certificate, key and CA bundle files.

        Caller supplied files are used as-is. Otherwise a fresh CA and
        serving certificate are generated and written to temporary files
        that are removed when the server stops.

        Raises:
            ConfigurationError: If supplied certificate files are unusable
            CertificateError: If certificate generation fails
        """
        config = self.config

        if config.has_certificate_files:
            for field_name in ("cert_file", "key_file"):
                path = getattr(config, field_name)
                if not os.path.isfile(path) or os.path.getsize(path) == 0:
                    raise ConfigurationError(
                        f"{path!r} is missing or empty", field=field_name
                    )
            self.cert_file = config.cert_file
            self.key_file = config.key_file
            self.ca_file = config.ca_file
            return

        if config.insecure:
            return

        ca = generate_ca()
        serving = generate_serving_certificate(
            ca,
            config.callback_host,
            extra_sans=config.tls_extra_sans,
            key_size=config.serving_key_size or DEFAULT_SERVING_KEY_SIZE,
        )
        self.ca_file = self._write_temp_file(
            TEMP_CA_CERT_PATTERN, ca.certificate_pem, CERT_FILE_MODE
        )
        self.cert_file = self._write_temp_file(
            TEMP_CERT_PATTERN, serving.certificate_pem, CERT_FILE_MODE
        )
        self.key_file = self._write_temp_file(
            TEMP_KEY_PATTERN, serving.private_key_pem, KEY_FILE_MODE
        )

    def _read_ca_bundle(self) -> bytes:
        if not self.ca_file:
            raise ConfigurationError(
                "a CA bundle is required to register supplied certificates",
                field="ca_file",
            )
        try:
            with open(self.ca_file, "rb") as f:
                ca_bundle = f.read()
        except OSError as e:
            raise ConfigurationError(
                f"could not read {self.ca_file!r}: {e}", field="ca_file"
            ) from e
        if not ca_bundle:
            raise ConfigurationError(f"{self.ca_file!r} is empty", field="ca_file")
        return ca_bundle

    async def register(self) -> None:
        """Register the webhooks, blocking until the registration is installed."""
        registration = build_registration(self.config, self._read_ca_bundle())
        if self.registry is None:
            self.registry = KubernetesWebhookRegistry()
        registrar = WebhookRegistrar(
            self.registry,
            self.config,
            logger=self.logger,
            retry_policy=self.retry_policy,
        )
        await registrar.reconcile(registration)

    def ssl_context(self) -> ssl.SSLContext | None:
        """TLS context for the serving certificate, None when insecure."""
        if self.config.insecure:
            return None
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile=self.cert_file, keyfile=self.key_file)
        return context

    async def start(self) -> None:
        """
        Prepare certificates, register the webhooks and start listening.

        Any failure releases what was acquired so far and propagates.
        """
        try:
            self.prepare_certificates()
            if not self.config.skip_admission_registration:
                await self.register()
            ssl_context = self.ssl_context()

            if ssl_context is None:
                self.logger.warning(
                    f"Starting plain HTTP server on :{self.config.callback_port} "
                    "- not reachable by the API server"
                )
            else:
                self.logger.info(
                    f"Starting TLS server on :{self.config.callback_port} "
                    f"- using key: {self.key_file}, cert {self.cert_file}, "
                    f"CABundle {self.ca_file}",
                    admission=self.config.name,
                )

            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            self.site = web.TCPSite(
                self.runner,
                self.config.listen_host,
                self.config.callback_port,
                ssl_context=ssl_context,
            )
            await self.site.start()
        except BaseException:
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop listening and remove generated certificate files."""
        try:
            if self.site:
                await self.site.stop()
                self.site = None

            if self.runner:
                await self.runner.cleanup()
                self.runner = None
        finally:
            self._cleanup.close()

        self.logger.info("Admission server stopped", admission=self.config.name)

    async def serve_forever(self) -> None:
        """Block until the awaiting task is cancelled."""
        await asyncio.Event().wait()

    async def run(self) -> None:
        """Start, serve until cancelled, then stop."""
        await self.start()
        try:
            await self.serve_forever()
        finally:
            await self.stop()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


def start_tls_server(
    config: AdmissionConfig,
    registry: WebhookRegistry | None = None,
    retry_policy: RetryPolicy | None = None,
    logger: LoggerSink | None = None,
) -> None:
    """
    Run an admission server until interrupted.

    Startup errors (configuration, certificates, exhausted registration)
    are raised before any request is served.
    """
    server = AdmissionServer(
        config, registry=registry, retry_policy=retry_policy, logger=logger
    )
    asyncio.run(server.run())


def smoke_test_webhook(settings: Settings) -> WebhookDefinition:
    """Webhook admitting everything matched by WEBHOOK_RULES."""
    return WebhookDefinition(
        rules=[rule_from_dict(rule) for rule in settings.webhook_rules],
        callback=allow_request,
    )


async def _serve(settings: Settings, config: AdmissionConfig) -> None:
    server = AdmissionServer(config, retry_policy=RetryPolicy.from_settings(settings))
    if not settings.metrics_enabled:
        await server.run()
        return

    async with MetricsServer(port=settings.metrics_port, host=settings.metrics_host):
        await server.run()


def main() -> None:
    """
    Main entry point for the admission server process.

    This function:
    1. Loads settings from the environment
    2. Configures logging and tracing
    3. Builds a single allow-all webhook from WEBHOOK_RULES
    4. Runs the server (and the metrics endpoint) until interrupted
    """
    try:
        settings = Settings()
    except Exception as e:
        logging.basicConfig()
        logging.error(f"Invalid settings: {e}")
        sys.exit(1)

    setup_structured_logging(
        log_level=settings.log_level,
        enable_json_formatting=settings.json_logs,
        correlation_id_enabled=settings.correlation_ids,
    )
    setup_tracing(
        enabled=settings.tracing_enabled,
        endpoint=settings.tracing_endpoint,
        sample_rate=settings.tracing_sample_rate,
    )

    try:
        config = AdmissionConfig.from_settings(settings, [smoke_test_webhook(settings)])
        asyncio.run(_serve(settings, config))
    except KeyboardInterrupt:
        logging.info("Received shutdown signal")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Admission server failed with error: {e}")
        sys.exit(1)
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    main()
