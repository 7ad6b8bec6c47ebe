"""
Error hierarchy for the admission webhook kit.

Errors are categorized so callers can tell fatal startup failures
(certificates, configuration) apart from registry failures that the
registration loop retries on its own.
"""


class ChimeraError(Exception):
    """
    Base class for errors raised while serving or registering webhooks.

    Carries a category, whether a retry can help, and a hint for the operator.
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = False,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize the error.

        Args:
            message: What went wrong
            category: Error category (certificate, configuration, registration, ...)
            retryable: Whether retrying the same operation can succeed
            user_action: What the user should do to resolve the issue
            cause: Exception this error wraps, if any
        """
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Message followed by the operator hint, when there is one."""
        text = super().__str__()
        if self.user_action:
            return f"{text}\nAction required: {self.user_action}"
        return text


class ConfigurationError(ChimeraError):
    """Error in the admission configuration supplied by the caller."""

    def __init__(self, message: str, field: str | None = None):
        if field:
            message = f"Invalid configuration for '{field}': {message}"
        super().__init__(
            message=message,
            category="configuration",
            retryable=False,
            user_action="Review and correct the admission configuration",
        )


class CertificateError(ChimeraError):
    """Trust material could not be generated or loaded. Always fatal."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="certificate",
            retryable=False,
            user_action="Restart with fresh certificate material",
            cause=cause,
        )


class KubernetesAPIError(ChimeraError):
    """Error communicating with the Kubernetes API."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        if reason:
            message = f"{message} (reason: {reason})"
        self.reason = reason
        self.status = status

        super().__init__(
            message=f"Kubernetes API error: {message}",
            category="external",
            retryable=True,
            user_action="Check RBAC permissions and cluster connectivity",
            cause=cause,
        )


class WebhookConfigurationNotFoundError(ChimeraError):
    """The named validating webhook configuration does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            message=f"Validating webhook configuration {name!r} not found",
            category="not_found",
            retryable=False,
        )


class RegistrationError(ChimeraError):
    """Registration gave up before the webhook configuration was installed."""

    def __init__(self, name: str, attempts: int, cause: Exception | None = None):
        self.name = name
        self.attempts = attempts
        super().__init__(
            message=(
                f"Could not register validating webhook configuration {name!r} "
                f"after {attempts} attempt(s)"
            ),
            category="registration",
            retryable=True,
            user_action="Inspect the logged registry errors and cluster state",
            cause=cause,
        )
