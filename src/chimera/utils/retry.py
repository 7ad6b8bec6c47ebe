"""
Retry policy for the webhook registration loop.

Registration keeps retrying until this process holds the webhook
configuration. A RetryPolicy bounds that loop by attempts or elapsed time
and spaces attempts with exponential backoff. Cancellation is left to
asyncio: wrapping the loop in ``asyncio.timeout()`` or cancelling its task
interrupts a pending registry call or backoff sleep.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from chimera.constants import (
    REGISTRATION_BACKOFF_FACTOR,
    REGISTRATION_INITIAL_BACKOFF_SECONDS,
    REGISTRATION_MAX_BACKOFF_SECONDS,
)

if TYPE_CHECKING:
    from chimera.settings import Settings


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounds and pacing for a retry loop.

    Attributes:
        max_attempts: Stop after this many attempts (None = unbounded)
        max_duration: Stop once this many seconds have elapsed (None = unbounded)
        initial_delay: Delay before the first retry, in seconds
        backoff_factor: Multiplier applied to the delay after each retry
        max_delay: Upper bound for a single delay, in seconds
    """

    max_attempts: int | None = None
    max_duration: float | None = None
    initial_delay: float = REGISTRATION_INITIAL_BACKOFF_SECONDS
    backoff_factor: float = REGISTRATION_BACKOFF_FACTOR
    max_delay: float = REGISTRATION_MAX_BACKOFF_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_duration is not None and self.max_duration < 0:
            raise ValueError("max_duration must not be negative")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")

    @classmethod
    def immediate(cls, max_attempts: int | None = None) -> "RetryPolicy":
        """Retry without any delay between attempts."""
        return cls(max_attempts=max_attempts, initial_delay=0.0, max_delay=0.0)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        """Build the registration policy from process settings (0 = unbounded)."""
        return cls(
            max_attempts=settings.registration_max_attempts or None,
            max_duration=settings.registration_max_duration_seconds or None,
            initial_delay=settings.registration_initial_backoff_seconds,
            max_delay=settings.registration_max_backoff_seconds,
        )

    @property
    def is_bounded(self) -> bool:
        return self.max_attempts is not None or self.max_duration is not None

    def delay_for(self, attempt: int) -> float:
        """
        Delay to wait after failed attempt number ``attempt`` (1-based).

        Args:
            attempt: Number of attempts made so far

        Returns:
            Seconds to sleep before the next attempt
        """
        delay = self.initial_delay * (self.backoff_factor ** max(attempt - 1, 0))
        return min(delay, self.max_delay)

    def should_retry(self, attempt: int, elapsed: float) -> bool:
        """
        Whether another attempt is allowed.

        Args:
            attempt: Number of attempts made so far
            elapsed: Seconds elapsed since the first attempt

        Returns:
            True when neither the attempt nor the duration bound is reached
        """
        if self.max_attempts is not None and attempt >= self.max_attempts:
            return False
        if self.max_duration is not None and elapsed >= self.max_duration:
            return False
        return True
