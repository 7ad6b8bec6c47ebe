"""
Admission decisions returned by webhook decision functions.

A decision function receives the AdmissionRequest of one review and returns
an AdmissionDecision, either directly or as a coroutine:

    def deny_privileged(request: AdmissionRequest) -> AdmissionDecision:
        if is_privileged(request.obj):
            return AdmissionDecision.reject().with_code(403).with_message("no")
        return AdmissionDecision.allow()
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

if TYPE_CHECKING:
    from chimera.models.review import AdmissionRequest


class AdmissionDecision(BaseModel):
    """
    Outcome of a decision function.

    ``code`` and ``message`` only carry meaning on denial. Setting them on an
    allowed decision is a no-op: they are silently dropped.
    """

    model_config = ConfigDict(frozen=True)

    allowed: bool = Field(..., description="Whether the request is admitted")
    code: int | None = Field(None, description="HTTP-style status code on denial")
    message: str | None = Field(None, description="Rejection message on denial")

    # "allowed" is declared first, so info.data holds its coerced bool
    @field_validator("code", "message")
    @classmethod
    def drop_result_when_allowed(cls, value: Any, info: ValidationInfo) -> Any:
        if info.data.get("allowed") is True:
            return None
        return value

    @classmethod
    def allow(cls) -> Self:
        return cls(allowed=True)

    @classmethod
    def reject(cls, code: int | None = None, message: str | None = None) -> Self:
        return cls(allowed=False, code=code, message=message)

    def with_code(self, code: int) -> Self:
        """Return a copy carrying ``code``; unchanged when allowed."""
        if self.allowed:
            return self
        return self.model_copy(update={"code": code})

    def with_message(self, message: str) -> Self:
        """Return a copy carrying ``message``; unchanged when allowed."""
        if self.allowed:
            return self
        return self.model_copy(update={"message": message})


DecisionFunction = Callable[
    ["AdmissionRequest"], AdmissionDecision | Awaitable[AdmissionDecision]
]


def allow_request(request: "AdmissionRequest") -> AdmissionDecision:
    """Decision function that admits every request."""
    return AdmissionDecision.allow()


def reject_request(request: "AdmissionRequest") -> AdmissionDecision:
    """Decision function that denies every request."""
    return AdmissionDecision.reject()
