"""
AdmissionReview wire models (admission.k8s.io/v1).

These models decode the review the API server posts to a webhook and
encode the review sent back. Field names follow the Kubernetes JSON
casing through aliases; unknown fields sent by newer API servers are kept.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chimera.constants import ADMISSION_REVIEW_API_VERSION, ADMISSION_REVIEW_KIND
from chimera.models.decision import AdmissionDecision


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


class GroupVersionKind(_WireModel):
    group: str = ""
    version: str = ""
    kind: str = ""


class GroupVersionResource(_WireModel):
    group: str = ""
    version: str = ""
    resource: str = ""


class UserInfo(_WireModel):
    username: str = ""
    uid: str = ""
    groups: list[str] = Field(default_factory=list)
    extra: dict[str, list[str]] | None = None


class AdmissionRequest(_WireModel):
    """The admission request embedded in an incoming AdmissionReview."""

    uid: str = Field(..., description="Correlation identifier echoed in the response")
    kind: GroupVersionKind | None = None
    resource: GroupVersionResource | None = None
    sub_resource: str | None = None
    request_kind: GroupVersionKind | None = None
    request_resource: GroupVersionResource | None = None
    request_sub_resource: str | None = None
    name: str | None = None
    namespace: str | None = None
    operation: str = Field(..., description="CREATE, UPDATE, DELETE or CONNECT")
    user_info: UserInfo | None = None
    obj: dict[str, Any] | None = Field(default=None, alias="object")
    old_obj: dict[str, Any] | None = Field(default=None, alias="oldObject")
    dry_run: bool | None = None
    options: dict[str, Any] | None = None


class ResponseStatus(_WireModel):
    code: int | None = None
    message: str | None = None


class AdmissionResponse(_WireModel):
    """The admission response returned to the API server."""

    uid: str
    allowed: bool
    status: ResponseStatus | None = None
    warnings: list[str] | None = None

    @classmethod
    def from_decision(cls, uid: str, decision: AdmissionDecision) -> "AdmissionResponse":
        """
        Build a response for ``uid`` from a decision.

        The status block is only attached when the request was denied, since
        the API server only reads it on denial.
        """
        status = None
        if not decision.allowed and (
            decision.code is not None or decision.message is not None
        ):
            status = ResponseStatus(code=decision.code, message=decision.message)
        return cls(uid=uid, allowed=decision.allowed, status=status)


class AdmissionReview(_WireModel):
    """AdmissionReview envelope carrying either a request or a response."""

    api_version: str = ADMISSION_REVIEW_API_VERSION
    kind: str = ADMISSION_REVIEW_KIND
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    def respond(self, decision: AdmissionDecision) -> "AdmissionReview":
        """Wrap ``decision`` into a response review correlated with this request."""
        if self.request is None:
            raise ValueError("AdmissionReview carries no request to respond to")
        return AdmissionReview(
            api_version=self.api_version,
            kind=self.kind,
            response=AdmissionResponse.from_decision(self.request.uid, decision),
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with Kubernetes field names, omitting unset fields."""
        return self.model_dump(by_alias=True, exclude_none=True)
