"""Unit tests for AdmissionReview wire models."""

import json

import pytest
from pydantic import ValidationError

from chimera.models import AdmissionDecision, AdmissionReview


class TestAdmissionReviewDecoding:
    """Tests for decoding reviews sent by the API server."""

    def test_decodes_request_fields(self, make_review):
        review = AdmissionReview.model_validate_json(
            json.dumps(make_review(uid="uid-1", operation="UPDATE"))
        )

        request = review.request
        assert request.uid == "uid-1"
        assert request.operation == "UPDATE"
        assert request.kind.kind == "Pod"
        assert request.resource.resource == "pods"
        assert request.user_info.username == "kubernetes-admin"
        assert request.obj["metadata"]["name"] == "test-pod"
        assert request.old_obj is None
        assert request.dry_run is False

    def test_unknown_fields_are_tolerated(self, make_review):
        payload = make_review(uid="uid-2", futureField={"x": 1})
        review = AdmissionReview.model_validate(payload)
        assert review.request.uid == "uid-2"

    def test_missing_uid_is_rejected(self, make_review):
        payload = make_review()
        del payload["request"]["uid"]
        with pytest.raises(ValidationError):
            AdmissionReview.model_validate(payload)

    def test_malformed_json_is_rejected(self):
        with pytest.raises(ValidationError):
            AdmissionReview.model_validate_json(b"{not json")


class TestAdmissionReviewEncoding:
    """Tests for the response review sent back."""

    def test_denial_carries_status(self, make_review):
        review = AdmissionReview.model_validate(make_review(uid="uid-3"))
        decision = AdmissionDecision.reject().with_code(403).with_message("denied for test")

        wire = review.respond(decision).to_wire()

        assert wire == {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "response": {
                "uid": "uid-3",
                "allowed": False,
                "status": {"code": 403, "message": "denied for test"},
            },
        }

    def test_allowance_omits_status(self, make_review):
        review = AdmissionReview.model_validate(make_review(uid="uid-4"))

        wire = review.respond(AdmissionDecision.allow()).to_wire()

        assert wire["response"] == {"uid": "uid-4", "allowed": True}
        assert "request" not in wire

    def test_bare_denial_omits_status(self, make_review):
        review = AdmissionReview.model_validate(make_review(uid="uid-5"))

        wire = review.respond(AdmissionDecision.reject()).to_wire()

        assert wire["response"] == {"uid": "uid-5", "allowed": False}

    def test_respond_without_request_raises(self):
        with pytest.raises(ValueError):
            AdmissionReview().respond(AdmissionDecision.allow())
