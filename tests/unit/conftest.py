"""Shared pytest fixtures for admission webhook kit tests."""

import uuid

import pytest
from kubernetes import client

from chimera.errors import WebhookConfigurationNotFoundError
from chimera.utils.certificates import generate_ca


class FakeWebhookRegistry:
    """In-memory WebhookRegistry recording every call.

    ``delete_errors``, ``list_errors`` and ``create_errors`` are consumed one
    per call; a ``None`` entry (or an exhausted list) means the call succeeds.
    """

    def __init__(self, existing=None, delete_errors=None, list_errors=None, create_errors=None):
        self.configurations = dict.fromkeys(existing or [])
        self.delete_errors = list(delete_errors or [])
        self.list_errors = list(list_errors or [])
        self.create_errors = list(create_errors or [])
        self.calls: list[tuple[str, str]] = []

    @staticmethod
    def _next_error(errors):
        if errors:
            return errors.pop(0)
        return None

    async def delete(self, name: str) -> None:
        self.calls.append(("delete", name))
        error = self._next_error(self.delete_errors)
        if error is not None:
            raise error
        if name not in self.configurations:
            raise WebhookConfigurationNotFoundError(name)
        del self.configurations[name]

    async def list_names(self) -> list[str]:
        self.calls.append(("list", ""))
        error = self._next_error(self.list_errors)
        if error is not None:
            raise error
        return list(self.configurations)

    async def create(self, configuration) -> None:
        name = configuration.metadata.name
        self.calls.append(("create", name))
        error = self._next_error(self.create_errors)
        if error is not None:
            raise error
        if name in self.configurations:
            raise RuntimeError(f"{name} already exists")
        self.configurations[name] = configuration

    def count(self, operation: str) -> int:
        return sum(1 for call, _ in self.calls if call == operation)


@pytest.fixture
def fake_registry():
    """Empty in-memory registry."""
    return FakeWebhookRegistry()


@pytest.fixture(scope="session")
def certificate_authority():
    """One CA per test session; RSA key generation is slow."""
    return generate_ca()


@pytest.fixture
def pod_rule():
    return client.V1RuleWithOperations(
        api_groups=[""],
        api_versions=["v1"],
        operations=["CREATE"],
        resources=["pods"],
    )


def _review(uid: str | None = None, operation: str = "CREATE", **request_fields) -> dict:
    """Build an AdmissionReview as the API server would send it."""
    request = {
        "uid": uid or str(uuid.uuid4()),
        "kind": {"group": "", "version": "v1", "kind": "Pod"},
        "resource": {"group": "", "version": "v1", "resource": "pods"},
        "name": "test-pod",
        "namespace": "default",
        "operation": operation,
        "userInfo": {"username": "kubernetes-admin", "groups": ["system:masters"]},
        "object": {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {"name": "test-pod", "namespace": "default"},
        },
        "oldObject": None,
        "dryRun": False,
    }
    request.update(request_fields)
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": request,
    }


@pytest.fixture
def make_review():
    """Factory building AdmissionReview payloads."""
    return _review


@pytest.fixture
def make_registry():
    """Factory building in-memory registries with preset contents or errors."""
    return FakeWebhookRegistry
