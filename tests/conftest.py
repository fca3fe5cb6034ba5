"""Pytest configuration and shared fixtures for approver testing."""

import pytest

from csrapprover.inspectors.base import Inspector, Registry
from csrapprover.metrics import Metrics
from csrapprover.scheduler import DeletionScheduler

from .helpers import FakeClusterClient, make_pod, make_service

POD_NAME = "172-1-0-3.ns.pod.cluster.local"


class StubInspector(Inspector):
    """Returns a fixed verdict and remembers every request it saw."""

    def __init__(self, name, message="", error=None):
        super().__init__()
        self.name = name
        self.message = message
        self.error = error
        self.calls = []

    def inspect(self, client, request):
        self.calls.append(request.name)
        if self.error is not None:
            raise self.error
        return self.message


@pytest.fixture
def pod():
    return make_pod()


@pytest.fixture
def service():
    return make_service(selector={"app": "x"})


@pytest.fixture
def client(pod):
    return FakeClusterClient(pods=[pod])


@pytest.fixture
def metrics():
    return Metrics()


@pytest.fixture
def scheduler(client):
    scheduler = DeletionScheduler(client, delay=60)
    yield scheduler
    scheduler.cancel_all()


@pytest.fixture
def stub_registry():
    """A registry holding stubs named after what they return."""
    registry = Registry()
    for name, message in [
        ("pass-a", ""),
        ("pass-b", ""),
        ("pass-c", ""),
        ("object-a", "objection a"),
        ("object-b", "objection b"),
    ]:
        registry.register(StubInspector(name, message))
    return registry
