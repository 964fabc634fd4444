"""
Pytest configuration and fixtures for the relay server
"""
import pytest
from fastapi.testclient import TestClient

from access import AccessPolicy
from app import create_app
from backend import ChatBackend
from broadcast import BroadcastRouter, Connection
from lifecycle import LifecycleController

ALLOWED_ORIGIN = "http://localhost:3000"
ALLOWED_HEADERS = {"origin": ALLOWED_ORIGIN}


class RecordingConnection(Connection):
    """Connection without a socket that remembers everything delivered to it."""

    def __init__(self, origin=ALLOWED_ORIGIN, queue_size=1000):
        super().__init__(None, origin=origin, queue_size=queue_size)
        self.received = []

    def deliver(self, event, data):
        if not super().deliver(event, data):
            return False
        self.received.append({"event": event, "data": data})
        return True

    def events(self):
        return [payload["event"] for payload in self.received]

    def last(self, event):
        matching = [payload["data"] for payload in self.received if payload["event"] == event]
        return matching[-1] if matching else None

    def clear(self):
        self.received = []


@pytest.fixture
def backend() -> ChatBackend:
    return ChatBackend()


@pytest.fixture
def router(backend) -> BroadcastRouter:
    return BroadcastRouter(backend)


@pytest.fixture
def access_policy() -> AccessPolicy:
    return AccessPolicy(["vercel.app", "render.com", "localhost"])


@pytest.fixture
def controller(backend, router, access_policy) -> LifecycleController:
    return LifecycleController(backend, router, access_policy)


@pytest.fixture
def make_connection(controller):
    """Create a connection that already passed the access check."""
    def _make(origin=ALLOWED_ORIGIN):
        connection = RecordingConnection(origin=origin)
        controller.connect(connection)
        return connection
    return _make


@pytest.fixture
def app(backend, access_policy):
    return create_app(backend=backend, access_policy=access_policy)


@pytest.fixture
def client(app):
    # Entering the client shares one event loop between all requests and sockets
    with TestClient(app) as client:
        yield client
