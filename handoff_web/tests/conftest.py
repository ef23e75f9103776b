"""
Pytest configuration for handoff_web. The identity provider and the desktop loopback listener
are faked with httpx.MockTransport (see fakes.py) and wired in through app.dependency_overrides.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from handoff_web.delivery import DeliveryDispatcher
from handoff_web.deps import get_dispatcher, get_http_client
from handoff_web.flow_store import flows
from handoff_web.main import app
from handoff_web.rate_limit import password_limiter
from handoff_web.session_store import sessions

from fakes import FakeProvider, LoopbackListener


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def loopback():
    return LoopbackListener()


@pytest.fixture
def provider_http(provider):
    with httpx.Client(transport=httpx.MockTransport(provider.handler)) as http:
        yield http


@pytest.fixture
def client(provider, loopback):
    def http_client():
        with httpx.Client(transport=httpx.MockTransport(provider.handler)) as http:
            yield http

    app.dependency_overrides[get_http_client] = http_client
    app.dependency_overrides[get_dispatcher] = lambda: DeliveryDispatcher(
        sessions, loopback_transport=httpx.MockTransport(loopback.handler)
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
    flows.clear()
    sessions.clear()
    password_limiter.reset()
