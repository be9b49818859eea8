"""
Shared fixtures for edge gateway tests.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_edge.app.main import EdgeGatewayService
from shared.config import EdgeConfig
from shared.test_helpers import FakeUpstreams, generate_key_pair, make_config


@pytest.fixture(scope="session")
def key_pair():
    """Throwaway RSA key pair for signing service-account assertions."""
    return generate_key_pair()


@pytest.fixture(scope="session")
def private_pem(key_pair) -> str:
    return key_pair[0]


@pytest.fixture(scope="session")
def public_pem(key_pair) -> str:
    return key_pair[1]


@pytest.fixture
def edge_config(private_pem) -> EdgeConfig:
    return make_config(private_pem)


@pytest.fixture
def upstreams(public_pem) -> FakeUpstreams:
    return FakeUpstreams(public_pem)


@pytest.fixture
def http_client(upstreams) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstreams))


@pytest.fixture
def service(edge_config, http_client) -> EdgeGatewayService:
    return EdgeGatewayService(edge_config, http_client=http_client)


@pytest.fixture
def client(service):
    """Test client with the application lifespan running."""
    with TestClient(service.app) as test_client:
        yield test_client
