"""Pytest configuration and shared fixtures."""

import httpx
import pytest
import respx

from tests.stubs.polar_api_stub import PolarAPIStubber

TEST_TOKEN_SECRET = "test-token-secret-that-is-long-enough-for-hs256"


@pytest.fixture
def config():
    """Provide a gateway configuration for testing."""
    from polar_gateway.config import GatewayConfig

    return GatewayConfig(
        polar_client_id="test_client_id",
        polar_client_secret="test_client_secret",
        token_secret=TEST_TOKEN_SECRET,
        session_backend="memory",
    )


@pytest.fixture
def session_store():
    """Provide an empty in-memory session store."""
    from polar_gateway.http_session import SessionStore

    return SessionStore()


@pytest.fixture
def respx_mock():
    """Provide a respx mock router for outbound Polar requests."""
    with respx.mock(assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
def stub_api(respx_mock):
    """Provide a Polar API stubber."""
    return PolarAPIStubber(respx_mock)


@pytest.fixture
async def http_client():
    """Provide the outbound HTTP client used by gateway components."""
    async with httpx.AsyncClient(timeout=5.0) as client:
        yield client


@pytest.fixture
def app(config, session_store, http_client):
    """Provide the gateway application wired to test collaborators."""
    from polar_gateway.http_app import create_app

    return create_app(config, session_store=session_store, http_client=http_client)


@pytest.fixture
async def client(app):
    """Provide an HTTP client that talks to the gateway in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://gateway.test") as client:
        yield client


@pytest.fixture
def issuer():
    """Provide a session token issuer using the test secret."""
    from polar_gateway.tokens import SessionTokenIssuer

    return SessionTokenIssuer(TEST_TOKEN_SECRET)


@pytest.fixture
def auth_header(issuer):
    """Build an Authorization header for a session."""

    def _auth_header(session):
        return {"Authorization": f"Bearer {issuer.issue(session)}"}

    return _auth_header
