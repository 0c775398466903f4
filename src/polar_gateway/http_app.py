"""HTTP surface - Starlette routes for the OAuth callback, sessions and the Polar relay."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.routing import Route

from .callback import AuthCallbackOrchestrator
from .config import GatewayConfig
from .errors import BadRequest, GatewayError, UpstreamError
from .http_session import SessionStore, create_session_store
from .models import Measurement, SessionView
from .oauth import TokenExchanger, UserRegistrar
from .proxy import ForwardingProxy
from .tokens import SessionTokenIssuer, SessionVerifier

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
# Upstream headers that describe the relayed body bytes
RELAYED_RESPONSE_HEADERS = ("content-encoding",)


class PolarGateway:
    """Request handlers wired to the gateway components."""

    def __init__(
        self,
        *,
        config: GatewayConfig,
        session_store: SessionStore,
        http: httpx.AsyncClient,
    ) -> None:
        self.config = config
        self.session_store = session_store
        self.http = http
        self.verifier = SessionVerifier(config.token_secret, session_store)
        self.orchestrator = AuthCallbackOrchestrator(
            token_exchanger=TokenExchanger(
                http,
                client_id=config.polar_client_id,
                client_secret=config.polar_client_secret,
                token_url=config.polar_token_url,
            ),
            session_store=session_store,
            user_registrar=UserRegistrar(http, registration_url=config.registration_url),
            token_issuer=SessionTokenIssuer(config.token_secret),
        )
        self.proxy = ForwardingProxy(
            http, api_url=config.polar_api_url, prefix=config.proxy_prefix
        )

    def get_routes(self) -> list[Route]:
        prefix = self.config.proxy_prefix.rstrip("/")
        return [
            Route("/oauth2_callback", self.oauth_callback, methods=["GET"]),
            Route("/info", self.session_info, methods=["GET"]),
            Route("/measurements", self.get_measurements, methods=["GET"]),
            Route("/measurements", self.post_measurement, methods=["POST"]),
            Route(prefix, self.relay, methods=PROXY_METHODS),
            Route(f"{prefix}/{{path:path}}", self.relay, methods=PROXY_METHODS),
        ]

    async def oauth_callback(self, request: Request) -> Response:
        """Handle Polar's redirect and return a session token as a JSON string."""
        token = await self.orchestrator.run(request.query_params.get("code"))
        return JSONResponse(token)

    async def session_info(self, request: Request) -> Response:
        """Return the Polar user id of the current session."""
        session = await self.verifier.resolve(request.headers.get("authorization"))
        return JSONResponse(SessionView(polar_id=session.polar_user_id).model_dump())

    async def get_measurements(self, request: Request) -> Response:
        session = await self.verifier.resolve(request.headers.get("authorization"))
        measurements = await self.session_store.list_measurements(session.id)
        return JSONResponse([m.model_dump(mode="json") for m in measurements])

    async def post_measurement(self, request: Request) -> Response:
        session = await self.verifier.resolve(request.headers.get("authorization"))
        try:
            measurement = Measurement.model_validate_json(await request.body())
        except ValidationError as exc:
            raise BadRequest(
                f"Invalid measurement: {exc.error_count()} validation error(s)"
            ) from exc
        await self.session_store.add_measurement(session.id, measurement)
        return Response(status_code=200)

    async def relay(self, request: Request) -> Response:
        """Stream the Polar response for the requested path back to the client."""
        session = await self.verifier.resolve(request.headers.get("authorization"))
        upstream = await self.proxy.forward(
            session, _raw_path(request), request.method, request.url.query
        )
        headers = {
            name: upstream.headers[name]
            for name in RELAYED_RESPONSE_HEADERS
            if name in upstream.headers
        }
        return StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            headers=headers,
            media_type=upstream.headers.get("content-type"),
            background=BackgroundTask(upstream.aclose),
        )


def _raw_path(request: Request) -> str:
    """Return the request path as sent, before percent-decoding."""
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return request.url.path
    return raw_path.decode("latin-1").split("?", 1)[0]


async def gateway_error_handler(request: Request, exc: Exception) -> Response:
    """Translate gateway errors into HTTP responses."""
    if not isinstance(exc, GatewayError):  # pragma: no cover - registered for GatewayError only
        raise exc
    if isinstance(exc, UpstreamError):
        # Polar's own status and body are kept for diagnosis
        status_code = exc.status_code if exc.status_code >= 400 else 502
        return PlainTextResponse(exc.body or exc.message, status_code=status_code)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


def create_app(
    config: GatewayConfig,
    *,
    session_store: SessionStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Starlette:
    """Build the Starlette application.

    Args:
        config: Gateway configuration
        session_store: Store to use; defaults to the configured back-end
        http_client: Outbound client; when given, the caller owns its lifecycle

    Returns:
        Configured Starlette application
    """
    owns_client = http_client is None
    http = http_client or httpx.AsyncClient(timeout=config.upstream_timeout_seconds)
    gateway = PolarGateway(
        config=config,
        session_store=session_store or create_session_store(config),
        http=http,
    )

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        try:
            yield
        finally:
            if owns_client:
                await http.aclose()

    app = Starlette(
        routes=gateway.get_routes(),
        exception_handlers={GatewayError: gateway_error_handler},
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    return app
