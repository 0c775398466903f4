"""Polar OAuth code exchange and AccessLink user registration."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from .errors import RegistrationFailed, UpstreamError
from .models import ProviderAccessToken

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


class TokenExchanger:
    """Exchange an OAuth2 authorization code for a Polar access token."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        client_id: str,
        client_secret: str,
        token_url: str,
    ) -> None:
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url

    async def exchange(self, code: str) -> ProviderAccessToken:
        """Exchange an authorization code for OAuth tokens.

        Authorization codes are single use, so the call is made exactly once.

        Raises:
            UpstreamError: On transport failure, non-2xx status or a malformed body
        """
        try:
            response = await self.http.post(
                self.token_url,
                data={"grant_type": "authorization_code", "code": code},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Token exchange request failed: %s", exc)
            raise UpstreamError(
                f"Network error while contacting Polar: {exc}", 502, str(exc)
            ) from exc

        if not response.is_success:
            logger.warning("Token exchange rejected by Polar with HTTP %s", response.status_code)
            raise UpstreamError(
                f"Failed to exchange authorization code: HTTP {response.status_code}",
                response.status_code,
                response.text,
            )

        try:
            return ProviderAccessToken.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise UpstreamError(
                "Polar returned a malformed token response", 502, response.text
            ) from exc


class UserRegistrar:
    """Register a session with Polar AccessLink.

    Registration is idempotent: Polar answers 409 for a member that is already
    registered, which counts as success.
    """

    def __init__(self, http: httpx.AsyncClient, *, registration_url: str) -> None:
        self.http = http
        self.registration_url = registration_url

    async def register(self, session_id: int, polar_token: str) -> None:
        try:
            response = await self.http.post(
                self.registration_url,
                json={"member-id": str(session_id)},
                headers={"Authorization": f"Bearer {polar_token}", **JSON_HEADERS},
            )
        except httpx.HTTPError as exc:
            logger.warning("User registration request failed: %s", exc)
            raise UpstreamError(
                f"Network error while contacting Polar: {exc}", 502, str(exc)
            ) from exc

        if response.status_code == httpx.codes.CONFLICT:
            logger.info("Session %s is already registered with Polar", session_id)
            return

        if not response.is_success:
            logger.warning(
                "Registration of session %s rejected with HTTP %s",
                session_id,
                response.status_code,
            )
            raise RegistrationFailed(
                f"Polar user registration failed: HTTP {response.status_code}",
                response.status_code,
                response.text,
            )
