"""Credential-injecting relay to the Polar AccessLink API."""

from __future__ import annotations

import logging
from urllib.parse import unquote

import httpx

from .errors import BadRequest, UpstreamError
from .models import Session

logger = logging.getLogger(__name__)

# Transport failures of the upstream GET are retried this many times
MAX_TRANSPORT_RETRIES = 1

DOT_SEGMENTS = (".", "..")


class ForwardingProxy:
    """Forward authenticated requests to Polar with the session's access token.

    Upstream responses are never interpreted: a 404 or 500 from Polar reaches
    the client unchanged. Only failures of the relay itself raise.
    """

    def __init__(self, http: httpx.AsyncClient, *, api_url: str, prefix: str) -> None:
        self.http = http
        self.api_url = api_url.rstrip("/")
        self.prefix = prefix

    def upstream_url(self, request_path: str, query: str = "") -> str:
        """Map an inbound path under the proxy prefix onto the Polar API root.

        ``request_path`` is the raw, still percent-encoded path, so encoded
        characters such as ``%3F`` reach Polar unchanged.

        Raises:
            BadRequest: If a dot segment would lead outside the API root
        """
        remainder = request_path
        if remainder.startswith(self.prefix):
            remainder = remainder[len(self.prefix) :]
        if any(unquote(segment) in DOT_SEGMENTS for segment in remainder.split("/")):
            raise BadRequest("Proxy path must not contain dot segments.")
        url = f"{self.api_url}{remainder}"
        if query:
            url = f"{url}?{query}"
        return url

    async def forward(
        self,
        session: Session,
        request_path: str,
        method: str,
        query: str = "",
    ) -> httpx.Response:
        """Send the request upstream and return the response unread.

        Polar is always called with GET, whatever the inbound method. The
        returned response is open in streaming mode; the caller must close it.

        Raises:
            BadRequest: If the path contains dot segments
            UpstreamError: If the request can't be built or the transport fails
        """
        url = self.upstream_url(request_path, query)
        if method.upper() != "GET":
            logger.debug("Relaying inbound %s %s upstream as GET", method, request_path)

        try:
            request = self.http.build_request(
                "GET",
                url,
                headers={
                    "Authorization": f"Bearer {session.polar_token}",
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
            )
        except httpx.InvalidURL as exc:
            raise UpstreamError(f"Invalid upstream URL: {exc}", 502, str(exc)) from exc

        attempt = 0
        while True:
            try:
                return await self.http.send(request, stream=True)
            except httpx.TransportError as exc:
                if attempt >= MAX_TRANSPORT_RETRIES:
                    logger.warning("Proxy request to %s failed: %s", request.url.path, exc)
                    raise UpstreamError(
                        f"Network error while contacting Polar: {exc}", 502, str(exc)
                    ) from exc
                attempt += 1
                logger.info("Retrying proxy request to %s after: %s", request.url.path, exc)
