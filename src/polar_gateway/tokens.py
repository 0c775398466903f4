"""Session token issuance and verification.

Session tokens are HS256 JWTs whose only meaningful claim is ``sub``, the
local session id. No ``exp`` claim is set, so a token stays valid until the
signing secret is rotated.
"""

from __future__ import annotations

import logging

import jwt

from .errors import InternalError, Unauthorized
from .http_session import SessionStore
from .models import Session

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
BEARER_SCHEME = "bearer"


class SessionTokenIssuer:
    """Mint signed session tokens."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def issue(self, session: Session) -> str:
        return jwt.encode({"sub": str(session.id)}, self._secret, algorithm=ALGORITHM)


class SessionVerifier:
    """Resolve an Authorization header to a stored session."""

    def __init__(self, secret: str, session_store: SessionStore) -> None:
        self._secret = secret
        self.session_store = session_store

    async def resolve(self, authorization: str | None) -> Session:
        """Verify the bearer token and load its session.

        Raises:
            Unauthorized: For any token problem; the reason is only logged at debug level
            InternalError: If the session store fails
        """
        token = _strip_bearer(authorization)
        if not token:
            logger.debug("Rejected request without bearer token")
            raise Unauthorized()

        try:
            claims = jwt.decode(
                token, self._secret, algorithms=[ALGORITHM], options={"require": ["sub"]}
            )
        except jwt.InvalidTokenError as exc:
            logger.debug("Rejected session token: %s", type(exc).__name__)
            raise Unauthorized() from exc

        subject = claims["sub"]
        if not isinstance(subject, str) or not (subject.isascii() and subject.isdigit()):
            logger.debug("Rejected session token with non-numeric subject")
            raise Unauthorized()
        try:
            session_id = int(subject)
        except ValueError as exc:
            logger.debug("Rejected session token with oversized subject")
            raise Unauthorized() from exc

        try:
            session = await self.session_store.find_by_id(session_id)
        except Exception as exc:
            logger.exception("Session lookup failed during verification")
            raise InternalError() from exc

        if session is None:
            logger.debug("Rejected session token for unknown session")
            raise Unauthorized()
        return session


def _strip_bearer(authorization: str | None) -> str:
    """Return the token from a ``Bearer <token>`` header, or an empty string."""
    if not authorization:
        return ""
    value = authorization.strip()
    if value[: len(BEARER_SCHEME)].lower() != BEARER_SCHEME:
        return ""
    return value[len(BEARER_SCHEME) :].strip()
