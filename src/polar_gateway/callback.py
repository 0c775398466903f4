"""OAuth callback flow: exchange the code, find or create a session, issue a token."""

from __future__ import annotations

import logging
from enum import Enum

from .errors import BadRequest, GatewayError, InternalError
from .http_session import SessionStore
from .models import Session
from .oauth import TokenExchanger, UserRegistrar
from .tokens import SessionTokenIssuer

logger = logging.getLogger(__name__)


class CallbackState(Enum):
    AWAITING_CODE = "awaiting_code"
    EXCHANGING = "exchanging"
    RESOLVING_SESSION = "resolving_session"
    REGISTERING_NEW_USER = "registering_new_user"
    ISSUING_TOKEN = "issuing_token"
    DONE = "done"
    FAILED = "failed"


class AuthCallbackOrchestrator:
    """Drive the OAuth callback from authorization code to session token.

    A new session is created only when none exists for the Polar user. If
    registration fails after creation the session is kept; the next callback
    for the same user finds it and skips registration.
    """

    def __init__(
        self,
        *,
        token_exchanger: TokenExchanger,
        session_store: SessionStore,
        user_registrar: UserRegistrar,
        token_issuer: SessionTokenIssuer,
    ) -> None:
        self.token_exchanger = token_exchanger
        self.session_store = session_store
        self.user_registrar = user_registrar
        self.token_issuer = token_issuer

    async def run(self, code: str | None) -> str:
        """Complete the callback and return the signed session token.

        Raises:
            BadRequest: If no authorization code was supplied
            UpstreamError: If the code exchange fails
            RegistrationFailed: If Polar rejects registration of a new session
            InternalError: If the session store fails
        """
        state = CallbackState.AWAITING_CODE
        try:
            if not code:
                raise BadRequest("Missing authorization code.")

            state = self._advance(state, CallbackState.EXCHANGING)
            access_token = await self.token_exchanger.exchange(code)

            state = self._advance(state, CallbackState.RESOLVING_SESSION)
            session = await self._find_session(access_token.x_user_id)

            if session is None:
                state = self._advance(state, CallbackState.REGISTERING_NEW_USER)
                session = await self._create_session(
                    access_token.access_token, access_token.x_user_id
                )
                await self.user_registrar.register(session.id, access_token.access_token)

            state = self._advance(state, CallbackState.ISSUING_TOKEN)
            token = self.token_issuer.issue(session)
            self._advance(state, CallbackState.DONE)
            return token
        except GatewayError as exc:
            logger.info("OAuth callback failed while %s: %s", state.value, exc.message)
            self._advance(state, CallbackState.FAILED)
            raise

    async def _find_session(self, polar_user_id: int) -> Session | None:
        try:
            return await self.session_store.find_by_polar_user_id(polar_user_id)
        except Exception as exc:
            logger.exception("Session lookup by Polar user failed")
            raise InternalError() from exc

    async def _create_session(self, polar_token: str, polar_user_id: int) -> Session:
        try:
            session = await self.session_store.create(polar_token, polar_user_id)
        except Exception as exc:
            logger.exception("Session creation failed")
            raise InternalError() from exc
        logger.info("Created session %s", session.as_public_dict())
        return session

    @staticmethod
    def _advance(current: CallbackState, target: CallbackState) -> CallbackState:
        logger.debug("OAuth callback %s -> %s", current.value, target.value)
        return target
