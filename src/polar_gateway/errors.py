"""Error taxonomy for the gateway.

Every error carries the HTTP status it is surfaced with. The Starlette exception
handlers in ``http_app`` turn them into responses at the request boundary.
"""


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class BadRequest(GatewayError):
    """Missing or invalid input from the client."""

    status_code = 400


class Unauthorized(GatewayError):
    """Missing, malformed or unverifiable session token.

    The message is fixed so that callers can't tell which check failed.
    """

    status_code = 401

    def __init__(self) -> None:
        super().__init__("Unauthorized")


class UpstreamError(GatewayError):
    """Transport or non-2xx failure while talking to Polar."""

    status_code = 502

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message, status_code)
        self.body = body


class RegistrationFailed(UpstreamError):
    """Polar rejected the user registration call."""


class InternalError(GatewayError):
    """Persistence or unexpected failure; details are never sent to the client."""

    status_code = 500

    def __init__(self, message: str = "Internal Server Error"):
        super().__init__(message)


class SessionConflictError(Exception):
    """A session already exists for the given Polar user id."""

    def __init__(self, polar_user_id: int):
        self.polar_user_id = polar_user_id
        super().__init__(f"Session already exists for Polar user {polar_user_id}")
