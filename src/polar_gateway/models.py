"""Session record and pydantic models for Polar API payloads."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class Session:
    """Links a client to a Polar account and holds the Polar access token."""

    id: int
    polar_user_id: int
    polar_token: str = field(repr=False)

    def as_public_dict(self) -> dict[str, Any]:
        """Return a redacted view suitable for logging or diagnostics."""
        return {"id": self.id, "polar_user_id": self.polar_user_id}


class ProviderAccessToken(BaseModel):
    """Polar token endpoint response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int | None = None
    x_user_id: int


class SessionView(BaseModel):
    """Public view of a session returned by /info."""

    polar_id: int


class Measurement(BaseModel):
    """A single heart rate measurement recorded by the client."""

    heart_rate: int = Field(gt=0)
    measured_at: datetime
