"""Gateway configuration from environment variables."""

from __future__ import annotations

from typing import Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

POLAR_TOKEN_URL = "https://polarremote.com/v2/oauth2/token"
POLAR_API_URL = "https://www.polaraccesslink.com/v3"
PROXY_PREFIX = "/proxy"


class GatewayConfig(BaseSettings):
    """Polar credentials, signing secret and server settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    polar_client_id: str = Field(
        default="", validation_alias=AliasChoices("polar_client_id", "client_id")
    )
    polar_client_secret: str = Field(
        default="", validation_alias=AliasChoices("polar_client_secret", "client_secret")
    )
    token_secret: str = Field(default="", repr=False)
    polar_token_url: str = POLAR_TOKEN_URL
    polar_api_url: str = POLAR_API_URL
    proxy_prefix: str = PROXY_PREFIX
    upstream_timeout_seconds: float = 30.0
    session_backend: Literal["memory", "dynamodb"] = "memory"
    session_table: str | None = None
    aws_region: str | None = None
    gateway_host: str = "127.0.0.1"
    gateway_port: int = 8000
    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_credentials(self) -> GatewayConfig:
        """Validate that required credentials are configured."""
        if not self.polar_client_id or self.polar_client_id == "your_client_id_here":
            raise ValueError("CLIENT_ID is not configured. Please set it in your .env file.")
        if not self.polar_client_secret or self.polar_client_secret == "your_client_secret_here":
            raise ValueError("CLIENT_SECRET is not configured. Please set it in your .env file.")
        if not self.token_secret:
            raise ValueError("TOKEN_SECRET is not configured. Please set it in your .env file.")
        if self.session_backend == "dynamodb" and not self.session_table:
            raise ValueError("SESSION_TABLE must be set when SESSION_BACKEND=dynamodb.")
        return self

    @property
    def registration_url(self) -> str:
        return f"{self.polar_api_url.rstrip('/')}/users"


def load_config() -> GatewayConfig:
    """Load configuration from .env file."""
    load_dotenv()
    return GatewayConfig()
