"""Local configuration wizard for the Polar gateway."""

from __future__ import annotations

import secrets
import shutil
from getpass import getpass
from pathlib import Path

from dotenv import dotenv_values, set_key

POLAR_AUTHORIZE_URL = "https://flow.polar.com/oauth2/authorization"


def main() -> None:
    """Run the interactive setup wizard for local gateway configuration."""
    print("=" * 60)
    print("Polar Gateway - Local Setup Wizard")
    print("=" * 60)
    print()
    print("This wizard copies .env.example to .env (if needed) and updates the gateway settings.")
    print()

    env_path = _ensure_env_file()
    existing = dotenv_values(str(env_path)) if env_path.exists() else {}

    print()
    print("Step 1: Polar AccessLink credentials")
    print("-" * 60)
    print("Visit https://admin.polaraccesslink.com and create a client if needed.")
    print("Set its redirect URL to <your gateway base URL>/oauth2_callback.")
    print()

    client_id = _ask_required("Polar Client ID", existing.get("CLIENT_ID"))
    client_secret = _ask_required(
        "Polar Client Secret", existing.get("CLIENT_SECRET"), secret=True
    )

    set_key(str(env_path), "CLIENT_ID", client_id)
    set_key(str(env_path), "CLIENT_SECRET", client_secret)

    _configure_token_secret(env_path, existing)
    _configure_server(env_path, existing)

    print("=" * 60)
    print("Configuration complete!")
    print("Clients start the OAuth flow at:")
    print(f"  {POLAR_AUTHORIZE_URL}?response_type=code&client_id={client_id}")
    print("=" * 60)


def _ask(label: str, default: str | None = None, *, secret: bool = False) -> str | None:
    """Ask for a value; blank input keeps ``default``.

    Secrets are read without echo and their default is never shown.
    """
    hint = "keep existing" if secret else default
    prompt = f"{label} [{hint}]: " if default else f"{label}: "
    reader = getpass if secret else input
    return reader(prompt).strip() or default


def _ask_required(label: str, default: str | None = None, *, secret: bool = False) -> str:
    value = _ask(label, default, secret=secret)
    while not value:
        print("This value is required.")
        value = _ask(label, secret=secret)
    return value


def _ensure_env_file() -> Path:
    """Return the .env path, seeding it from .env.example on first run."""
    env_path = Path(".env")
    if not env_path.exists():
        example = Path(".env.example")
        if example.exists():
            shutil.copy(example, env_path)
        else:
            env_path.touch()
        print(f"Created {env_path}")
    return env_path.resolve()


def _configure_token_secret(env_path: Path, existing: dict[str, str | None]) -> None:
    """Generate the session token signing secret unless one is kept."""
    print()
    print("Step 2: Session token secret")
    print("-" * 60)

    if existing.get("TOKEN_SECRET"):
        keep = input("Keep the existing TOKEN_SECRET? Rotating it logs out every client [Y/n]: ")
        if keep.strip().lower() in ("", "y", "yes"):
            return

    set_key(str(env_path), "TOKEN_SECRET", generate_token_secret())
    print("✓ New TOKEN_SECRET written to .env")


def _configure_server(env_path: Path, existing: dict[str, str | None]) -> None:
    """Prompt for the listen address and session storage back-end."""
    print()
    print("Step 3: Server settings")
    print("-" * 60)

    settings = {
        "GATEWAY_HOST": _ask("Listen host", existing.get("GATEWAY_HOST") or "127.0.0.1"),
        "GATEWAY_PORT": _ask("Listen port", existing.get("GATEWAY_PORT") or "8000"),
        "SESSION_BACKEND": _ask(
            "Session backend (memory|dynamodb)", existing.get("SESSION_BACKEND") or "memory"
        ),
    }
    if (settings["SESSION_BACKEND"] or "").lower() == "dynamodb":
        settings["SESSION_TABLE"] = _ask_required("DynamoDB table", existing.get("SESSION_TABLE"))
        settings["AWS_REGION"] = _ask("AWS region", existing.get("AWS_REGION"))

    for key, value in settings.items():
        if value:
            set_key(str(env_path), key, value)

    print()
    print("✓ Server settings updated.")
    print()


def generate_token_secret() -> str:
    return secrets.token_urlsafe(48)


if __name__ == "__main__":
    main()
