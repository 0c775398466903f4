"""Polar Gateway - Main entry point."""

import argparse
import logging

import uvicorn
from dotenv import load_dotenv
from starlette.applications import Starlette

from .config import GatewayConfig, load_config
from .http_app import create_app

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def create_server(config: GatewayConfig | None = None) -> Starlette:
    """Create the gateway application from configuration.

    Args:
        config: Gateway configuration; loaded from the environment when omitted

    Returns:
        Configured Starlette application
    """
    return create_app(config or load_config())


def main():
    """Main entry point for the Polar gateway."""
    parser = argparse.ArgumentParser(description="Polar Gateway")
    parser.add_argument("--host", type=str, default=None, help="Listen address")
    parser.add_argument("--port", type=int, default=None, help="Listen port")
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    host = args.host or config.gateway_host
    port = args.port or config.gateway_port
    logger.info(
        "Starting Polar gateway on %s:%s (session backend: %s)", host, port, config.session_backend
    )

    app = create_server(config)
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
