"""AWS Lambda handler for the Polar gateway.

This module wraps the Starlette ASGI app with Mangum for AWS Lambda deployment.
"""

from __future__ import annotations

from typing import Any

from mangum import Mangum

from .server import create_server


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    app = create_server()
    mangum_handler = Mangum(app, lifespan="auto")

    return mangum_handler(event, context)
