"""SAFE server entry point: ``python -m safe.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from safe.core.config.settings import get_settings
from safe.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the SAFE server (MCP + JSON routes) over Streamable HTTP."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.safe_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.safe_allow_insecure_bind and not _is_loopback_host(settings.safe_host):
        raise RuntimeError(
            "Refusing to bind SAFE server to a non-loopback host without an auth layer. "
            "Set SAFE_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting SAFE telemetry server on %s:%d",
        settings.safe_host,
        settings.safe_port,
    )

    # The dashboard is served from another origin.
    cors = Middleware(
        CORSMiddleware,
        allow_origins=settings.safe_cors_allow_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.safe_host,
        port=settings.safe_port,
        middleware=[cors],
    )


if __name__ == "__main__":
    run()
