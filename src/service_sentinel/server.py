"""Server startup script for the service sentinel."""

import argparse
import logging
import os
import sys

import uvicorn

from .config import config

logger = logging.getLogger(__name__)

LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


def start_server(host: str = "0.0.0.0", port: int = 8000, log_level: str = "info", reload: bool = False) -> None:
    """Start the sentinel HTTP server.

    The monitor scheduler starts with the application, so every worker
    probes the whole fleet.

    Args:
        host: Host to bind the server to
        port: Port to bind the server to
        log_level: Logging level (debug, info, warning, error, critical)
        reload: Enable auto-reload for development
    """
    logger.info(
        f"Starting Service Sentinel server - host: {host}, port: {port}, "
        f"log_level: {log_level}, reload: {reload}, history_days: {config.history_days}"
    )

    try:
        uvicorn.run(
            "service_sentinel.main:app",
            host=host,
            port=port,
            log_level=log_level,
            reload=reload,
        )
    except Exception as e:
        logger.error(f"Failed to start server - error: {str(e)}", exc_info=True)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Service Sentinel Server")
    parser.add_argument(
        "--host",
        default=os.getenv("SENTINEL_HOST", "0.0.0.0"),
        help="Host to bind the server to (default: $SENTINEL_HOST or 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("SENTINEL_PORT", "8000")),
        help="Port to bind the server to (default: $SENTINEL_PORT or 8000)",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=config.log_level.lower() if config.log_level.lower() in LOG_LEVELS else "info",
        help="Logging level (default: $SENTINEL_LOG_LEVEL or info)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    return parser


def main() -> None:
    """Main entry point for the sentinel server."""
    args = build_parser().parse_args()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
    )

    start_server(
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
