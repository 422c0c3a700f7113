"""
Enrichment Service - CLI Entry Point

Usage:
    python -m src.services.enrichment [options]

Examples:
    # Start HTTP server (default)
    python -m src.services.enrichment --port 8080

    # Durable cache in PostgreSQL, incidents read from the disasters table
    python -m src.services.enrichment --cache-backend postgres --incident-store postgres
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from src.common.logging import configure_sanitized_logging
from src.common.telemetry import TelemetryConfig, init_telemetry, shutdown_telemetry

from .config import EnrichmentServiceConfig


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Disaster Enrichment Service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # HTTP options
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind (default: from config or 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind (default: from config or 8080)",
    )

    # Storage options
    parser.add_argument(
        "--cache-backend",
        choices=["memory", "postgres", "redis"],
        default=None,
        help="Cache storage (default: from config or memory)",
    )
    parser.add_argument(
        "--incident-store",
        choices=["memory", "postgres"],
        default=None,
        help="Incident context source (default: from config or memory)",
    )
    parser.add_argument(
        "--postgres-url",
        default=None,
        help="PostgreSQL connection URL",
    )
    parser.add_argument(
        "--redis-url",
        default=None,
        help="Redis connection URL",
    )

    # Behaviour
    parser.add_argument(
        "--simulation",
        action="store_true",
        help="Enable randomized demo augmentation",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Log level (default: info)",
    )

    return parser.parse_args()


def build_config(args: argparse.Namespace) -> EnrichmentServiceConfig:
    """Build configuration from args and environment."""
    overrides = {}

    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.cache_backend:
        overrides["cache_backend"] = args.cache_backend
    if args.incident_store:
        overrides["incident_store"] = args.incident_store
    if args.postgres_url:
        overrides["postgres_url"] = args.postgres_url
    if args.redis_url:
        overrides["redis_url"] = args.redis_url
    if args.simulation:
        overrides["simulation_mode"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()

    return EnrichmentServiceConfig(**overrides)


async def run_http(config: EnrichmentServiceConfig) -> None:
    """Run HTTP server."""
    from .transports.http import run_http_server

    await run_http_server(config)


def main() -> None:
    """Main entry point."""
    args = parse_args()
    configure_sanitized_logging(args.log_level)

    config = build_config(args)
    logger = logging.getLogger(__name__)

    if config.telemetry_enabled:
        init_telemetry(
            TelemetryConfig(
                service_name=config.server_name,
                service_version=config.server_version,
            )
        )

    logger.info(f"Starting {config.server_name} on {config.host}:{config.port}")

    try:
        asyncio.run(run_http(config))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        shutdown_telemetry()


if __name__ == "__main__":
    main()
