"""Command line entry point shared by the example servers.

The transport is chosen by the ``TRANSPORT`` environment variable (``stdio``
by default, or ``http``); flags override the environment:

    calculator-server
    TRANSPORT=http PORT=3001 calculator-server
    file-manager-server --transport http --port 3002
    NODE_ENV=production TRANSPORT=http ALLOWED_ORIGINS=https://example.com calculator-server
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import anyio
from dotenv import load_dotenv

from .config import TRANSPORTS, ServerSettings
from .http_app import serve_http
from .registry import ServerRegistry
from .stdio import serve_stdio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerDefinition:
    name: str
    http_name: str
    default_port: int
    build_registry: Callable[[], ServerRegistry]
    description: str = ""


def configure_logging(level: str) -> None:
    # stdout carries protocol frames in stdio mode, so logs always go to stderr.
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_parser(definition: ServerDefinition) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=definition.name, description=definition.description)
    parser.add_argument(
        "--transport",
        choices=TRANSPORTS,
        default=None,
        help="Transport to serve on (default: $TRANSPORT or stdio)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="HTTP bind address (default: $HOST or 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=None,
        help=f"HTTP port (default: $PORT or {definition.default_port})",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )
    return parser


def log_capabilities(registry: ServerRegistry) -> None:
    summary = registry.summary()
    logger.info("Tools: %s", ", ".join(summary["tools"]))
    logger.info("Resources: %s", ", ".join(summary["resources"]))
    logger.info("Prompts: %s", ", ".join(summary["prompts"]))


async def serve(definition: ServerDefinition, settings: ServerSettings) -> None:
    log_capabilities(definition.build_registry())

    if settings.transport == "http":
        logger.info("Starting %s (Streamable HTTP)", definition.name)
        await serve_http(
            lambda: definition.build_registry().build_server(),
            settings,
            definition.http_name,
        )
    else:
        logger.info("Starting %s (stdio)", definition.name)
        await serve_stdio(definition.build_registry().build_server())


def run_server(definition: ServerDefinition, argv: Sequence[str] | None = None) -> None:
    load_dotenv()
    parser = build_parser(definition)
    args = parser.parse_args(argv)

    try:
        settings = ServerSettings.from_env(default_port=definition.default_port).with_overrides(
            transport=args.transport,
            host=args.host,
            port=args.port,
            log_level=args.log_level,
        )
    except ValueError as e:
        parser.error(str(e))

    configure_logging(settings.log_level)

    try:
        anyio.run(serve, definition, settings)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    except Exception as e:
        logger.exception("Server failed to start: %s", e)
        sys.exit(1)
