"""stdio transport: one process, one session, no session identifier."""

from __future__ import annotations

import logging

from mcp.server.lowlevel.server import Server
from mcp.server.stdio import stdio_server

logger = logging.getLogger(__name__)


async def serve_stdio(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        logger.info("Ready, waiting for a client on stdin")
        await server.run(read_stream, write_stream, server.create_initialization_options())
