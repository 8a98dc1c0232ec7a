"""
Pytest configuration and fixtures for the MCP servers.

The HTTP fixtures drive the Starlette app in-process through
``httpx.ASGITransport``. The app lifespan (which owns the session task group)
is entered inside the test coroutine itself, so the per-session server loops
and the requests share one task.
"""
import json
from contextlib import asynccontextmanager

import anyio
import httpx
import pytest
from mcp.types import LATEST_PROTOCOL_VERSION

from mcp_unified_servers.config import ServerSettings
from mcp_unified_servers.http_app import create_app

ACCEPT = "application/json, text/event-stream"
BASE_URL = "http://localhost:3001"


class MCPHttpClient:
    """Small JSON-RPC helper around an httpx client bound to the app."""

    def __init__(self, app, client: httpx.AsyncClient):
        self.app = app
        self.client = client
        self._next_id = 0

    @property
    def multiplexer(self):
        return self.app.state.multiplexer

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def headers(self, session_id=None, **extra):
        headers = {"Accept": ACCEPT, "Content-Type": "application/json", **extra}
        if session_id:
            headers["Mcp-Session-Id"] = session_id
        return headers

    async def post(self, message, session_id=None) -> httpx.Response:
        return await self.client.post("/mcp", json=message, headers=self.headers(session_id))

    def initialize_message(self) -> dict:
        return {
            "jsonrpc": "2.0",
            "id": self.next_id(),
            "method": "initialize",
            "params": {
                "protocolVersion": LATEST_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "pytest", "version": "0.0.0"},
            },
        }

    async def initialize(self) -> str:
        """Run the initialize handshake and return the issued session id."""
        response = await self.post(self.initialize_message())
        assert response.status_code == 200, response.text
        session_id = response.headers["mcp-session-id"]

        ack = await self.post({"jsonrpc": "2.0", "method": "notifications/initialized"}, session_id)
        assert ack.status_code == 202, ack.text
        return session_id

    @staticmethod
    def decode(response: httpx.Response) -> dict:
        """Return the JSON-RPC message of a plain JSON or single-event SSE response."""
        if response.headers.get("content-type", "").startswith("text/event-stream"):
            events = [
                json.loads(line[len("data:"):].strip())
                for line in response.text.splitlines()
                if line.startswith("data:")
            ]
            assert len(events) == 1, response.text
            return events[0]
        return response.json()

    async def request(self, session_id, method, params=None) -> dict:
        message = {"jsonrpc": "2.0", "id": self.next_id(), "method": method, "params": params or {}}
        response = await self.post(message, session_id)
        assert response.status_code == 200, response.text
        return self.decode(response)

    async def open_stream(self, session_id) -> dict:
        """Open ``GET /mcp`` for a session and return its response start, then disconnect.

        The stream never ends on its own, so the multiplexer is driven directly
        and the call is cancelled as soon as the response headers are sent.
        """
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": "/mcp",
            "raw_path": b"/mcp",
            "root_path": "",
            "query_string": b"",
            "headers": [
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in self.headers(session_id).items()
            ],
            "client": ("127.0.0.1", 50000),
            "server": ("localhost", 3001),
        }
        started: dict = {}

        async def receive():
            await anyio.sleep_forever()

        async with anyio.create_task_group() as tg:

            async def send(message):
                if message["type"] == "http.response.start":
                    started.update(message)
                    tg.cancel_scope.cancel()

            tg.start_soon(self.multiplexer, scope, receive, send)

        return started

    async def call_tool(self, session_id, name, arguments) -> dict:
        body = await self.request(session_id, "tools/call", {"name": name, "arguments": arguments})
        return body["result"]

    async def delete(self, session_id=None) -> httpx.Response:
        return await self.client.delete("/mcp", headers=self.headers(session_id))


@asynccontextmanager
async def open_http_client(build_registry, settings=None, server_factory=None):
    settings = settings or ServerSettings(transport="http", json_response=True)
    factory = server_factory or (lambda: build_registry().build_server())
    app = create_app(factory, settings, "test-server-http")

    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
            yield MCPHttpClient(app, client)


@pytest.fixture
def mcp_http():
    """Factory for in-process HTTP clients: ``async with mcp_http(build_registry) as mcp``."""
    return open_http_client


@pytest.fixture
def text_of():
    """Join the text blocks of a tools/call result payload."""

    def _text_of(result: dict) -> str:
        return "\n".join(block["text"] for block in result["content"] if block["type"] == "text")

    return _text_of
