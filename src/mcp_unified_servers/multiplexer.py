from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server.lowlevel.server import Server
from mcp.server.streamable_http import StreamableHTTPServerTransport
from mcp.server.transport_security import TransportSecuritySettings
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Message, Receive, Scope, Send

from .model import generate_session_id
from .protocol import (
    MCP_SESSION_ID_HEADER,
    body_is_initialize_request,
    internal_error_body,
    invalid_session_body,
)
from .store import InMemorySessionStore, SessionEntry, SessionStore

logger = logging.getLogger(__name__)


def _replay_body(body: bytes, receive: Receive) -> Receive:
    replayed = False

    async def replay() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class SessionMultiplexer:
    """Routes ``/mcp`` requests to one Streamable HTTP transport per session.

    Each session gets a freshly built server from ``server_factory`` so no
    tool, resource or prompt state is shared between clients. The multiplexer
    only accepts requests inside ``run()``, which owns the task group the
    per-session server loops run in.
    """

    def __init__(
        self,
        server_factory: Callable[[], Server],
        *,
        store: SessionStore | None = None,
        json_response: bool = False,
        security_settings: TransportSecuritySettings | None = None,
    ) -> None:
        self._server_factory = server_factory
        self._store = store or InMemorySessionStore()
        self._json_response = json_response
        self._security_settings = security_settings
        self._task_group: TaskGroup | None = None
        self._creation_lock: anyio.Lock | None = None

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def session_count(self) -> int:
        return len(self._store)

    def get(self, session_id: str) -> SessionEntry | None:
        return self._store.get(session_id)

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        if self._task_group is not None:
            raise RuntimeError("SessionMultiplexer is already running")
        self._creation_lock = anyio.Lock()
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield
            finally:
                await self.close_all()
                tg.cancel_scope.cancel()
                self._task_group = None

    async def close_all(self) -> None:
        """Terminate every live transport; one failing close does not stop the rest."""
        for entry in self._store.entries():
            try:
                await entry.transport.terminate()
            except Exception:
                logger.exception("Failed to close session %s", entry.session_id)
            self._forget(entry.session_id)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        response_started = False

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.handle_request(scope, receive, guarded_send)
        except Exception:
            logger.exception("Error handling MCP request")
            if not response_started:
                response = JSONResponse(internal_error_body(), status_code=500)
                await response(scope, receive, send)

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self._task_group is None:
            raise RuntimeError("SessionMultiplexer.run() must be entered before handling requests")

        request = Request(scope, receive)
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)

        if session_id:
            entry = self._store.get(session_id)
            if entry is None:
                logger.info("Rejected unknown session: %s", session_id)
                await self._reject(scope, receive, send)
                return
            await entry.transport.handle_request(scope, receive, send)
            if entry.transport.is_terminated:
                self._forget(session_id)
            return

        if request.method == "POST":
            body = await request.body()
            if body_is_initialize_request(body):
                await self._start_session(scope, _replay_body(body, receive), send)
                return

        await self._reject(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(invalid_session_body(), status_code=400)
        await response(scope, receive, send)

    async def _start_session(self, scope: Scope, receive: Receive, send: Send) -> None:
        assert self._task_group is not None and self._creation_lock is not None

        async with self._creation_lock:
            session_id = generate_session_id()
            transport = StreamableHTTPServerTransport(
                mcp_session_id=session_id,
                is_json_response_enabled=self._json_response,
                security_settings=self._security_settings,
            )
            entry = SessionEntry(session_id, transport, self._server_factory())
            await self._task_group.start(self._run_session, entry)

        registered = False

        async def register_on_success(message: Message) -> None:
            nonlocal registered
            if message["type"] == "http.response.start" and not registered:
                headers = Headers(raw=message.get("headers", []))
                if message["status"] < 400 and headers.get(MCP_SESSION_ID_HEADER) == session_id:
                    self._store.add(entry)
                    registered = True
                    logger.info("Session initialized: %s", session_id)
            await send(message)

        try:
            await transport.handle_request(scope, receive, register_on_success)
        finally:
            if not registered:
                logger.info("Discarding session %s after failed initialization", session_id)
                await transport.terminate()

    async def _run_session(
        self,
        entry: SessionEntry,
        *,
        task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        async with entry.transport.connect() as (read_stream, write_stream):
            task_status.started()
            try:
                await entry.server.run(
                    read_stream,
                    write_stream,
                    entry.server.create_initialization_options(),
                    stateless=False,
                )
            except Exception:
                logger.exception("Session %s stopped with an error", entry.session_id)
            finally:
                self._forget(entry.session_id)

    def _forget(self, session_id: str) -> None:
        entry = self._store.remove(session_id)
        if entry is not None:
            age = datetime.now(timezone.utc) - entry.created_at
            logger.info("Session closed: %s (open %.1fs)", session_id, age.total_seconds())
