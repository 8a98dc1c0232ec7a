from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from mcp.server.lowlevel.server import Server
from mcp.server.streamable_http import StreamableHTTPServerTransport


@dataclass
class SessionEntry:
    session_id: str
    transport: StreamableHTTPServerTransport
    server: Server
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class SessionStore(Protocol):
    def add(self, entry: SessionEntry) -> None: ...

    def get(self, session_id: str) -> SessionEntry | None: ...

    def remove(self, session_id: str) -> SessionEntry | None: ...

    def entries(self) -> list[SessionEntry]: ...

    def __len__(self) -> int: ...


class InMemorySessionStore:
    def __init__(self) -> None:
        self._entries: dict[str, SessionEntry] = {}
        self._lock = threading.Lock()

    def add(self, entry: SessionEntry) -> None:
        with self._lock:
            if entry.session_id in self._entries:
                raise KeyError(f"Session {entry.session_id} already registered")
            self._entries[entry.session_id] = entry

    def get(self, session_id: str) -> SessionEntry | None:
        with self._lock:
            return self._entries.get(session_id)

    def remove(self, session_id: str) -> SessionEntry | None:
        with self._lock:
            return self._entries.pop(session_id, None)

    def entries(self) -> list[SessionEntry]:
        with self._lock:
            return list(self._entries.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
