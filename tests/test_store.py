"""Tests for the session store and the JSON-RPC helpers used by the HTTP layer."""
import json

import pytest
from mcp.types import LATEST_PROTOCOL_VERSION

from mcp_unified_servers.model import generate_session_id
from mcp_unified_servers.protocol import (
    INTERNAL_ERROR,
    INVALID_SESSION,
    body_is_initialize_request,
    internal_error_body,
    invalid_session_body,
    is_initialize_request,
)
from mcp_unified_servers.store import InMemorySessionStore, SessionEntry, SessionStore


def make_entry(session_id):
    return SessionEntry(session_id=session_id, transport=object(), server=object())


class TestInMemorySessionStore:

    def test_implements_protocol(self):
        assert isinstance(InMemorySessionStore(), SessionStore)

    def test_add_get_remove(self):
        store = InMemorySessionStore()
        entry = make_entry("abc")
        store.add(entry)

        assert store.get("abc") is entry
        assert len(store) == 1
        assert store.entries() == [entry]

        assert store.remove("abc") is entry
        assert store.get("abc") is None
        assert len(store) == 0

    def test_duplicate_id_is_rejected(self):
        store = InMemorySessionStore()
        store.add(make_entry("abc"))
        with pytest.raises(KeyError):
            store.add(make_entry("abc"))

    def test_remove_is_idempotent(self):
        store = InMemorySessionStore()
        store.add(make_entry("abc"))
        store.remove("abc")
        assert store.remove("abc") is None


class TestSessionIds:

    def test_unique_hex_tokens(self):
        ids = {generate_session_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(session_id) == 32 and int(session_id, 16) >= 0 for session_id in ids)


class TestProtocolHelpers:

    def test_initialize_detection(self):
        message = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {"protocolVersion": LATEST_PROTOCOL_VERSION, "capabilities": {}},
        }
        assert is_initialize_request(message) is True
        assert body_is_initialize_request(json.dumps(message).encode()) is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
            {"jsonrpc": "2.0", "method": "initialize"},
            [{"jsonrpc": "2.0", "id": 1, "method": "initialize"}],
            "initialize",
            None,
        ],
    )
    def test_other_payloads(self, payload):
        assert is_initialize_request(payload) is False

    @pytest.mark.parametrize("body", [b"", b"{oops", b"[]"])
    def test_bad_bodies(self, body):
        assert body_is_initialize_request(body) is False

    def test_error_bodies(self):
        assert invalid_session_body() == {
            "jsonrpc": "2.0",
            "error": {"code": INVALID_SESSION, "message": "Bad Request: No valid session ID provided"},
            "id": None,
        }
        assert internal_error_body()["error"] == {"code": INTERNAL_ERROR, "message": "Internal server error"}
        assert INTERNAL_ERROR == -32603
