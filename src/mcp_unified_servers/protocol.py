from __future__ import annotations

import json
from typing import Any, Literal

from mcp import types
from pydantic import BaseModel, ValidationError

MCP_SESSION_ID_HEADER = "mcp-session-id"

INVALID_SESSION = -32000
INTERNAL_ERROR = types.INTERNAL_ERROR

INVALID_SESSION_MESSAGE = "Bad Request: No valid session ID provided"
INTERNAL_ERROR_MESSAGE = "Internal server error"


class JSONRPCErrorBody(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    error: types.ErrorData
    id: types.RequestId | None = None

    @classmethod
    def build(cls, code: int, message: str) -> JSONRPCErrorBody:
        return cls(error=types.ErrorData(code=code, message=message))

    def to_dict(self) -> dict[str, Any]:
        return {
            "jsonrpc": self.jsonrpc,
            "error": self.error.model_dump(mode="json", exclude_none=True),
            "id": self.id,
        }


def invalid_session_body() -> dict[str, Any]:
    return JSONRPCErrorBody.build(INVALID_SESSION, INVALID_SESSION_MESSAGE).to_dict()


def internal_error_body() -> dict[str, Any]:
    return JSONRPCErrorBody.build(INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE).to_dict()


def is_initialize_request(payload: Any) -> bool:
    try:
        request = types.JSONRPCRequest.model_validate(payload)
    except ValidationError:
        return False
    return request.method == "initialize"


def body_is_initialize_request(body: bytes) -> bool:
    if not body:
        return False
    try:
        payload = json.loads(body)
    except ValueError:
        return False
    return is_initialize_request(payload)
