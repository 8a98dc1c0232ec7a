"""Calculator and file-manager MCP servers over stdio and Streamable HTTP."""

__version__ = "1.0.0"

from .config import ServerSettings
from .model import (
    PromptSpec,
    ResourceSpec,
    ResourceTemplateSpec,
    ToolError,
    ToolResult,
    ToolSpec,
    generate_session_id,
    user_message,
)
from .multiplexer import SessionMultiplexer
from .protocol import (
    INTERNAL_ERROR,
    INVALID_SESSION,
    MCP_SESSION_ID_HEADER,
    is_initialize_request,
)
from .registry import (
    PromptRegistry,
    ResourceRegistry,
    ServerRegistry,
    ToolRegistry,
    register_handlers,
)
from .store import InMemorySessionStore, SessionEntry, SessionStore

__all__ = [
    "__version__",
    "ServerSettings",
    "ServerRegistry",
    "ToolRegistry",
    "ResourceRegistry",
    "PromptRegistry",
    "register_handlers",
    "ToolSpec",
    "ResourceSpec",
    "ResourceTemplateSpec",
    "PromptSpec",
    "ToolResult",
    "ToolError",
    "user_message",
    "SessionMultiplexer",
    "SessionStore",
    "InMemorySessionStore",
    "SessionEntry",
    "generate_session_id",
    "is_initialize_request",
    "MCP_SESSION_ID_HEADER",
    "INVALID_SESSION",
    "INTERNAL_ERROR",
]
