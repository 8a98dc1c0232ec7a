from __future__ import annotations

import re
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

from mcp import types
from pydantic import BaseModel

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class ToolError(Exception):
    """Domain failure inside a tool handler, reported as an error-flagged result."""


@dataclass
class ToolResult:
    content: list[types.TextContent] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def success(cls, text: str) -> ToolResult:
        return cls(content=[types.TextContent(type="text", text=text)])

    @classmethod
    def failure(cls, message: str) -> ToolResult:
        return cls(content=[types.TextContent(type="text", text=message)], is_error=True)

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content)

    def to_call_result(self) -> types.CallToolResult:
        return types.CallToolResult(content=list(self.content), isError=self.is_error)


ToolHandler = Callable[[Any], Awaitable["str | ToolResult"]]
ResourceReader = Callable[..., Awaitable[str]]
PromptRenderer = Callable[[Any], list[types.PromptMessage]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    title: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler

    def to_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(),
        )


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    uri: str
    reader: ResourceReader
    title: str | None = None
    description: str | None = None
    mime_type: str | None = None

    def to_resource(self) -> types.Resource:
        return types.Resource(
            name=self.name,
            title=self.title,
            uri=self.uri,
            description=self.description,
            mimeType=self.mime_type,
        )

    def matches(self, uri: str) -> bool:
        return uri == self.uri or uri.rstrip("/") == self.uri.rstrip("/")


@dataclass(frozen=True)
class ResourceTemplateSpec:
    name: str
    uri_template: str
    reader: ResourceReader
    title: str | None = None
    description: str | None = None
    mime_type: str | None = None
    pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pattern", compile_uri_template(self.uri_template))

    @property
    def placeholders(self) -> list[str]:
        return _PLACEHOLDER.findall(self.uri_template)

    def to_template(self) -> types.ResourceTemplate:
        return types.ResourceTemplate(
            name=self.name,
            title=self.title,
            uriTemplate=self.uri_template,
            description=self.description,
            mimeType=self.mime_type,
        )

    def match(self, uri: str) -> dict[str, str] | None:
        found = self.pattern.fullmatch(uri)
        if found is None:
            return None
        return {key: unquote(value) for key, value in found.groupdict().items()}


@dataclass(frozen=True)
class PromptSpec:
    name: str
    title: str
    description: str
    args_model: type[BaseModel]
    render: PromptRenderer

    def to_prompt(self) -> types.Prompt:
        arguments = [
            types.PromptArgument(
                name=name,
                description=info.description,
                required=info.is_required(),
            )
            for name, info in self.args_model.model_fields.items()
        ]
        return types.Prompt(
            name=self.name,
            title=self.title,
            description=self.description,
            arguments=arguments,
        )


def compile_uri_template(template: str) -> re.Pattern[str]:
    """Turn ``scheme://path/{name}`` into a regex with one named group per placeholder.

    A placeholder matches a single path segment; percent-encoded slashes are
    decoded after matching.
    """
    parts: list[str] = []
    position = 0
    for placeholder in _PLACEHOLDER.finditer(template):
        parts.append(re.escape(template[position : placeholder.start()]))
        parts.append(f"(?P<{placeholder.group(1)}>[^/]+)")
        position = placeholder.end()
    parts.append(re.escape(template[position:]))
    return re.compile("".join(parts))


def user_message(text: str) -> types.PromptMessage:
    return types.PromptMessage(role="user", content=types.TextContent(type="text", text=text))


def generate_session_id() -> str:
    return secrets.token_hex(16)
