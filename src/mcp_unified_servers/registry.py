from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from mcp import types
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.lowlevel.server import Server
from pydantic import ValidationError

from .model import (
    PromptSpec,
    ResourceSpec,
    ResourceTemplateSpec,
    ToolError,
    ToolResult,
    ToolSpec,
)

logger = logging.getLogger(__name__)


def format_validation_error(target: str, exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        problems.append(f"{location}: {error['msg']}")
    return f"Invalid arguments for {target}: " + "; ".join(problems)


class _Registry:
    def __init__(self) -> None:
        self._frozen = False

    def freeze(self) -> None:
        self._frozen = True

    def _check_writable(self, name: str) -> None:
        if self._frozen:
            raise RuntimeError(f"Registry is read-only, cannot register {name!r}")


class ToolRegistry(_Registry):
    def __init__(self) -> None:
        super().__init__()
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> ToolSpec:
        self._check_writable(spec.name)
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec
        return spec

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[types.Tool]:
        return [spec.to_tool() for spec in self._tools.values()]

    async def call(self, name: str, arguments: dict[str, Any] | None) -> ToolResult:
        """Validate, invoke and wrap a tool call. Never raises."""
        spec = self._tools.get(name)
        if spec is None:
            return ToolResult.failure(f"Unknown tool: {name}")
        try:
            args = spec.input_model.model_validate(arguments or {})
        except ValidationError as exc:
            return ToolResult.failure(format_validation_error(f"tool {name}", exc))

        try:
            outcome = await spec.handler(args)
        except ToolError as exc:
            return ToolResult.failure(str(exc))
        except Exception as exc:
            logger.exception("Tool %s raised an unexpected error", name)
            return ToolResult.failure(f"Tool {name} failed: {exc}")

        if isinstance(outcome, ToolResult):
            return outcome
        return ToolResult.success(outcome)


class ResourceRegistry(_Registry):
    def __init__(self) -> None:
        super().__init__()
        self._resources: dict[str, ResourceSpec] = {}
        self._templates: dict[str, ResourceTemplateSpec] = {}

    def register(self, spec: ResourceSpec | ResourceTemplateSpec) -> None:
        self._check_writable(spec.name)
        if spec.name in self._resources or spec.name in self._templates:
            raise ValueError(f"Resource already registered: {spec.name}")
        if isinstance(spec, ResourceTemplateSpec):
            self._templates[spec.name] = spec
        else:
            self._resources[spec.name] = spec

    def names(self) -> list[str]:
        return [spec.uri for spec in self._resources.values()] + [
            spec.uri_template for spec in self._templates.values()
        ]

    def list_resources(self) -> list[types.Resource]:
        return [spec.to_resource() for spec in self._resources.values()]

    def list_templates(self) -> list[types.ResourceTemplate]:
        return [spec.to_template() for spec in self._templates.values()]

    async def read(self, uri: str) -> ReadResourceContents:
        for spec in self._resources.values():
            if spec.matches(uri):
                return ReadResourceContents(content=await spec.reader(uri), mime_type=spec.mime_type)
        for template in self._templates.values():
            params = template.match(uri)
            if params is not None:
                text = await template.reader(uri, **params)
                return ReadResourceContents(content=text, mime_type=template.mime_type)
        raise ValueError(f"Unknown resource: {uri}")


class PromptRegistry(_Registry):
    def __init__(self) -> None:
        super().__init__()
        self._prompts: dict[str, PromptSpec] = {}

    def register(self, spec: PromptSpec) -> PromptSpec:
        self._check_writable(spec.name)
        if spec.name in self._prompts:
            raise ValueError(f"Prompt already registered: {spec.name}")
        self._prompts[spec.name] = spec
        return spec

    def names(self) -> list[str]:
        return list(self._prompts)

    def list_prompts(self) -> list[types.Prompt]:
        return [spec.to_prompt() for spec in self._prompts.values()]

    def get(self, name: str, arguments: dict[str, str] | None) -> types.GetPromptResult:
        spec = self._prompts.get(name)
        if spec is None:
            raise ValueError(f"Unknown prompt: {name}")
        try:
            args = spec.args_model.model_validate(arguments or {})
        except ValidationError as exc:
            raise ValueError(format_validation_error(f"prompt {name}", exc)) from exc
        return types.GetPromptResult(description=spec.description, messages=spec.render(args))


class ServerRegistry:
    """Tools, resources and prompts of one server instance."""

    def __init__(self, name: str, version: str) -> None:
        self.name = name
        self.version = version
        self.tools = ToolRegistry()
        self.resources = ResourceRegistry()
        self.prompts = PromptRegistry()

    def summary(self) -> dict[str, list[str]]:
        return {
            "tools": self.tools.names(),
            "resources": self.resources.names(),
            "prompts": self.prompts.names(),
        }

    def build_server(self) -> Server:
        server: Server = Server(self.name, version=self.version)
        register_handlers(server, self)
        return server


def register_handlers(low_level_server: Server, registry: ServerRegistry) -> None:
    for part in (registry.tools, registry.resources, registry.prompts):
        part.freeze()

    async def handle_list_tools() -> list[types.Tool]:
        return registry.tools.list_tools()

    low_level_server.list_tools()(handle_list_tools)

    # Arguments are validated by the registry so failures come back as error results.
    async def handle_call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        result = await registry.tools.call(name, arguments)
        return result.to_call_result()

    low_level_server.call_tool(validate_input=False)(handle_call_tool)

    async def handle_list_resources() -> list[types.Resource]:
        return registry.resources.list_resources()

    low_level_server.list_resources()(handle_list_resources)

    async def handle_list_resource_templates() -> list[types.ResourceTemplate]:
        return registry.resources.list_templates()

    low_level_server.list_resource_templates()(handle_list_resource_templates)

    async def handle_read_resource(uri: Any) -> Iterable[ReadResourceContents]:
        return [await registry.resources.read(str(uri))]

    low_level_server.read_resource()(handle_read_resource)

    async def handle_list_prompts() -> list[types.Prompt]:
        return registry.prompts.list_prompts()

    low_level_server.list_prompts()(handle_list_prompts)

    async def handle_get_prompt(
        name: str, arguments: dict[str, str] | None
    ) -> types.GetPromptResult:
        return registry.prompts.get(name, arguments)

    low_level_server.get_prompt()(handle_get_prompt)
