"""
File manager MCP server.

Tools: read_file, write_file, list_directory, create_directory, delete_path, file_info
Resources: file://overview/, file://content/{path}
Prompts: file_analyzer

Paths are used as given, relative paths resolve against the working
directory of the server process.

Run:
  file-manager-server                    # stdio
  TRANSPORT=http PORT=3002 file-manager-server
"""

from __future__ import annotations

import base64
import shutil
import stat as stat_mode
from datetime import datetime, timezone
from typing import Literal

import anyio
import anyio.to_thread
from mcp import types
from pydantic import BaseModel, Field

from .. import __version__
from ..cli import ServerDefinition, run_server
from ..model import (
    PromptSpec,
    ResourceSpec,
    ResourceTemplateSpec,
    ToolError,
    ToolSpec,
    user_message,
)
from ..registry import ServerRegistry

NAME = "file-manager-unified"
DEFAULT_PORT = 3002


class ReadFileArgs(BaseModel):
    file_path: str = Field(description="Path of the file to read")
    encoding: Literal["utf8", "base64", "binary"] = Field(default="utf8", description="Encoding of the returned content")


class WriteFileArgs(BaseModel):
    file_path: str = Field(description="Path of the file to write")
    content: str = Field(description="Text to write")
    create_dirs: bool = Field(default=True, description="Create missing parent directories")


class ListDirectoryArgs(BaseModel):
    directory_path: str = Field(default=".", description="Directory to list")
    show_hidden: bool = Field(default=False, description="Include entries starting with a dot")
    recursive: bool = Field(default=False, description="Also list the children of subdirectories")


class CreateDirectoryArgs(BaseModel):
    directory_path: str = Field(description="Directory to create")
    recursive: bool = Field(default=True, description="Create missing parent directories")


class DeletePathArgs(BaseModel):
    path: str = Field(description="File or directory to delete")
    recursive: bool = Field(default=False, description="Delete directories with their contents")


class FileInfoArgs(BaseModel):
    path: str = Field(description="File or directory path")


class AnalyzerArgs(BaseModel):
    file_path: str = Field(description="Path of the file to analyze")
    analysis_type: Literal["code_review", "documentation", "performance", "security"] = Field(
        description="Kind of analysis"
    )


def _timestamp(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def decode_content(data: bytes, encoding: str) -> str:
    if encoding == "base64":
        return base64.b64encode(data).decode("ascii")
    if encoding == "binary":
        return data.decode("latin-1")
    return data.decode("utf-8", errors="replace")


async def read_file(args: ReadFileArgs) -> str:
    path = anyio.Path(args.file_path)
    try:
        data = await path.read_bytes()
        info = await path.stat()
    except OSError as exc:
        raise ToolError(f"Failed to read file: {exc}") from exc
    return (
        f"File: {args.file_path}\n"
        f"Size: {info.st_size} bytes\n"
        f"Modified: {_timestamp(info.st_mtime)}\n"
        f"Content:\n{decode_content(data, args.encoding)}"
    )


async def write_file(args: WriteFileArgs) -> str:
    path = anyio.Path(args.file_path)
    try:
        if args.create_dirs:
            await path.parent.mkdir(parents=True, exist_ok=True)
        await path.write_bytes(args.content.encode("utf-8"))
    except OSError as exc:
        raise ToolError(f"Failed to write file: {exc}") from exc
    return f"File written: {args.file_path}"


async def _describe_entries(directory: anyio.Path, show_hidden: bool, recursive: bool) -> list[str]:
    entries = sorted([entry async for entry in directory.iterdir()], key=lambda entry: entry.name)
    lines = []
    for entry in entries:
        if not show_hidden and entry.name.startswith("."):
            continue
        if await entry.is_file():
            size = (await entry.stat()).st_size
            lines.append(f"- {entry.name} ({size} bytes)")
        elif await entry.is_dir():
            lines.append(f"- {entry.name}/")
            if recursive:
                children = sorted([child.name async for child in entry.iterdir()])
                for child in children:
                    if show_hidden or not child.startswith("."):
                        lines.append(f"  - {entry.name}/{child}")
    return lines


async def list_directory(args: ListDirectoryArgs) -> str:
    try:
        lines = await _describe_entries(anyio.Path(args.directory_path), args.show_hidden, args.recursive)
    except OSError as exc:
        raise ToolError(f"Failed to list directory: {exc}") from exc
    return "\n".join([f"Directory: {args.directory_path}", *lines])


async def create_directory(args: CreateDirectoryArgs) -> str:
    try:
        await anyio.Path(args.directory_path).mkdir(parents=args.recursive, exist_ok=args.recursive)
    except OSError as exc:
        raise ToolError(f"Failed to create directory: {exc}") from exc
    return f"Directory created: {args.directory_path}"


async def delete_path(args: DeletePathArgs) -> str:
    path = anyio.Path(args.path)
    try:
        if await path.is_dir() and not await path.is_symlink():
            if args.recursive:
                await anyio.to_thread.run_sync(shutil.rmtree, args.path)
            else:
                await path.rmdir()
        else:
            await path.unlink()
    except OSError as exc:
        raise ToolError(f"Failed to delete: {exc}") from exc
    return f"Deleted: {args.path}"


async def file_info(args: FileInfoArgs) -> str:
    path = anyio.Path(args.path)
    try:
        info = await path.stat()
        absolute = await path.absolute()
    except OSError as exc:
        raise ToolError(f"Failed to get file info: {exc}") from exc

    is_file = stat_mode.S_ISREG(info.st_mode)
    is_dir = stat_mode.S_ISDIR(info.st_mode)
    kind = "file" if is_file else "directory" if is_dir else "other"
    created = getattr(info, "st_birthtime", info.st_ctime)
    return "\n".join(
        [
            f"File info: {args.path}",
            f"Type: {kind}",
            f"Size: {info.st_size} bytes" if is_file else f"Size: {kind}",
            f"Created: {_timestamp(created)}",
            f"Modified: {_timestamp(info.st_mtime)}",
            f"Permissions: {info.st_mode:o}",
            f"Absolute path: {absolute}",
        ]
    )


async def read_overview(uri: str) -> str:
    try:
        lines = await _describe_entries(anyio.Path("."), show_hidden=True, recursive=False)
    except OSError as exc:
        return f"Failed to build project overview: {exc}"
    return "\n".join(["Project overview", "", *lines])


async def read_file_content(uri: str, path: str) -> str:
    try:
        return await anyio.Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return f"Failed to read file: {exc}"


def file_analyzer(args: AnalyzerArgs) -> list[types.PromptMessage]:
    return [
        user_message(
            f"You are a professional code analyst. Analyze the file {args.file_path} and give "
            f"specific, practical {args.analysis_type} recommendations with concrete improvements.\n\n"
            f"Please help me review the {args.analysis_type} of this file."
        )
    ]


def build_registry() -> ServerRegistry:
    registry = ServerRegistry(NAME, __version__)
    tools = registry.tools

    tools.register(ToolSpec("read_file", "Read file", "Read the contents of a file", ReadFileArgs, read_file))
    tools.register(ToolSpec("write_file", "Write file", "Write text to a file", WriteFileArgs, write_file))
    tools.register(
        ToolSpec(
            "list_directory",
            "List directory",
            "List the entries of a directory",
            ListDirectoryArgs,
            list_directory,
        )
    )
    tools.register(
        ToolSpec(
            "create_directory",
            "Create directory",
            "Create a new directory",
            CreateDirectoryArgs,
            create_directory,
        )
    )
    tools.register(
        ToolSpec("delete_path", "Delete path", "Delete a file or directory", DeletePathArgs, delete_path)
    )
    tools.register(
        ToolSpec("file_info", "File info", "Show details about a file or directory", FileInfoArgs, file_info)
    )

    registry.resources.register(
        ResourceSpec(
            "project_overview",
            "file://overview/",
            read_overview,
            title="Project overview",
            description="Files and directories in the server's working directory",
            mime_type="text/plain",
        )
    )
    registry.resources.register(
        ResourceTemplateSpec(
            "file_content",
            "file://content/{path}",
            read_file_content,
            title="File content",
            description="Text content of a file (percent-encode '/' in nested paths)",
            mime_type="text/plain",
        )
    )

    registry.prompts.register(
        PromptSpec(
            "file_analyzer",
            "File analyzer",
            "Analyze a source file and suggest improvements",
            AnalyzerArgs,
            file_analyzer,
        )
    )
    return registry


DEFINITION = ServerDefinition(
    name=NAME,
    http_name="file-manager-http",
    default_port=DEFAULT_PORT,
    build_registry=build_registry,
    description="File manager MCP server (stdio or Streamable HTTP)",
)


def main() -> None:
    run_server(DEFINITION)


if __name__ == "__main__":
    main()
