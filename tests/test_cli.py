"""Tests for the command line surface and the single-session (stdio-style) server loop."""
import logging
from importlib import metadata

import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from mcp_unified_servers import cli
from mcp_unified_servers.servers import calculator, file_manager


class TestParser:

    def test_flags(self):
        parser = cli.build_parser(calculator.DEFINITION)
        args = parser.parse_args(["--transport", "http", "-p", "4001", "--log-level", "debug"])
        assert args.transport == "http"
        assert args.port == 4001
        assert args.log_level == "DEBUG"
        assert args.host is None

    def test_unknown_transport_exits(self):
        parser = cli.build_parser(calculator.DEFINITION)
        with pytest.raises(SystemExit):
            parser.parse_args(["--transport", "carrier-pigeon"])

    def test_definitions(self):
        assert calculator.DEFINITION.default_port == 3001
        assert file_manager.DEFINITION.default_port == 3002
        assert calculator.DEFINITION.http_name == "calculator-server-http"
        assert file_manager.DEFINITION.http_name == "file-manager-http"


class TestRunServer:

    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("TRANSPORT", "stdio")
        monkeypatch.setenv("PORT", "5000")
        seen = {}

        async def fake_serve(definition, settings):
            seen["settings"] = settings

        monkeypatch.setattr(cli, "serve", fake_serve)
        monkeypatch.setattr(cli, "load_dotenv", lambda: None)
        monkeypatch.setattr(cli, "configure_logging", lambda level: None)

        cli.run_server(calculator.DEFINITION, ["--transport", "http"])

        settings = seen["settings"]
        assert settings.transport == "http"
        assert settings.port == 5000

    def test_bad_environment_is_a_usage_error(self, monkeypatch):
        monkeypatch.setenv("PORT", "not-a-port")
        monkeypatch.setattr(cli, "load_dotenv", lambda: None)
        with pytest.raises(SystemExit) as excinfo:
            cli.run_server(calculator.DEFINITION, [])
        assert excinfo.value.code == 2

    def test_startup_failure_exits_non_zero(self, monkeypatch, caplog):
        async def failing_serve(definition, settings):
            raise OSError("address in use")

        monkeypatch.delenv("TRANSPORT", raising=False)
        monkeypatch.delenv("PORT", raising=False)
        monkeypatch.setattr(cli, "serve", failing_serve)
        monkeypatch.setattr(cli, "load_dotenv", lambda: None)
        monkeypatch.setattr(cli, "configure_logging", lambda level: None)

        with caplog.at_level(logging.ERROR), pytest.raises(SystemExit) as excinfo:
            cli.run_server(file_manager.DEFINITION, [])
        assert excinfo.value.code == 1
        assert "address in use" in caplog.text

    def test_capabilities_are_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="mcp_unified_servers.cli"):
            cli.log_capabilities(calculator.build_registry())
        assert "add, subtract, multiply, divide, calculate" in caplog.text
        assert "math-tutor" in caplog.text


class TestSingleSession:

    @pytest.mark.asyncio
    async def test_calculator_session(self):
        server = calculator.build_registry().build_server()
        async with create_connected_server_and_client_session(server) as client:
            tools = await client.list_tools()
            assert [tool.name for tool in tools.tools] == ["add", "subtract", "multiply", "divide", "calculate"]

            result = await client.call_tool("calculate", {"operation": "sqrt", "a": 16})
            assert result.isError is False
            assert result.content[0].text == "√16 = 4"

            templates = await client.list_resource_templates()
            assert templates.resourceTemplates[0].uriTemplate == "math://formula/{name}"

            prompt = await client.get_prompt("math-tutor", {"topic": "geometry", "difficulty": "hard"})
            assert "geometry" in prompt.messages[0].content.text

    @pytest.mark.asyncio
    async def test_file_manager_session(self, tmp_path):
        server = file_manager.build_registry().build_server()
        target = tmp_path / "a.txt"
        async with create_connected_server_and_client_session(server) as client:
            written = await client.call_tool("write_file", {"file_path": str(target), "content": "hi"})
            assert written.isError is False

            missing = await client.call_tool("read_file", {"file_path": str(tmp_path / "nope")})
            assert missing.isError is True

            resources = await client.list_resources()
            assert [str(resource.uri) for resource in resources.resources] == ["file://overview/"]


class TestInstalledStack:

    def test_mcp_is_a_1x_release(self):
        major = int(metadata.version("mcp").split(".")[0])
        assert major == 1
