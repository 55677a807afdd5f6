"""Tests for the mcp-multi command line."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mcpmulti import __version__
from mcpmulti.cli.main import cli

from helpers import fake_server_spec, text_response, tool_response


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENROUTER_API_KEY", "GROQ_API_KEY", "MCP_MULTI_MODEL"):
        monkeypatch.delenv(var, raising=False)


def write_config(path, *specs):
    servers = {
        s.name: {"command": s.command, "args": list(s.args)}
        for s in specs
    }
    path.write_text(json.dumps({"mcpServers": servers}))
    return path


class TestStartupErrors:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_config(self, runner, tmp_path):
        result = runner.invoke(cli, [str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_malformed_config(self, runner, tmp_path):
        path = tmp_path / "servers.json"
        path.write_text("{ not json")

        result = runner.invoke(cli, [str(path)])

        assert result.exit_code == 1
        assert "Failed to load config" in result.output

    def test_missing_api_key(self, runner, tmp_path):
        path = write_config(tmp_path / "servers.json", fake_server_spec("echo"))

        result = runner.invoke(cli, [str(path)])

        assert result.exit_code == 1
        assert "ANTHROPIC_API_KEY" in result.output

    def test_unknown_provider(self, runner, tmp_path):
        path = write_config(tmp_path / "servers.json", fake_server_spec("echo"))

        result = runner.invoke(cli, [str(path), "--model", "nowhere/model"])

        assert result.exit_code == 1
        assert "Unknown provider" in result.output

    def test_no_servers_connected(self, runner, tmp_path, scripted_provider):
        path = tmp_path / "servers.json"
        path.write_text(json.dumps({
            "mcpServers": {"broken": {"command": "definitely-not-a-real-command-xyz", "args": []}}
        }))

        with patch("mcpmulti.cli.main.ProviderFactory.create", return_value=scripted_provider()):
            result = runner.invoke(cli, [str(path)])

        assert result.exit_code == 1
        assert "No MCP servers connected" in result.output


class TestInteractiveRun:
    def test_query_then_quit(self, runner, tmp_path, scripted_provider):
        path = write_config(
            tmp_path / "servers.json",
            fake_server_spec("echo", "--tools", "ECHO"),
            fake_server_spec("clock", "--tools", "TIME"),
        )
        provider = scripted_provider(
            tool_response(("t1", "ECHO", {"message": "hi"})),
            text_response("The server echoed hi."),
        )

        with patch("mcpmulti.cli.main.ProviderFactory.create", return_value=provider) as create:
            result = runner.invoke(cli, [str(path), "--model", "gpt-4o"], input="hello\n\nquit\n")

        assert result.exit_code == 0, result.output
        assert create.call_args.args[0] == "gpt-4o"
        assert "ECHO" in result.output
        assert "TIME" in result.output
        assert "The server echoed hi." in result.output
        assert "MCP Multi-Client finished." in result.output
        assert provider.complete.call_count == 2

    def test_eof_ends_session(self, runner, tmp_path, scripted_provider):
        path = write_config(tmp_path / "servers.json", fake_server_spec("echo"))

        with patch("mcpmulti.cli.main.ProviderFactory.create", return_value=scripted_provider()):
            result = runner.invoke(cli, [str(path)], input="")

        assert result.exit_code == 0, result.output
        assert "MCP Multi-Client finished." in result.output

    def test_strict_tools_flag_rejects_duplicates(self, runner, tmp_path, scripted_provider):
        path = write_config(
            tmp_path / "servers.json",
            fake_server_spec("a", "--tools", "ECHO"),
            fake_server_spec("b", "--tools", "ECHO"),
        )

        with patch("mcpmulti.cli.main.ProviderFactory.create", return_value=scripted_provider()):
            result = runner.invoke(cli, [str(path), "--strict-tools"])

        assert result.exit_code == 1
        assert "ECHO" in result.output

    def test_interrupt_during_startup_still_closes(self, runner, tmp_path, scripted_provider):
        path = write_config(tmp_path / "servers.json", fake_server_spec("echo"))

        with patch("mcpmulti.cli.main.ProviderFactory.create", return_value=scripted_provider()), \
                patch("mcpmulti.cli.main.Session") as session_cls:
            session_cls.return_value.start.side_effect = KeyboardInterrupt
            result = runner.invoke(cli, [str(path)])

        assert result.exit_code != 0
        session_cls.return_value.close.assert_called_once()
