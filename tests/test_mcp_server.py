"""Unit and component tests for mohaa_pilot.mcp.server.

Tool handlers are invoked via create_server() + mcp.call_tool() to test the
full dispatch path.  The server is handed a GameSession built from the fake
collaborators in conftest.py, so no game, display or xdotool is needed.

The path allowlist (MOHAA_PILOT_ALLOWED_DIRS) is bypassed for tool tests by
setting ``_ALLOWED_DIRS`` to None for the duration of each test.

Test structure:
    TestBuildAllowedDirs   — _build_allowed_dirs()
    TestValidatePath       — _validate_path()
    TestScriptTools        — run / validate / builder tools
    TestEngineTools        — conditions, abort, step results, variables
    TestProcessTools       — launch, stop, status, console
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
import yaml

from mohaa_pilot.config import PilotConfig
from mohaa_pilot.engine.session import GameSession


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _json_result(content_list: list) -> Any:
    """Extract and parse the JSON text from the first TextContent in a call_tool result."""
    return json.loads(content_list[0].text)


def run_async(coro):
    """Run a coroutine synchronously in a new event loop."""
    return asyncio.run(coro)


def _session(fakes, project_dir: Path) -> GameSession:
    config = PilotConfig(
        executable_path="/opt/openmohaa/openmohaa",
        project_dir=project_dir,
        scripts_dir=project_dir / "scripts",
        evidence_dir=project_dir / "evidence",
    )
    return GameSession(
        config=config,
        launcher=fakes.process,
        console=fakes.console,
        ui=fakes.ui,
        screen=fakes.screen,
        engine=fakes.engine(poll_interval_ms=20),
    )


@pytest.fixture
def server(fakes, tmp_project_dir: Path):
    """MCP server over the fakes with the allowlist disabled."""
    import mohaa_pilot.mcp.server as srv_module
    from mohaa_pilot.mcp.server import create_server

    original = srv_module._ALLOWED_DIRS
    srv_module._ALLOWED_DIRS = None
    try:
        yield create_server(_session(fakes, tmp_project_dir))
    finally:
        srv_module._ALLOWED_DIRS = original


def _call(mcp, tool: str, args: dict | None = None) -> Any:
    async def go():
        result, _ = await mcp.call_tool(tool, args or {})
        return _json_result(result)

    return run_async(go())


_SCRIPT = {
    "name": "mcp-run",
    "setup": [{"action": "launch", "params": {"executablePath": "/opt/openmohaa/openmohaa"}}],
    "steps": [
        {"action": "command", "params": {"command": "status"}},
        {"action": "set_variable", "params": {"name": "k", "value": "v"}},
        {"action": "assert", "params": {"variable": "k", "expected": "v"}},
    ],
    "teardown": [{"action": "command", "params": {"command": "quit"}}],
}


# ---------------------------------------------------------------------------
# 0. _build_allowed_dirs() and _validate_path()
# ---------------------------------------------------------------------------

class TestBuildAllowedDirs:
    """_build_allowed_dirs() reads MOHAA_PILOT_ALLOWED_DIRS."""

    def test_returns_none_when_env_not_set(self):
        from mohaa_pilot.mcp.server import _build_allowed_dirs

        with patch.dict(os.environ, {"MOHAA_PILOT_ALLOWED_DIRS": ""}):
            assert _build_allowed_dirs() is None

    def test_returns_none_when_env_is_whitespace(self):
        from mohaa_pilot.mcp.server import _build_allowed_dirs

        with patch.dict(os.environ, {"MOHAA_PILOT_ALLOWED_DIRS": "   "}):
            assert _build_allowed_dirs() is None

    def test_parses_colon_separated_paths(self, tmp_path: Path):
        from mohaa_pilot.mcp.server import _build_allowed_dirs

        p1, p2 = tmp_path / "a", tmp_path / "b"
        with patch.dict(os.environ, {"MOHAA_PILOT_ALLOWED_DIRS": f"{p1}:{p2}::"}):
            result = _build_allowed_dirs()

        assert result == [p1.resolve(), p2.resolve()]


class TestValidatePath:
    def test_allows_any_path_when_no_restriction(self, tmp_path: Path):
        import mohaa_pilot.mcp.server as srv_module
        from mohaa_pilot.mcp.server import _validate_path

        original = srv_module._ALLOWED_DIRS
        try:
            srv_module._ALLOWED_DIRS = None
            resolved, err = _validate_path(str(tmp_path / "x.yaml"))
            assert err is None
            assert resolved == (tmp_path / "x.yaml").resolve()
        finally:
            srv_module._ALLOWED_DIRS = original

    def test_allows_nested_path(self, tmp_path: Path):
        import mohaa_pilot.mcp.server as srv_module
        from mohaa_pilot.mcp.server import _validate_path

        original = srv_module._ALLOWED_DIRS
        try:
            srv_module._ALLOWED_DIRS = [tmp_path.resolve()]
            _, err = _validate_path(str(tmp_path / "scripts" / "x.yaml"))
            assert err is None
        finally:
            srv_module._ALLOWED_DIRS = original

    def test_denies_outside_path(self, tmp_path: Path):
        import mohaa_pilot.mcp.server as srv_module
        from mohaa_pilot.mcp.server import _validate_path

        allowed = tmp_path / "allowed"
        original = srv_module._ALLOWED_DIRS
        try:
            srv_module._ALLOWED_DIRS = [allowed.resolve()]
            resolved, err = _validate_path(str(tmp_path / "elsewhere" / "x.yaml"))
            assert resolved is None
            assert "Path access denied" in err
            assert "MOHAA_PILOT_ALLOWED_DIRS" in err
        finally:
            srv_module._ALLOWED_DIRS = original

    def test_run_script_file_denied(self, fakes, tmp_project_dir: Path, tmp_path: Path):
        import mohaa_pilot.mcp.server as srv_module
        from mohaa_pilot.mcp.server import create_server

        original = srv_module._ALLOWED_DIRS
        try:
            srv_module._ALLOWED_DIRS = [(tmp_path / "only-here").resolve()]
            mcp = create_server(_session(fakes, tmp_project_dir))
            data = _call(mcp, "mohaa_run_script_file", {"path": str(tmp_path / "x.yaml")})
        finally:
            srv_module._ALLOWED_DIRS = original
        assert data["tool_error"] is True
        assert data["error_code"] == "PATH_DENIED"
        assert fakes.calls == []


# ---------------------------------------------------------------------------
# 1. Script tools
# ---------------------------------------------------------------------------

class TestScriptTools:
    def test_tools_registered(self, server):
        tools = run_async(server.list_tools())
        names = {t.name for t in tools}
        assert {
            "mohaa_run_script",
            "mohaa_run_script_file",
            "mohaa_validate_script",
            "mohaa_create_map_test",
            "mohaa_create_console_test",
            "mohaa_wait_for_condition",
            "mohaa_abort",
            "mohaa_get_step_results",
            "mohaa_get_variable",
            "mohaa_set_variable",
            "mohaa_clear_variables",
            "mohaa_launch",
            "mohaa_stop",
            "mohaa_status",
            "mohaa_send_command",
            "mohaa_get_console_output",
            "mohaa_check_dependencies",
        } <= names

    def test_run_script_passes_and_saves_evidence(self, server, fakes, tmp_project_dir: Path):
        data = _call(server, "mohaa_run_script", {"script": json.dumps(_SCRIPT)})
        assert data["passed"] is True
        assert data["summary"] == {"total_steps": 5, "passed": 5, "failed": 0}
        assert fakes.calls[0] == ("launch", "/opt/openmohaa/openmohaa")
        assert fakes.calls[-1] == ("command", "quit")
        assert Path(data["evidence_dir"]).parent == tmp_project_dir / "evidence"
        assert (Path(data["evidence_dir"]) / "run-result.json").is_file()

    def test_run_script_failure_reported_not_raised(self, server, fakes):
        fakes.process.fail_launch = True
        data = _call(server, "mohaa_run_script", {"script": json.dumps(_SCRIPT)})
        assert data["passed"] is False
        assert [s["action"] for s in data["steps"]] == ["launch", "error", "command"]

    def test_run_script_invalid_json(self, server):
        data = _call(server, "mohaa_run_script", {"script": "{nope"})
        assert data["error_code"] == "INVALID_JSON"

    def test_run_script_invalid_script(self, server, fakes):
        bad = {"name": "x", "steps": [{"action": "fly"}]}
        data = _call(server, "mohaa_run_script", {"script": json.dumps(bad)})
        assert data["tool_error"] is True
        assert data["error_code"] == "SCRIPT_INVALID"
        assert data["issues"][0]["field"] == "steps[0].action"
        assert fakes.calls == []

    def test_run_script_file(self, server, tmp_project_dir: Path):
        path = tmp_project_dir / "scripts" / "smoke.yaml"
        path.write_text(yaml.safe_dump(_SCRIPT), encoding="utf-8")
        data = _call(server, "mohaa_run_script_file", {"path": str(path)})
        assert data["passed"] is True
        assert data["name"] == "mcp-run"

    def test_run_script_file_missing(self, server, tmp_path: Path):
        data = _call(server, "mohaa_run_script_file", {"path": str(tmp_path / "missing.yaml")})
        assert data["error_code"] == "SCRIPT_INVALID"

    def test_validate_script(self, server):
        ok = _call(server, "mohaa_validate_script", {"script": json.dumps(_SCRIPT)})
        assert ok == {"valid": True, "issues": []}
        bad = _call(server, "mohaa_validate_script", {"script": json.dumps({"name": "x"})})
        assert bad["valid"] is False

    def test_create_map_test_uses_configured_exec(self, server):
        data = _call(server, "mohaa_create_map_test", {"map_name": "dm/mohdm1"})
        assert data["setup"][0]["params"]["executablePath"] == "/opt/openmohaa/openmohaa"
        assert data["teardown"][0]["params"]["command"] == "quit"

    def test_create_console_test(self, server):
        data = _call(server, "mohaa_create_console_test", {"commands": ["status"], "executable_path": "/bin/x"})
        assert data["name"] == "Console Commands Test"
        assert data["setup"][0]["params"]["executablePath"] == "/bin/x"


# ---------------------------------------------------------------------------
# 2. Engine tools
# ---------------------------------------------------------------------------

class TestEngineTools:
    def test_variables_round_trip(self, server):
        _call(server, "mohaa_set_variable", {"name": "x", "value": 5})
        assert _call(server, "mohaa_get_variable", {"name": "x"}) == {"name": "x", "value": 5}
        _call(server, "mohaa_clear_variables")
        assert _call(server, "mohaa_get_variable", {"name": "x"})["value"] is None

    def test_variables_visible_to_scripts(self, server):
        _call(server, "mohaa_set_variable", {"name": "k", "value": "v"})
        script = {"name": "s", "steps": [{"action": "assert", "params": {"variable": "k", "expected": "v"}}]}
        assert _call(server, "mohaa_run_script", {"script": json.dumps(script)})["passed"] is True

    def test_step_results_after_run(self, server):
        _call(server, "mohaa_run_script", {"script": json.dumps(_SCRIPT)})
        data = _call(server, "mohaa_get_step_results")
        assert data["running"] is False
        assert len(data["steps"]) == 5

    def test_step_results_fall_back_to_saved_run(self, fakes, tmp_project_dir: Path):
        import mohaa_pilot.mcp.server as srv_module
        from mohaa_pilot.mcp.server import create_server

        original = srv_module._ALLOWED_DIRS
        srv_module._ALLOWED_DIRS = None
        try:
            first_server = create_server(_session(fakes, tmp_project_dir))
            first = _call(first_server, "mohaa_run_script", {"script": json.dumps(_SCRIPT)})
            # A fresh engine has no results of its own yet
            data = _call(create_server(_session(fakes, tmp_project_dir)), "mohaa_get_step_results")
        finally:
            srv_module._ALLOWED_DIRS = original
        assert data["source"] == "evidence"
        assert data["run_id"] == first["run_id"]
        assert [s["action"] for s in data["steps"]] == ["launch", "command", "set_variable", "assert", "command"]

    def test_step_results_empty_without_runs(self, server):
        data = _call(server, "mohaa_get_step_results")
        assert data == {"running": False, "source": "engine", "steps": []}

    def test_abort_when_idle(self, server):
        assert _call(server, "mohaa_abort") == {"aborted": False}

    def test_wait_for_condition_met(self, server, fakes):
        fakes.process.lines.append("Loading dm/mohdm1")
        data = _call(server, "mohaa_wait_for_condition", {"type": "console_pattern", "params": {"pattern": "loading"}})
        assert data["met"] is True

    def test_wait_for_condition_times_out(self, server):
        data = _call(
            server,
            "mohaa_wait_for_condition",
            {"type": "window_exists", "params": {"title": "OpenMOHAA"}, "timeout": 100},
        )
        assert data["met"] is False
        assert data["elapsed_ms"] > 0

    def test_wait_for_condition_uses_configured_default(self, fakes, tmp_project_dir: Path):
        import mohaa_pilot.mcp.server as srv_module
        from mohaa_pilot.engine.automation import AutomationEngine
        from mohaa_pilot.mcp.server import create_server

        session = _session(fakes, tmp_project_dir)
        session.engine = AutomationEngine(
            fakes.process, fakes.console, fakes.ui, fakes.screen, poll_interval_ms=20, condition_timeout_ms=100
        )
        original = srv_module._ALLOWED_DIRS
        srv_module._ALLOWED_DIRS = None
        try:
            data = _call(
                create_server(session), "mohaa_wait_for_condition", {"type": "window_exists", "params": {"title": "x"}}
            )
        finally:
            srv_module._ALLOWED_DIRS = original
        assert data["met"] is False
        assert data["elapsed_ms"] < 1000

    def test_wait_for_condition_invalid(self, server):
        data = _call(server, "mohaa_wait_for_condition", {"type": "moon_phase"})
        assert data["error_code"] == "CONDITION_INVALID"


# ---------------------------------------------------------------------------
# 3. Process tools
# ---------------------------------------------------------------------------

class TestProcessTools:
    def test_launch_uses_config_defaults(self, server, fakes):
        data = _call(server, "mohaa_launch", {"width": 800, "height": 600, "enable_cheats": True})
        assert data["running"] is True
        config = fakes.process.launched[0]
        assert config.executable_path == "/opt/openmohaa/openmohaa"
        assert config.resolution == (800, 600)
        assert config.enable_cheats is True

    def test_status_and_stop(self, server):
        _call(server, "mohaa_launch")
        status = _call(server, "mohaa_status")
        assert status["process"]["running"] is True
        assert status["script_running"] is False
        assert _call(server, "mohaa_stop") == {"stopped": True}
        assert _call(server, "mohaa_status")["process"]["running"] is False

    def test_send_command(self, server, fakes):
        data = _call(server, "mohaa_send_command", {"command": "status"})
        assert data["success"] is True
        assert fakes.calls == [("command", "status")]

    def test_get_console_output_filtered(self, server, fakes):
        fakes.process.lines.extend(["Loading map", "other", "loaded ok"])
        data = _call(server, "mohaa_get_console_output", {"pattern": "load"})
        assert [line["text"] for line in data["lines"]] == ["Loading map", "loaded ok"]

    def test_get_console_output_bad_pattern(self, server):
        data = _call(server, "mohaa_get_console_output", {"pattern": "(unclosed"})
        assert data["error_code"] == "INVALID_PATTERN"

    def test_check_dependencies(self, server):
        with patch("mohaa_pilot.engine.tools.shutil.which", return_value=None):
            data = _call(server, "mohaa_check_dependencies")
        assert data["ok"] is False
        assert sorted(data["missing"]) == ["compare", "convert", "import", "xdotool"]
