"""mohaa-pilot MCP Server — Model Context Protocol server for AI agent integration.

Exposes the automation engine and the game collaborators as MCP tools so an
agent can launch OpenMoHAA, drive its console, and run validated scripts.

Usage:
    mohaa-pilot-mcp            # stdio transport (default)
    python -m mohaa_pilot.mcp  # alternative invocation

Every tool returns a JSON string.  Failures are reported in-band as
``{"error": ..., "tool_error": true, "error_code": ...}``.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import time
from pathlib import Path
from typing import Any

from mohaa_pilot.config import PilotConfig, PilotConfigError, resolve_project_dir
from mohaa_pilot.engine.builders import create_console_test, create_map_load_test
from mohaa_pilot.engine.errors import ScriptValidationError
from mohaa_pilot.engine.launcher import GameProcessError
from mohaa_pilot.engine.report_generator import load_latest_run
from mohaa_pilot.engine.runner import run_and_record
from mohaa_pilot.engine.schemas import has_errors, validate_condition, validate_document
from mohaa_pilot.engine.script import Script, WaitCondition
from mohaa_pilot.engine.session import GameSession
from mohaa_pilot.engine.tools import check_dependencies
from mohaa_pilot.models import CONSOLE_SEARCH_LINES

logger = logging.getLogger("mohaa_pilot.mcp")

ALLOWED_DIRS_ENV = "MOHAA_PILOT_ALLOWED_DIRS"


# Optional allowlist of base directories that file-path arguments may point
# into: a colon-separated list of absolute paths.  Unset means no restriction.
def _build_allowed_dirs() -> list[Path] | None:
    """Build the list of allowed base directories from the environment.

    Returns None if MOHAA_PILOT_ALLOWED_DIRS is not set (no restriction active).
    """
    env_val = os.environ.get(ALLOWED_DIRS_ENV, "")
    if env_val.strip():
        return [Path(p).resolve() for p in env_val.split(":") if p.strip()]
    return None


# Computed once at import time so the allowlist is stable across all tool calls.
_ALLOWED_DIRS: list[Path] | None = _build_allowed_dirs()


def _validate_path(path: str | None) -> tuple[Path | None, str | None]:
    """Resolve *path* and verify it is within an allowed base (if configured).

    Returns (resolved_path, None) on success, or (None, error_message).
    """
    resolved = Path(path).resolve() if path else Path.cwd().resolve()
    logger.info("MCP path request: %s (resolved: %s)", path, resolved)

    if _ALLOWED_DIRS is None:
        return resolved, None

    for allowed in _ALLOWED_DIRS:
        try:
            resolved.relative_to(allowed)
            return resolved, None
        except ValueError:
            continue

    allowed_list = ", ".join(str(p) for p in _ALLOWED_DIRS)
    return None, (
        f"Path access denied: {resolved}\n\n"
        f"The MCP server only allows access within: {allowed_list}\n\n"
        f"To allow additional directories, set the {ALLOWED_DIRS_ENV} "
        "environment variable to a colon-separated list of permitted base paths."
    )


def _error(message: str, code: str, **extra: Any) -> str:
    return json.dumps({"error": message, "tool_error": True, "error_code": code, **extra})


def _json_serialize(obj: Any) -> str:
    """JSON serializer for non-standard types."""
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _dumps(data: Any) -> str:
    return json.dumps(data, default=_json_serialize)


class _Runtime:
    """Lazily built game session shared by all tool calls."""

    def __init__(self, session: GameSession | None = None) -> None:
        self._session = session

    @property
    def session(self) -> GameSession:
        if self._session is None:
            config = PilotConfig.for_project(resolve_project_dir())
            self._session = GameSession.from_config(config)
        return self._session

    @property
    def evidence_dir(self) -> Path | None:
        config = self.session.config
        return config.evidence_dir if config.project_dir.is_dir() else None


def _run_summary(record: Any, run_dir: Path | None) -> dict[str, Any]:
    steps = record.result.steps
    passed_count = sum(1 for s in steps if s.success)
    return {
        "passed": record.passed,
        "run_id": record.run_id,
        "name": record.script_name,
        "duration_ms": round(record.result.duration_ms, 1),
        "summary": {"total_steps": len(steps), "passed": passed_count, "failed": len(steps) - passed_count},
        "steps": [dataclasses.asdict(s) for s in steps],
        "evidence_dir": str(run_dir) if run_dir else None,
    }


def _parse_json_arg(text: str, what: str) -> tuple[Any, str | None]:
    try:
        return json.loads(text), None
    except json.JSONDecodeError as exc:
        return None, _error(f"{what} is not valid JSON: {exc}", "INVALID_JSON")


def create_server(session: GameSession | None = None) -> Any:
    """Create and configure the mohaa-pilot MCP server.

    Args:
        session: Game session to drive.  Built from the project config on
            first use when omitted.

    Returns:
        A FastMCP server instance with all tools registered.
    """
    from mcp.server.fastmcp import FastMCP

    runtime = _Runtime(session)

    mcp = FastMCP(
        "mohaa-pilot",
        instructions=(
            "mohaa-pilot automates the OpenMoHAA game. Launch the game, send console "
            "commands, and run declarative automation scripts (setup, steps, teardown) "
            "made of actions such as launch, command, type, press_key, screenshot, "
            "wait_for_console and assert. Validate scripts before running them."
        ),
    )

    async def _run(script: Script, script_path: Path | None = None) -> str:
        engine = runtime.session.engine
        if engine.is_running():
            return _error("A script is already running. Call mohaa_abort or wait for it to finish.", "ENGINE_BUSY")
        record, run_dir = await run_and_record(engine, script, runtime.evidence_dir, script_path)
        return _dumps(_run_summary(record, run_dir))

    # ── Scripts ──────────────────────────────────────────────────────────

    @mcp.tool(
        name="mohaa_run_script",
        description=(
            "Run an automation script given as JSON: "
            '{"name", "setup"?, "steps", "teardown"?}. Each step is '
            '{"action", "params", "waitAfter"?, "condition"?}. The script is validated '
            "first; teardown always runs. Returns pass/fail and per-step results."
        ),
    )
    async def mohaa_run_script(script: str) -> str:
        data, err = _parse_json_arg(script, "script")
        if err:
            return err
        try:
            parsed = Script.from_dict(data)
        except ScriptValidationError as exc:
            return _error(str(exc), "SCRIPT_INVALID", issues=exc.issues)
        try:
            return await _run(parsed)
        except PilotConfigError as exc:
            return _error(str(exc), "CONFIG_ERROR")

    @mcp.tool(
        name="mohaa_run_script_file",
        description="Run an automation script from a .json/.yaml file on disk.",
    )
    async def mohaa_run_script_file(path: str) -> str:
        resolved, path_err = _validate_path(path)
        if path_err:
            return _error(path_err, "PATH_DENIED")
        try:
            parsed = Script.from_file(resolved)
        except ScriptValidationError as exc:
            return _error(str(exc), "SCRIPT_INVALID", issues=exc.issues)
        try:
            return await _run(parsed, resolved)
        except PilotConfigError as exc:
            return _error(str(exc), "CONFIG_ERROR")

    @mcp.tool(
        name="mohaa_validate_script",
        description="Validate an automation script (JSON) without running it. Returns every issue found.",
    )
    async def mohaa_validate_script(script: str) -> str:
        data, err = _parse_json_arg(script, "script")
        if err:
            return err
        issues = validate_document(data)
        return _dumps({"valid": not has_errors(issues), "issues": issues})

    @mcp.tool(
        name="mohaa_create_map_test",
        description="Build (but do not run) a script that launches the game and loads the given map.",
    )
    async def mohaa_create_map_test(map_name: str, executable_path: str | None = None) -> str:
        exec_path = executable_path or runtime.session.config.executable_path
        if not exec_path:
            return _error("No executable_path given and none configured (OPENMOHAA_EXEC_PATH).", "CONFIG_ERROR")
        return _dumps(create_map_load_test(map_name, exec_path).to_dict())

    @mcp.tool(
        name="mohaa_create_console_test",
        description="Build (but do not run) a script that types each command into the in-game console.",
    )
    async def mohaa_create_console_test(commands: list[str], executable_path: str | None = None) -> str:
        exec_path = executable_path or runtime.session.config.executable_path
        if not exec_path:
            return _error("No executable_path given and none configured (OPENMOHAA_EXEC_PATH).", "CONFIG_ERROR")
        return _dumps(create_console_test(commands, exec_path).to_dict())

    # ── Engine ───────────────────────────────────────────────────────────

    @mcp.tool(
        name="mohaa_wait_for_condition",
        description=(
            "Poll a wait-condition until it holds or times out. Types: console_pattern {pattern}, "
            "pixel_color {x, y, expected: {r,g,b}, tolerance?}, cvar_value {name, expected}, "
            "window_exists {title}, timeout {}."
        ),
    )
    async def mohaa_wait_for_condition(
        type: str,
        params: dict[str, Any] | None = None,
        timeout: int | None = None,
    ) -> str:
        condition_data: dict[str, Any] = {"type": type, "params": params or {}}
        if timeout:
            condition_data["timeout"] = timeout
        issues = validate_condition(condition_data)
        if has_errors(issues):
            return _error("Invalid condition", "CONDITION_INVALID", issues=issues)
        start = time.monotonic()
        met = await runtime.session.engine.wait_for_condition(WaitCondition.from_dict(condition_data))
        return _dumps({"met": met, "elapsed_ms": round((time.monotonic() - start) * 1000, 1)})

    @mcp.tool(name="mohaa_abort", description="Abort the running script. Teardown still runs.")
    async def mohaa_abort() -> str:
        engine = runtime.session.engine
        was_running = engine.is_running()
        engine.abort()
        return _dumps({"aborted": was_running})

    @mcp.tool(
        name="mohaa_get_step_results",
        description=(
            "Step results of the current or most recent run. Before any run in this "
            "session, falls back to the last run saved in the project's evidence directory."
        ),
    )
    async def mohaa_get_step_results() -> str:
        engine = runtime.session.engine
        steps = engine.get_step_results()
        if not steps and not engine.is_running() and runtime.evidence_dir is not None:
            latest = load_latest_run(runtime.evidence_dir)
            if latest is not None:
                return _dumps(
                    {
                        "running": False,
                        "source": "evidence",
                        "run_id": latest.get("run_id"),
                        "steps": latest.get("result", {}).get("steps", []),
                    }
                )
        return _dumps(
            {
                "running": engine.is_running(),
                "source": "engine",
                "steps": [dataclasses.asdict(s) for s in steps],
            }
        )

    @mcp.tool(name="mohaa_get_variable", description="Read a script variable (null when unset).")
    async def mohaa_get_variable(name: str) -> str:
        return _dumps({"name": name, "value": runtime.session.engine.get_variable(name)})

    @mcp.tool(name="mohaa_set_variable", description="Set a script variable visible to later runs.")
    async def mohaa_set_variable(name: str, value: Any) -> str:
        runtime.session.engine.set_variable(name, value)
        return _dumps({"name": name, "value": value})

    @mcp.tool(name="mohaa_clear_variables", description="Remove all script variables.")
    async def mohaa_clear_variables() -> str:
        runtime.session.engine.clear_variables()
        return _dumps({"cleared": True})

    # ── Game process ─────────────────────────────────────────────────────

    @mcp.tool(
        name="mohaa_launch",
        description="Launch OpenMoHAA. Defaults come from the project config and OPENMOHAA_* env vars.",
    )
    async def mohaa_launch(
        executable_path: str | None = None,
        windowed: bool | None = None,
        width: int | None = None,
        height: int | None = None,
        game_directory: str | None = None,
        args: list[str] | None = None,
        enable_cheats: bool = False,
    ) -> str:
        session = runtime.session
        overrides: dict[str, Any] = {"arguments": list(args or []), "enable_cheats": enable_cheats}
        if executable_path:
            overrides["executable_path"] = executable_path
        if windowed is not None:
            overrides["windowed"] = windowed
        if width and height:
            overrides["resolution"] = (width, height)
        if game_directory:
            overrides["game_directory"] = game_directory
        config = session.game_config(**overrides)
        if not config.executable_path:
            return _error("No executable_path given and none configured (OPENMOHAA_EXEC_PATH).", "CONFIG_ERROR")
        try:
            state = await session.launcher.launch(config)
        except GameProcessError as exc:
            return _error(str(exc), "LAUNCH_FAILED")
        return _dumps(dataclasses.asdict(state))

    @mcp.tool(name="mohaa_stop", description="Stop the game (SIGTERM, then SIGKILL after 5 seconds).")
    async def mohaa_stop() -> str:
        launcher = runtime.session.launcher
        was_running = launcher.is_running()
        await launcher.stop()
        return _dumps({"stopped": was_running})

    @mcp.tool(name="mohaa_status", description="Game process state and whether a script is running.")
    async def mohaa_status() -> str:
        session = runtime.session
        return _dumps(
            {
                "process": dataclasses.asdict(session.launcher.get_state()),
                "script_running": session.engine.is_running(),
            }
        )

    @mcp.tool(name="mohaa_send_command", description="Send a console command and return its output.")
    async def mohaa_send_command(command: str) -> str:
        result = await runtime.session.console.send_command(command)
        if not result.success:
            return _error(result.error or "Command failed", "COMMAND_FAILED")
        return _dumps(dataclasses.asdict(result))

    @mcp.tool(
        name="mohaa_get_console_output",
        description="Recent game output lines, optionally filtered by a case-insensitive regex.",
    )
    async def mohaa_get_console_output(lines: int = CONSOLE_SEARCH_LINES, pattern: str | None = None) -> str:
        launcher = runtime.session.launcher
        if pattern:
            try:
                output = launcher.search_console(pattern, lines)
            except Exception as exc:
                return _error(f"Invalid pattern {pattern!r}: {exc}", "INVALID_PATTERN")
        else:
            output = launcher.get_console_buffer(lines)
        return _dumps({"lines": [dataclasses.asdict(o) for o in output]})

    @mcp.tool(
        name="mohaa_check_dependencies",
        description="Report whether xdotool and ImageMagick (import/convert/compare) are installed.",
    )
    async def mohaa_check_dependencies() -> str:
        return _dumps(check_dependencies())

    return mcp


def main() -> None:
    """Entry point for the mohaa-pilot-mcp command."""
    server = create_server()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
