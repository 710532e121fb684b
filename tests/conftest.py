"""Shared fixtures for mohaa-pilot unit tests.

The fake collaborators below stand in for the game process, its console,
the input device and the screen.  They all append ``(name, args...)``
tuples to one shared ``calls`` list so tests can check call order across
collaborators.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pytest
import yaml

from mohaa_pilot.engine.automation import AutomationEngine
from mohaa_pilot.engine.protocols import (
    CommandResult,
    ConsoleOutput,
    CvarInfo,
    GameConfig,
    ImageMatch,
    NOT_FOUND,
    PixelColor,
    ProcessState,
    WindowInfo,
)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeProcess:
    def __init__(self, calls: list) -> None:
        self.calls = calls
        self.running = False
        self.lines: list[str] = []
        self.launched: list[GameConfig] = []
        self.fail_launch = False

    async def launch(self, config: GameConfig) -> ProcessState:
        self.calls.append(("launch", config.executable_path))
        if self.fail_launch:
            raise RuntimeError("Executable not found")
        self.launched.append(config)
        self.running = True
        return ProcessState(pid=4242, running=True)

    async def stop(self) -> None:
        self.calls.append(("stop",))
        self.running = False

    async def restart(self) -> ProcessState:
        self.calls.append(("restart",))
        self.running = True
        return ProcessState(pid=4243, running=True)

    async def force_kill(self) -> None:
        self.calls.append(("kill",))
        self.running = False

    def is_running(self) -> bool:
        return self.running

    def get_state(self) -> ProcessState:
        return ProcessState(pid=4242 if self.running else None, running=self.running)

    def search_console(self, pattern: str, limit: int | None = None) -> list[ConsoleOutput]:
        regex = re.compile(pattern, re.IGNORECASE)
        recent = self.lines[-limit:] if limit else self.lines
        return [ConsoleOutput(text=line) for line in recent if regex.search(line)]

    def get_console_buffer(self, lines: int | None = None) -> list[ConsoleOutput]:
        recent = self.lines[-lines:] if lines else self.lines
        return [ConsoleOutput(text=line) for line in recent]

    async def wait_for_console_pattern(self, pattern: str, timeout_ms: int) -> ConsoleOutput | None:
        self.calls.append(("wait_for_console_pattern", pattern, timeout_ms))
        matches = self.search_console(pattern, 100)
        return matches[-1] if matches else None


class FakeConsole:
    def __init__(self, calls: list) -> None:
        self.calls = calls
        self.cvars: dict[str, str] = {}
        self.failing: set[str] = set()

    async def send_command(self, command: str) -> CommandResult:
        self.calls.append(("command", command))
        if command in self.failing:
            raise RuntimeError(f"console rejected {command}")
        return CommandResult(success=True, output="")

    async def set_cvar(self, name: str, value: str) -> CommandResult:
        self.calls.append(("set_cvar", name, value))
        self.cvars[name] = value
        return CommandResult(success=True)

    async def get_cvar(self, name: str) -> CvarInfo | None:
        self.calls.append(("get_cvar", name))
        if name not in self.cvars:
            return None
        return CvarInfo(name=name, value=self.cvars[name])

    async def load_map(self, map_name: str) -> CommandResult:
        self.calls.append(("load_map", map_name))
        return CommandResult(success=True)

    async def exec_config(self, path: str) -> CommandResult:
        self.calls.append(("exec_config", path))
        if not Path(path).exists():
            return CommandResult(success=False, error=f"Config file not found: {path}")
        return CommandResult(success=True)


class FakeInput:
    def __init__(self, calls: list) -> None:
        self.calls = calls
        self.windows: set[str] = set()

    def __getattr__(self, name: str) -> Any:
        # Every input method just records its name and arguments
        if name.startswith("_"):
            raise AttributeError(name)

        async def record(*args: Any) -> None:
            self.calls.append((name, *args))

        return record

    async def focus_window(self) -> bool:
        self.calls.append(("focus_window",))
        return bool(self.windows)

    async def find_window(self, title: str | None = None) -> WindowInfo | None:
        if title in self.windows:
            return WindowInfo(id="0x1", title=title)
        return None


class FakeScreen:
    def __init__(self, calls: list) -> None:
        self.calls = calls
        self.pixel = PixelColor(0, 0, 0)
        self.image: ImageMatch = NOT_FOUND
        self.save_ok = True

    async def save_screenshot(self, path: str, region: Any = None) -> bool:
        self.calls.append(("screenshot", path))
        return self.save_ok

    async def check_pixel_color(self, x: int, y: int, expected: PixelColor, tolerance: int = 10) -> bool:
        self.calls.append(("check_pixel_color", x, y))
        return self.pixel.within(expected, tolerance)

    async def find_image(self, template_path: str, region: Any = None, threshold: float = 0.9) -> ImageMatch:
        self.calls.append(("find_image", template_path))
        return self.image

    async def wait_for_pixel_color(
        self, x: int, y: int, expected: PixelColor, timeout_ms: int, tolerance: int = 10
    ) -> bool:
        self.calls.append(("wait_for_pixel_color", x, y, timeout_ms))
        return self.pixel.within(expected, tolerance)

    async def wait_for_image(self, template_path: str, timeout_ms: int, threshold: float = 0.9) -> ImageMatch:
        self.calls.append(("wait_for_image", template_path, timeout_ms))
        return self.image


class Fakes:
    """The four fake collaborators plus their shared call log."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.process = FakeProcess(self.calls)
        self.console = FakeConsole(self.calls)
        self.ui = FakeInput(self.calls)
        self.screen = FakeScreen(self.calls)

    def engine(self, poll_interval_ms: int = 200) -> AutomationEngine:
        return AutomationEngine(self.process, self.console, self.ui, self.screen, poll_interval_ms=poll_interval_ms)

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]


# ---------------------------------------------------------------------------
# Fixture: fake collaborators and an engine wired to them
# ---------------------------------------------------------------------------

@pytest.fixture
def fakes() -> Fakes:
    return Fakes()


@pytest.fixture
def engine(fakes: Fakes) -> AutomationEngine:
    return fakes.engine()


# ---------------------------------------------------------------------------
# Fixture: temporary project directory with .mohaa-pilot/ structure
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary .mohaa-pilot/ project directory with full structure."""
    project_dir = tmp_path / ".mohaa-pilot"
    for sub in ("scripts", "evidence"):
        (project_dir / sub).mkdir(parents=True)

    config_data = {
        "game": {"executable_path": "/opt/openmohaa/openmohaa", "windowed": True},
        "command_timeout_ms": 2000,
    }
    (project_dir / "config.yaml").write_text(yaml.dump(config_data, default_flow_style=False), encoding="utf-8")

    return project_dir


# ---------------------------------------------------------------------------
# Fixture: sample script documents
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_config_yaml() -> str:
    """Return a valid mohaa-pilot config.yaml as a string."""
    return """\
game:
  executable_path: /usr/games/openmohaa
  game_directory: mymod
  windowed: false
  resolution:
    width: 1920
    height: 1080
scripts_dir: scripts
evidence_dir: evidence
console_buffer_lines: 500
command_timeout_ms: 3000
poll_interval_ms: 100
"""


@pytest.fixture
def sample_script_dict() -> dict[str, Any]:
    return {
        "name": "sample",
        "description": "launch, poke the console, quit",
        "setup": [{"action": "launch", "params": {"executablePath": "/usr/games/openmohaa"}}],
        "steps": [
            {"action": "command", "params": {"command": "status"}, "waitAfter": 10},
            {"action": "set_variable", "params": {"name": "k", "value": "v"}},
            {"action": "assert", "params": {"variable": "k", "expected": "v"}},
        ],
        "teardown": [{"action": "command", "params": {"command": "quit"}}],
    }


# ---------------------------------------------------------------------------
# Fixture: a stand-in game binary (POSIX sh) that answers on stdin/stdout
# ---------------------------------------------------------------------------

_FAKE_GAME = """\
#!/bin/sh
echo "----- Initializing OpenMoHAA -----"
echo "args: $*"
while IFS= read -r line; do
  case "$line" in
    quit) echo "Shutting down"; exit 0 ;;
    g_gametype) echo '"g_gametype" is:"1" default:"0"'; echo "]" ;;
    silent) ;;
    *) echo "$line: ok"; echo "]" ;;
  esac
done
"""


@pytest.fixture
def fake_game(tmp_path: Path) -> Path:
    """Executable shell script that behaves like a tiny dedicated console."""
    exe = tmp_path / "bin" / "openmohaa"
    exe.parent.mkdir()
    exe.write_text(_FAKE_GAME, encoding="utf-8")
    exe.chmod(0o755)
    return exe
