"""Ready-made scripts: launch in setup, console interaction in steps, quit in teardown."""

from __future__ import annotations

from typing import Sequence

from mohaa_pilot.engine.script import Script, Step, WaitCondition
from mohaa_pilot.models import DEFAULT_RESOLUTION

_OPEN_CONSOLE = (
    Step("wait", {"ms": 5000}),
    Step("toggle_console", {}),
    Step("wait", {"ms": 500}),
)


def create_map_load_test(map_name: str, exec_path: str) -> Script:
    """Script that launches the game windowed, loads *map_name* and screenshots it."""
    width, height = DEFAULT_RESOLUTION
    return Script(
        name=f"Load Map: {map_name}",
        description=f"Test loading map {map_name}",
        setup=[
            Step(
                "launch",
                {"executablePath": exec_path, "windowed": True, "width": width, "height": height},
                timeout=60000,
                condition=WaitCondition("console_pattern", {"pattern": "Initializing"}, timeout=30000),
            ),
        ],
        steps=[
            *_OPEN_CONSOLE,
            Step("type", {"text": f"map {map_name}"}),
            Step("press_key", {"key": "enter"}),
            Step("wait_for_console", {"pattern": "Loading|loaded", "timeout": 60000}),
            Step("screenshot", {"path": f"/tmp/map_{map_name.replace('/', '_')}.png"}),
        ],
        teardown=[
            Step("command", {"command": "quit"}),
            Step("wait", {"ms": 2000}),
        ],
    )


def create_console_test(commands: Sequence[str], exec_path: str) -> Script:
    """Script that types each of *commands* into the in-game console."""
    steps = list(_OPEN_CONSOLE)
    for command in commands:
        steps.append(Step("type", {"text": command}))
        steps.append(Step("press_key", {"key": "enter"}))
        steps.append(Step("wait", {"ms": 500}))

    return Script(
        name="Console Commands Test",
        description=f"Test {len(commands)} console commands",
        setup=[Step("launch", {"executablePath": exec_path, "windowed": True}, timeout=60000)],
        steps=steps,
        teardown=[Step("command", {"command": "quit"})],
    )
