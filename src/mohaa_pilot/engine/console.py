"""Game console access over the process's stdin.

Commands are written as lines to the game's stdin; the response is whatever
the game prints afterwards, collected until a prompt-like line shows up or
the command timeout elapses.  Cvar values are parsed from the engine's
``"name" is:"value" default:"value"`` echo and cached.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Sequence

from mohaa_pilot.engine.launcher import ProcessLauncher
from mohaa_pilot.engine.protocols import CommandResult, ConsoleOutput, CvarInfo
from mohaa_pilot.models import DEFAULT_COMMAND_TIMEOUT_MS

logger = logging.getLogger("mohaa_pilot.engine.console")

_CVAR_VALUE = (re.compile(r'is:\s*"([^"]*)"', re.IGNORECASE), re.compile(r'=\s*"([^"]*)"'))
_CVAR_DEFAULT = re.compile(r'default:\s*"([^"]*)"', re.IGNORECASE)
_CVAR_ECHO = re.compile(r'^(\w+)\s+(?:is:|changed to|=)\s*"?([^"]*)"?')

_FIRST_CHECK_S = 0.5
_CHECK_INTERVAL_S = 0.1


def parse_cvar_output(name: str, output: str) -> CvarInfo | None:
    """Extract a cvar value from console output.

    Falls back to the first non-blank line when the output has no
    ``is:"..."`` / ``= "..."`` form; returns None for empty output.
    """
    for pattern in _CVAR_VALUE:
        match = pattern.search(output)
        if match:
            default = _CVAR_DEFAULT.search(output)
            return CvarInfo(name=name, value=match.group(1), default_value=default.group(1) if default else None)

    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if lines:
        return CvarInfo(name=name, value=lines[0])
    return None


def _is_prompt(line: str) -> bool:
    return ">" in line or "]" in line


class ConsoleManager:
    """Implements the ``ConsoleChannel`` protocol on top of a ProcessLauncher."""

    def __init__(self, launcher: ProcessLauncher, command_timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS) -> None:
        self._launcher = launcher
        self._command_timeout = command_timeout_ms / 1000
        self._cvar_cache: dict[str, CvarInfo] = {}
        launcher.add_output_listener(self._track_cvars)

    def _track_cvars(self, output: ConsoleOutput) -> None:
        match = _CVAR_ECHO.match(output.text)
        if match:
            name, value = match.groups()
            self._cvar_cache[name] = CvarInfo(name=name, value=value)

    async def send_command(self, command: str, wait_for_response: bool = True) -> CommandResult:
        """Send one console command and collect its output."""
        if not self._launcher.is_running():
            return CommandResult(success=False, error="Game is not running")

        collected: list[str] = []
        keyword = command.split(" ")[0]

        def on_output(output: ConsoleOutput) -> None:
            if collected or keyword in output.text:
                collected.append(output.text)

        remove = self._launcher.add_output_listener(on_output) if wait_for_response else None
        try:
            if not await self._launcher.send_input(command):
                return CommandResult(success=False, error="Could not write to game console")
            logger.debug("console> %s", command)
            if remove is None:
                return CommandResult(success=True)

            start = time.monotonic()
            await asyncio.sleep(_FIRST_CHECK_S)
            while time.monotonic() - start < self._command_timeout:
                if collected and _is_prompt(collected[-1]):
                    return CommandResult(success=True, output="\n".join(collected))
                await asyncio.sleep(_CHECK_INTERVAL_S)
        finally:
            if remove is not None:
                remove()

        return CommandResult(
            success=True,
            output="\n".join(collected),
            error=None if collected else "No response received",
        )

    async def send_commands(self, commands: Sequence[str], delay_ms: int = 100) -> list[CommandResult]:
        results = []
        for command in commands:
            results.append(await self.send_command(command))
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
        return results

    async def set_cvar(self, name: str, value: str) -> CommandResult:
        result = await self.send_command(f'set {name} "{value}"')
        if result.success:
            self._cvar_cache[name] = CvarInfo(name=name, value=value)
        return result

    async def get_cvar(self, name: str) -> CvarInfo | None:
        """Query the live value of *name* (typing a cvar's name echoes it)."""
        result = await self.send_command(name)
        if not result.success:
            return None
        info = parse_cvar_output(name, result.output)
        if info is not None:
            self._cvar_cache[name] = info
        return info

    def get_cached_cvar(self, name: str) -> CvarInfo | None:
        """Last known value of *name*; may be stale."""
        return self._cvar_cache.get(name)

    def clear_cache(self) -> None:
        self._cvar_cache.clear()

    async def load_map(self, map_name: str) -> CommandResult:
        return await self.send_command(f"map {map_name}")

    async def exec_config(self, path: str) -> CommandResult:
        if not Path(path).is_file():
            return CommandResult(success=False, error=f"Config file not found: {path}")
        return await self.send_command(f'exec "{path}"')

    async def run_config_file(self, path: str) -> list[CommandResult]:
        """Send every non-comment line of a local config file as a command."""
        config = Path(path)
        if not config.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")
        commands = [
            line.strip()
            for line in config.read_text(encoding="utf-8").splitlines()
            if line.strip() and not line.strip().startswith(("//", "#"))
        ]
        return await self.send_commands(commands, delay_ms=0)
