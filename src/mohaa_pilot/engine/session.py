"""Wires the Linux collaborators and the automation engine together."""

from __future__ import annotations

import dataclasses
import logging

from mohaa_pilot.config import PilotConfig
from mohaa_pilot.engine.automation import AutomationEngine
from mohaa_pilot.engine.console import ConsoleManager
from mohaa_pilot.engine.input_controller import XdotoolInput
from mohaa_pilot.engine.launcher import ProcessLauncher
from mohaa_pilot.engine.protocols import GameConfig
from mohaa_pilot.engine.screen_capture import ScreenCapture

logger = logging.getLogger("mohaa_pilot.engine.session")


@dataclasses.dataclass
class GameSession:
    """One game process plus the engine that drives it."""

    config: PilotConfig
    launcher: ProcessLauncher
    console: ConsoleManager
    ui: XdotoolInput
    screen: ScreenCapture
    engine: AutomationEngine

    @classmethod
    def from_config(cls, config: PilotConfig) -> GameSession:
        launcher = ProcessLauncher(buffer_lines=config.console_buffer_lines)
        console = ConsoleManager(launcher, command_timeout_ms=config.command_timeout_ms)
        ui = XdotoolInput()
        screen = ScreenCapture()
        engine = AutomationEngine(
            launcher,
            console,
            ui,
            screen,
            poll_interval_ms=config.poll_interval_ms,
            condition_timeout_ms=config.condition_timeout_ms,
        )
        logger.debug("Game session ready (executable=%s)", config.executable_path or "<unset>")
        return cls(config=config, launcher=launcher, console=console, ui=ui, screen=screen, engine=engine)

    def game_config(self, **overrides: object) -> GameConfig:
        """GameConfig from the project config, with *overrides* applied."""
        base = GameConfig(
            executable_path=self.config.executable_path,
            game_directory=self.config.game_directory or None,
            windowed=self.config.windowed,
            resolution=self.config.resolution if self.config.windowed else None,
        )
        return dataclasses.replace(base, **overrides)

    async def shutdown(self) -> None:
        """Stop the game if it is still running."""
        if self.launcher.is_running():
            await self.launcher.stop()
