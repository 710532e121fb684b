"""Action dispatch — maps each action tag to one collaborator call.

Handlers only thread parameters through to the collaborators and turn
negative outcomes (pixel mismatch, image not found, rejected command) into
exceptions.  Variable writes go to the engine-owned variables mapping handed
in at construction.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, MutableMapping

from mohaa_pilot.engine.errors import ActionFailedError, AssertionFailedError, UnknownActionError
from mohaa_pilot.engine.protocols import (
    CommandResult,
    ConsoleChannel,
    GameConfig,
    InputController,
    PixelColor,
    ProcessController,
    ScreenReader,
    ScreenRegion,
)
from mohaa_pilot.engine.script import Step
from mohaa_pilot.models import (
    DEFAULT_IMAGE_THRESHOLD,
    DEFAULT_PIXEL_TOLERANCE,
    DEFAULT_SCROLL_CLICKS,
    DEFAULT_WAIT_MS,
    DEFAULT_WAIT_TIMEOUT_MS,
)

logger = logging.getLogger("mohaa_pilot.engine.actions")

EmitFn = Callable[[str, dict[str, Any]], None]
Handler = Callable[[Step], Awaitable[None]]


class ActionDispatcher:
    """Executes a step's action against the collaborators."""

    def __init__(
        self,
        process: ProcessController,
        console: ConsoleChannel,
        ui: InputController,
        screen: ScreenReader,
        variables: MutableMapping[str, Any],
        emit: EmitFn,
    ) -> None:
        self._process = process
        self._console = console
        self._ui = ui
        self._screen = screen
        self._variables = variables
        self._emit = emit

        self._handlers: dict[str, Handler] = {
            # Process control
            "launch": self._launch,
            "stop": self._stop,
            "restart": self._restart,
            "kill": self._kill,
            # Console
            "command": self._command,
            "set_cvar": self._set_cvar,
            "get_cvar": self._get_cvar,
            "load_map": self._load_map,
            "exec_config": self._exec_config,
            # Input
            "mouse_move": self._mouse_move,
            "mouse_click": self._mouse_click,
            "double_click": self._double_click,
            "drag": self._drag,
            "scroll": self._scroll,
            "type": self._type,
            "press_key": self._press_key,
            "key_combo": self._key_combo,
            "toggle_console": self._toggle_console,
            "focus_window": self._focus_window,
            # Screen
            "screenshot": self._screenshot,
            "check_pixel": self._check_pixel,
            "find_image": self._find_image,
            # Waits
            "wait": self._wait,
            "wait_for_console": self._wait_for_console,
            "wait_for_pixel": self._wait_for_pixel,
            "wait_for_image": self._wait_for_image,
            # Assertions
            "assert": self._assert,
            "assert_running": self._assert_running,
            "assert_not_running": self._assert_not_running,
            # Bookkeeping
            "set_variable": self._set_variable,
            "log": self._log,
        }

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(self._handlers)

    async def execute(self, step: Step) -> None:
        """Run *step*'s action.

        Raises:
            UnknownActionError: if the action tag has no handler.
            AutomationError: subclasses for negative outcomes.
            Exception: anything the collaborator raised, unchanged.
        """
        handler = self._handlers.get(step.action)
        if handler is None:
            raise UnknownActionError(step.action)
        await handler(step)

    # -- Helpers --------------------------------------------------------------

    @staticmethod
    def _wait_timeout(step: Step) -> int:
        """Timeout for wait-family actions: params, then the step's own timeout, then the default."""
        return step.params.get("timeout") or step.timeout or DEFAULT_WAIT_TIMEOUT_MS

    @staticmethod
    def _require(result: CommandResult, what: str) -> None:
        if not result.success:
            raise ActionFailedError(f"{what} failed: {result.error or 'rejected by console'}")

    # -- Process control ------------------------------------------------------

    async def _launch(self, step: Step) -> None:
        p = step.params
        width, height = p.get("width"), p.get("height")
        config = GameConfig(
            executable_path=p["executablePath"],
            working_directory=p.get("workingDirectory"),
            arguments=list(p.get("args") or []),
            environment=dict(p.get("env") or {}),
            game_directory=p.get("gameDirectory"),
            enable_console=p.get("enableConsole", True),
            enable_cheats=p.get("enableCheats", False),
            windowed=p.get("windowed", False),
            resolution=(width, height) if width and height else None,
        )
        await self._process.launch(config)

    async def _stop(self, step: Step) -> None:
        await self._process.stop()

    async def _restart(self, step: Step) -> None:
        await self._process.restart()

    async def _kill(self, step: Step) -> None:
        await self._process.force_kill()

    # -- Console --------------------------------------------------------------

    async def _command(self, step: Step) -> None:
        command = step.params["command"]
        self._require(await self._console.send_command(command), f"Command '{command}'")

    async def _set_cvar(self, step: Step) -> None:
        name = step.params["name"]
        self._require(await self._console.set_cvar(name, str(step.params["value"])), f"set_cvar {name}")

    async def _get_cvar(self, step: Step) -> None:
        cvar = await self._console.get_cvar(step.params["name"])
        store_as = step.params.get("storeAs")
        if store_as:
            self._variables[store_as] = cvar.value if cvar is not None else None

    async def _load_map(self, step: Step) -> None:
        map_name = step.params["map"]
        self._require(await self._console.load_map(map_name), f"load_map {map_name}")

    async def _exec_config(self, step: Step) -> None:
        path = step.params["path"]
        self._require(await self._console.exec_config(path), f"exec_config {path}")

    # -- Input ----------------------------------------------------------------

    async def _mouse_move(self, step: Step) -> None:
        p = step.params
        if p.get("relative"):
            await self._ui.move_mouse_relative(p["x"], p["y"])
        elif p.get("window"):
            await self._ui.move_mouse_to_window(p["x"], p["y"])
        else:
            await self._ui.move_mouse(p["x"], p["y"])

    async def _mouse_click(self, step: Step) -> None:
        p = step.params
        button = p.get("button", "left")
        if p.get("x") is not None and p.get("y") is not None:
            await self._ui.click_at(p["x"], p["y"], button)
        else:
            await self._ui.click_mouse(button)

    async def _double_click(self, step: Step) -> None:
        await self._ui.double_click(step.params.get("button", "left"))

    async def _drag(self, step: Step) -> None:
        p = step.params
        await self._ui.drag(p["startX"], p["startY"], p["endX"], p["endY"], p.get("button", "left"))

    async def _scroll(self, step: Step) -> None:
        await self._ui.scroll(step.params["direction"], step.params.get("clicks", DEFAULT_SCROLL_CLICKS))

    async def _type(self, step: Step) -> None:
        await self._ui.type_text(step.params["text"], step.params.get("delay"))

    async def _press_key(self, step: Step) -> None:
        modifiers = step.params.get("modifiers")
        if modifiers:
            await self._ui.press_key_with_modifiers(step.params["key"], list(modifiers))
        else:
            await self._ui.press_key(step.params["key"])

    async def _key_combo(self, step: Step) -> None:
        await self._ui.send_key_combo(step.params["combo"])

    async def _toggle_console(self, step: Step) -> None:
        await self._ui.toggle_console()

    async def _focus_window(self, step: Step) -> None:
        if not await self._ui.focus_window():
            logger.warning("focus_window: game window not found")

    # -- Screen ---------------------------------------------------------------

    async def _screenshot(self, step: Step) -> None:
        path = step.params["path"]
        region = ScreenRegion.from_value(step.params.get("region"))
        if not await self._screen.save_screenshot(path, region):
            raise ActionFailedError(f"Failed to save screenshot to {path}")

    async def _check_pixel(self, step: Step) -> None:
        p = step.params
        matches = await self._screen.check_pixel_color(
            p["x"],
            p["y"],
            PixelColor.from_value(p["expected"]),
            p.get("tolerance", DEFAULT_PIXEL_TOLERANCE),
        )
        if not matches:
            raise ActionFailedError(f"Pixel color mismatch at {p['x']},{p['y']}")

    async def _find_image(self, step: Step) -> None:
        p = step.params
        match = await self._screen.find_image(
            p["template"],
            ScreenRegion.from_value(p.get("region")),
            p.get("threshold", DEFAULT_IMAGE_THRESHOLD),
        )
        if not match.found:
            raise ActionFailedError(f"Image not found: {p['template']}")
        if p.get("storeX"):
            self._variables[p["storeX"]] = match.x
        if p.get("storeY"):
            self._variables[p["storeY"]] = match.y

    # -- Waits ----------------------------------------------------------------

    async def _wait(self, step: Step) -> None:
        await asyncio.sleep(step.params.get("ms", DEFAULT_WAIT_MS) / 1000)

    async def _wait_for_console(self, step: Step) -> None:
        pattern = step.params["pattern"]
        timeout = self._wait_timeout(step)
        line = await self._process.wait_for_console_pattern(pattern, timeout)
        if line is None:
            logger.warning("wait_for_console: '%s' not seen within %dms", pattern, timeout)

    async def _wait_for_pixel(self, step: Step) -> None:
        p = step.params
        timeout = self._wait_timeout(step)
        matched = await self._screen.wait_for_pixel_color(
            p["x"],
            p["y"],
            PixelColor.from_value(p["expected"]),
            timeout,
            p.get("tolerance", DEFAULT_PIXEL_TOLERANCE),
        )
        if not matched:
            logger.warning("wait_for_pixel: %s,%s did not match within %dms", p["x"], p["y"], timeout)

    async def _wait_for_image(self, step: Step) -> None:
        p = step.params
        match = await self._screen.wait_for_image(
            p["template"],
            self._wait_timeout(step),
            p.get("threshold", DEFAULT_IMAGE_THRESHOLD),
        )
        if not match.found:
            raise ActionFailedError(f"Image not found: {p['template']}")

    # -- Assertions -----------------------------------------------------------

    async def _assert(self, step: Step) -> None:
        variable = step.params["variable"]
        expected = step.params["expected"]
        actual = self._variables.get(variable)
        if actual != expected:
            raise AssertionFailedError(variable, actual, expected)

    async def _assert_running(self, step: Step) -> None:
        if not self._process.is_running():
            raise ActionFailedError("Game is not running")

    async def _assert_not_running(self, step: Step) -> None:
        if self._process.is_running():
            raise ActionFailedError("Game is still running")

    # -- Bookkeeping ----------------------------------------------------------

    async def _set_variable(self, step: Step) -> None:
        self._variables[step.params["name"]] = step.params["value"]

    async def _log(self, step: Step) -> None:
        message = step.params["message"]
        logger.info("Script log: %s", message)
        self._emit("log", {"message": message, "data": step.params.get("data")})
