"""Wait-condition evaluation.

``check_condition`` answers "is it true right now?" for one of the five
condition kinds; ``wait_for_condition`` polls it at a fixed cadence until it
holds or the condition's own timeout elapses.
"""

from __future__ import annotations

import asyncio
import logging
import time

from mohaa_pilot.engine.protocols import ConsoleChannel, InputController, PixelColor, ProcessController, ScreenReader
from mohaa_pilot.engine.script import WaitCondition
from mohaa_pilot.models import (
    CONDITION_POLL_INTERVAL_MS,
    CONSOLE_SEARCH_LINES,
    DEFAULT_CONDITION_TIMEOUT_MS,
    DEFAULT_PIXEL_TOLERANCE,
)

logger = logging.getLogger("mohaa_pilot.engine.conditions")


class ConditionEvaluator:
    """Evaluates wait-conditions against the collaborators."""

    def __init__(
        self,
        process: ProcessController,
        console: ConsoleChannel,
        ui: InputController,
        screen: ScreenReader,
        poll_interval_ms: int = CONDITION_POLL_INTERVAL_MS,
        default_timeout_ms: int = DEFAULT_CONDITION_TIMEOUT_MS,
    ) -> None:
        self._process = process
        self._console = console
        self._ui = ui
        self._screen = screen
        self._poll_interval = poll_interval_ms / 1000
        self.default_timeout_ms = default_timeout_ms

    def timeout_for(self, condition: WaitCondition) -> int:
        """The condition's own timeout, or the configured default when it has none."""
        return condition.timeout or self.default_timeout_ms

    async def check_condition(self, condition: WaitCondition) -> bool:
        """Return whether *condition* holds now. Unknown kinds never hold."""
        params = condition.params
        kind = condition.type

        if kind == "console_pattern":
            matches = self._process.search_console(params["pattern"], CONSOLE_SEARCH_LINES)
            return len(matches) > 0

        if kind == "pixel_color":
            return await self._screen.check_pixel_color(
                params["x"],
                params["y"],
                PixelColor.from_value(params["expected"]),
                params.get("tolerance", DEFAULT_PIXEL_TOLERANCE),
            )

        if kind == "cvar_value":
            # Always a live read; the console's cvar cache may be stale
            cvar = await self._console.get_cvar(params["name"])
            return cvar is not None and cvar.value == str(params["expected"])

        if kind == "window_exists":
            return await self._ui.find_window(params["title"]) is not None

        if kind == "timeout":
            return True

        logger.warning("Unknown condition type '%s' never matches", kind)
        return False

    async def wait_for_condition(self, condition: WaitCondition) -> bool:
        """Poll *condition* until it holds or its timeout elapses.

        Returns True as soon as the condition holds, False on timeout.
        """
        timeout_ms = self.timeout_for(condition)
        timeout = timeout_ms / 1000
        start = time.monotonic()

        while time.monotonic() - start < timeout:
            if await self.check_condition(condition):
                logger.debug("Condition %s met after %.0fms", condition.type, (time.monotonic() - start) * 1000)
                return True
            await asyncio.sleep(self._poll_interval)

        logger.info("Condition %s not met within %dms", condition.type, timeout_ms)
        return False
