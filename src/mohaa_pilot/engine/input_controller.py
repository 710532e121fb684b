"""Synthetic mouse and keyboard input via ``xdotool`` (X11).

Key names used in scripts (``enter``, ``esc``, ``backtick``, ``f1`` ...) are
translated to X keysyms before being handed to ``xdotool key``.  Unknown
names pass through unchanged, so raw keysyms work too.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Sequence

from mohaa_pilot.engine.errors import ActionFailedError
from mohaa_pilot.engine.protocols import WindowInfo
from mohaa_pilot.engine.tools import ToolError, run_tool
from mohaa_pilot.models import DEFAULT_SCROLL_CLICKS, DEFAULT_TYPE_DELAY_MS

logger = logging.getLogger("mohaa_pilot.engine.input_controller")

DEFAULT_WINDOW_TITLE = "OpenMOHAA"

_BUTTONS = {"left": "1", "middle": "2", "right": "3"}
_SCROLL_BUTTONS = {"up": "4", "down": "5"}

KEY_MAP: dict[str, str] = {
    "enter": "Return",
    "return": "Return",
    "esc": "Escape",
    "escape": "Escape",
    "tab": "Tab",
    "space": "space",
    "backspace": "BackSpace",
    "delete": "Delete",
    "insert": "Insert",
    "home": "Home",
    "end": "End",
    "pageup": "Page_Up",
    "pagedown": "Page_Down",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    **{f"f{n}": f"F{n}" for n in range(1, 13)},
    "`": "grave",
    "backtick": "grave",
    "grave": "grave",
    "~": "asciitilde",
    "-": "minus",
    "=": "equal",
    "[": "bracketleft",
    "]": "bracketright",
    "\\": "backslash",
    ";": "semicolon",
    "'": "apostrophe",
    ",": "comma",
    ".": "period",
    "/": "slash",
    "capslock": "Caps_Lock",
    "numlock": "Num_Lock",
    "scrolllock": "Scroll_Lock",
    "pause": "Pause",
    "printscreen": "Print",
}

_POSITION = re.compile(r"Position:\s*(\d+),(\d+)")
_GEOMETRY = re.compile(r"Geometry:\s*(\d+)x(\d+)")


def map_key(key: str) -> str:
    """Translate a script key name to an X keysym."""
    return KEY_MAP.get(key.lower(), key)


class XdotoolInput:
    """Implements the ``InputController`` protocol with xdotool."""

    def __init__(self, window_title: str = DEFAULT_WINDOW_TITLE) -> None:
        self._window_title = window_title
        self._window_id: str | None = None

    async def _xdotool(self, *args: str) -> str:
        try:
            result = await run_tool("xdotool", *args)
        except ToolError as exc:
            raise ActionFailedError(str(exc)) from exc
        if not result.ok:
            raise ActionFailedError(f"xdotool {args[0]} failed: {result.stderr.strip() or result.returncode}")
        return result.stdout

    # -- Windows --------------------------------------------------------------

    async def find_window(self, title: str | None = None) -> WindowInfo | None:
        """Locate the first window whose name matches *title*.

        Returns None when no window matches or xdotool is unavailable.
        """
        search = title or self._window_title
        try:
            found = await run_tool("xdotool", "search", "--name", search)
            window_id = found.stdout.split()[0] if found.ok and found.stdout.split() else None
            if window_id is None:
                return None
            self._window_id = window_id

            geometry = await run_tool("xdotool", "getwindowgeometry", window_id)
            active = await run_tool("xdotool", "getactivewindow")
        except ToolError as exc:
            logger.debug("Window lookup failed: %s", exc)
            return None

        pos = _POSITION.search(geometry.stdout)
        size = _GEOMETRY.search(geometry.stdout)
        return WindowInfo(
            id=window_id,
            title=search,
            x=int(pos.group(1)) if pos else 0,
            y=int(pos.group(2)) if pos else 0,
            width=int(size.group(1)) if size else 0,
            height=int(size.group(2)) if size else 0,
            focused=active.stdout.strip() == window_id,
        )

    async def focus_window(self) -> bool:
        if self._window_id is None and await self.find_window() is None:
            return False
        try:
            await self._xdotool("windowactivate", self._window_id or "")
        except ActionFailedError as exc:
            logger.debug("windowactivate failed: %s", exc)
            return False
        await asyncio.sleep(0.1)
        return True

    # -- Mouse ----------------------------------------------------------------

    async def move_mouse(self, x: int, y: int) -> None:
        await self._xdotool("mousemove", str(x), str(y))

    async def move_mouse_relative(self, dx: int, dy: int) -> None:
        await self._xdotool("mousemove_relative", "--", str(dx), str(dy))

    async def move_mouse_to_window(self, x: int, y: int) -> None:
        """Move relative to the game window, or to screen coordinates if it is not found."""
        if self._window_id is None:
            await self.find_window()
        if self._window_id is not None:
            await self._xdotool("mousemove", "--window", self._window_id, str(x), str(y))
        else:
            await self.move_mouse(x, y)

    async def click_mouse(self, button: str = "left") -> None:
        await self._xdotool("click", _BUTTONS[button])

    async def click_at(self, x: int, y: int, button: str = "left") -> None:
        await self.move_mouse(x, y)
        await asyncio.sleep(0.05)
        await self.click_mouse(button)

    async def double_click(self, button: str = "left") -> None:
        await self._xdotool("click", "--repeat", "2", "--delay", "50", _BUTTONS[button])

    async def drag(self, start_x: int, start_y: int, end_x: int, end_y: int, button: str = "left") -> None:
        await self.move_mouse(start_x, start_y)
        await asyncio.sleep(0.05)
        await self._xdotool("mousedown", _BUTTONS[button])
        await asyncio.sleep(0.05)
        await self.move_mouse(end_x, end_y)
        await asyncio.sleep(0.05)
        await self._xdotool("mouseup", _BUTTONS[button])

    async def scroll(self, direction: str, clicks: int = DEFAULT_SCROLL_CLICKS) -> None:
        await self._xdotool("click", "--repeat", str(clicks), _SCROLL_BUTTONS[direction])

    # -- Keyboard -------------------------------------------------------------

    async def type_text(self, text: str, delay_ms: int | None = None) -> None:
        delay = DEFAULT_TYPE_DELAY_MS if delay_ms is None else int(delay_ms)
        await self._xdotool("type", "--delay", str(delay), "--", text)

    async def press_key(self, key: str) -> None:
        await self._xdotool("key", map_key(key))

    async def press_key_with_modifiers(self, key: str, modifiers: Sequence[str]) -> None:
        await self._xdotool("key", "+".join([*modifiers, map_key(key)]))

    async def send_key_combo(self, combo: str) -> None:
        await self._xdotool("key", combo)

    async def toggle_console(self) -> None:
        await self.focus_window()
        await asyncio.sleep(0.1)
        await self.press_key("grave")
