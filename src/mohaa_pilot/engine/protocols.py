"""Collaborator Protocols.

These protocols define the contract between the automation engine and the
subsystems it drives: the game process, its console, the input device and
the screen.  The engine only ever talks to these interfaces; the concrete
Linux implementations live in ``launcher``, ``console``, ``input_controller``
and ``screen_capture`` and tests inject fakes.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
from typing import Any, Protocol, Sequence, runtime_checkable


@dataclasses.dataclass
class GameConfig:
    """How to start the game process."""

    executable_path: str
    working_directory: str | None = None
    arguments: list[str] = dataclasses.field(default_factory=list)
    environment: dict[str, str] = dataclasses.field(default_factory=dict)
    game_directory: str | None = None  # fs_game
    enable_console: bool = True
    enable_cheats: bool = False
    windowed: bool = False
    resolution: tuple[int, int] | None = None


@dataclasses.dataclass
class ProcessState:
    """Snapshot of the game process."""

    pid: int | None = None
    running: bool = False
    exit_code: int | None = None
    start_time: str | None = None
    last_error: str | None = None


@dataclasses.dataclass
class ConsoleOutput:
    """One buffered line of game output."""

    text: str
    stream: str = "stdout"  # stdout, stderr, console
    timestamp: str = dataclasses.field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds")
    )


@dataclasses.dataclass
class CommandResult:
    """Outcome of a console command."""

    success: bool
    output: str = ""
    error: str | None = None


@dataclasses.dataclass
class CvarInfo:
    name: str
    value: str
    default_value: str | None = None


@dataclasses.dataclass(frozen=True)
class PixelColor:
    r: int
    g: int
    b: int

    @classmethod
    def from_value(cls, value: Any) -> PixelColor:
        """Build from a ``{"r", "g", "b"}`` mapping, an ``[r, g, b]`` list or a PixelColor."""
        if isinstance(value, PixelColor):
            return value
        if isinstance(value, dict):
            return cls(int(value["r"]), int(value["g"]), int(value["b"]))
        r, g, b = value
        return cls(int(r), int(g), int(b))

    def within(self, other: PixelColor, tolerance: int) -> bool:
        """True when every channel differs by at most *tolerance* (per-channel, not Euclidean)."""
        return (
            abs(self.r - other.r) <= tolerance
            and abs(self.g - other.g) <= tolerance
            and abs(self.b - other.b) <= tolerance
        )


@dataclasses.dataclass(frozen=True)
class ScreenRegion:
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_value(cls, value: Any) -> ScreenRegion | None:
        if value is None or isinstance(value, ScreenRegion):
            return value
        return cls(int(value["x"]), int(value["y"]), int(value["width"]), int(value["height"]))

    @property
    def geometry(self) -> str:
        """ImageMagick/X11 geometry string (``WxH+X+Y``)."""
        return f"{self.width}x{self.height}+{self.x}+{self.y}"


@dataclasses.dataclass
class WindowInfo:
    id: str
    title: str
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    focused: bool = False


@dataclasses.dataclass
class ImageMatch:
    """Result of a template search on screen."""

    found: bool
    x: int = 0
    y: int = 0
    confidence: float = 0.0


NOT_FOUND = ImageMatch(found=False)


@runtime_checkable
class ProcessController(Protocol):
    """Owns the game process and a bounded buffer of its output."""

    async def launch(self, config: GameConfig) -> ProcessState: ...

    async def stop(self) -> None: ...

    async def restart(self) -> ProcessState: ...

    async def force_kill(self) -> None: ...

    def is_running(self) -> bool: ...

    def search_console(self, pattern: str, limit: int | None = None) -> list[ConsoleOutput]: ...

    async def wait_for_console_pattern(self, pattern: str, timeout_ms: int) -> ConsoleOutput | None: ...


@runtime_checkable
class ConsoleChannel(Protocol):
    """Sends console commands and reads cvars."""

    async def send_command(self, command: str) -> CommandResult: ...

    async def set_cvar(self, name: str, value: str) -> CommandResult: ...

    async def get_cvar(self, name: str) -> CvarInfo | None: ...

    async def load_map(self, map_name: str) -> CommandResult: ...

    async def exec_config(self, path: str) -> CommandResult: ...


@runtime_checkable
class InputController(Protocol):
    """Simulates mouse and keyboard events against the game window."""

    async def move_mouse(self, x: int, y: int) -> None: ...

    async def move_mouse_relative(self, dx: int, dy: int) -> None: ...

    async def move_mouse_to_window(self, x: int, y: int) -> None: ...

    async def click_mouse(self, button: str = "left") -> None: ...

    async def click_at(self, x: int, y: int, button: str = "left") -> None: ...

    async def double_click(self, button: str = "left") -> None: ...

    async def drag(self, start_x: int, start_y: int, end_x: int, end_y: int, button: str = "left") -> None: ...

    async def scroll(self, direction: str, clicks: int = 3) -> None: ...

    async def type_text(self, text: str, delay_ms: int | None = None) -> None: ...

    async def press_key(self, key: str) -> None: ...

    async def press_key_with_modifiers(self, key: str, modifiers: Sequence[str]) -> None: ...

    async def send_key_combo(self, combo: str) -> None: ...

    async def toggle_console(self) -> None: ...

    async def focus_window(self) -> bool: ...

    async def find_window(self, title: str | None = None) -> WindowInfo | None: ...


@runtime_checkable
class ScreenReader(Protocol):
    """Captures the screen and matches pixels or template images."""

    async def save_screenshot(self, path: str, region: ScreenRegion | None = None) -> bool: ...

    async def check_pixel_color(self, x: int, y: int, expected: PixelColor, tolerance: int = 10) -> bool: ...

    async def find_image(
        self, template_path: str, region: ScreenRegion | None = None, threshold: float = 0.9
    ) -> ImageMatch: ...

    async def wait_for_pixel_color(
        self, x: int, y: int, expected: PixelColor, timeout_ms: int, tolerance: int = 10
    ) -> bool: ...

    async def wait_for_image(self, template_path: str, timeout_ms: int, threshold: float = 0.9) -> ImageMatch: ...
