"""Screenshots, pixel sampling and template matching via ImageMagick.

Captures prefer the game window (found by title through xdotool) and fall
back to the whole root window.  Template matching runs ``compare
-subimage-search -metric RMSE`` and turns the normalised distance into a
confidence in ``[0, 1]``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import tempfile
import time
import uuid
from pathlib import Path

from mohaa_pilot.engine.protocols import NOT_FOUND, ImageMatch, PixelColor, ScreenRegion
from mohaa_pilot.engine.tools import ToolError, run_tool
from mohaa_pilot.models import (
    DEFAULT_IMAGE_THRESHOLD,
    DEFAULT_PIXEL_TOLERANCE,
    IMAGE_POLL_INTERVAL_MS,
    PIXEL_POLL_INTERVAL_MS,
)

logger = logging.getLogger("mohaa_pilot.engine.screen_capture")

DEFAULT_WINDOW_TITLE = "OpenMOHAA"

_RGB = re.compile(r"s?rgba?\((\d+),(\d+),(\d+)", re.IGNORECASE)
_HEX = re.compile(r"#([0-9A-Fa-f]{2})([0-9A-Fa-f]{2})([0-9A-Fa-f]{2})")
# "1234.5 (0.0188) @ 10,20" -- absolute distance, normalised distance, offset
_COMPARE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:\((\d+(?:\.\d+)?(?:e-?\d+)?)\))?\s*@\s*(\d+),(\d+)")
_MAX_RMSE = 65535.0


def parse_pixel(text: str) -> PixelColor | None:
    """Parse ImageMagick's ``%[pixel:...]`` output (``srgb(r,g,b)`` or hex)."""
    match = _RGB.search(text)
    if match:
        return PixelColor(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    match = _HEX.search(text)
    if match:
        return PixelColor(*(int(part, 16) for part in match.groups()))
    return None


def parse_compare(text: str) -> tuple[float, int, int] | None:
    """Parse ``compare -subimage-search`` output into ``(confidence, x, y)``."""
    match = _COMPARE.search(text)
    if not match:
        return None
    absolute, normalised, x, y = match.groups()
    distance = float(normalised) if normalised is not None else float(absolute) / _MAX_RMSE
    return max(0.0, 1.0 - distance), int(x), int(y)


class ScreenCapture:
    """Implements the ``ScreenReader`` protocol with ImageMagick."""

    def __init__(self, window_title: str = DEFAULT_WINDOW_TITLE, temp_dir: Path | None = None) -> None:
        self._window_title = window_title
        self._temp_dir = temp_dir or Path(tempfile.gettempdir()) / "mohaa-pilot"
        self._temp_dir.mkdir(parents=True, exist_ok=True)

    def _temp_path(self, prefix: str) -> Path:
        return self._temp_dir / f"{prefix}_{uuid.uuid4().hex[:8]}.png"

    async def _window_id(self) -> str | None:
        try:
            result = await run_tool("xdotool", "search", "--name", self._window_title)
        except ToolError:
            return None
        ids = result.stdout.split() if result.ok else []
        return ids[0] if ids else None

    async def _capture(self, path: Path, region: ScreenRegion | None = None) -> bool:
        """Capture *region* of the screen, or the game window, or the whole screen."""
        try:
            if region is not None:
                result = await run_tool("import", "-window", "root", "-crop", region.geometry, str(path))
                return result.ok

            window_id = await self._window_id()
            if window_id is not None:
                result = await run_tool("import", "-window", window_id, str(path))
                if result.ok:
                    return True
            result = await run_tool("import", "-window", "root", str(path))
            return result.ok
        except ToolError as exc:
            logger.warning("Screen capture failed: %s", exc)
            return False

    async def save_screenshot(self, path: str, region: ScreenRegion | None = None) -> bool:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        saved = await self._capture(target, region)
        if saved:
            logger.debug("Screenshot saved: %s", target)
        return saved

    async def get_pixel_color(self, x: int, y: int) -> PixelColor | None:
        sample = self._temp_path("pixel")
        try:
            if not await self._capture(sample, ScreenRegion(x, y, 1, 1)):
                return None
            result = await run_tool("convert", str(sample), "-format", "%[pixel:p{0,0}]", "info:")
            return parse_pixel(result.stdout) if result.ok else None
        except ToolError as exc:
            logger.warning("Pixel sampling failed: %s", exc)
            return None
        finally:
            sample.unlink(missing_ok=True)

    async def check_pixel_color(
        self, x: int, y: int, expected: PixelColor, tolerance: int = DEFAULT_PIXEL_TOLERANCE
    ) -> bool:
        actual = await self.get_pixel_color(x, y)
        return actual is not None and actual.within(expected, tolerance)

    async def wait_for_pixel_color(
        self, x: int, y: int, expected: PixelColor, timeout_ms: int, tolerance: int = DEFAULT_PIXEL_TOLERANCE
    ) -> bool:
        start = time.monotonic()
        while (time.monotonic() - start) * 1000 < timeout_ms:
            if await self.check_pixel_color(x, y, expected, tolerance):
                return True
            await asyncio.sleep(PIXEL_POLL_INTERVAL_MS / 1000)
        return False

    async def find_image(
        self, template_path: str, region: ScreenRegion | None = None, threshold: float = DEFAULT_IMAGE_THRESHOLD
    ) -> ImageMatch:
        """Search the screen (or *region*) for *template_path*.

        Returned coordinates are screen coordinates of the match's top-left corner.
        """
        if not Path(template_path).is_file():
            logger.warning("Template image not found: %s", template_path)
            return NOT_FOUND

        capture = self._temp_path("capture")
        diff = self._temp_path("match")
        try:
            if not await self._capture(capture, region):
                return NOT_FOUND
            # compare writes its metric to stderr and exits 1 when images differ
            result = await run_tool(
                "compare", "-subimage-search", "-metric", "RMSE", str(capture), template_path, str(diff), timeout=60
            )
        except ToolError as exc:
            logger.warning("Template matching failed: %s", exc)
            return NOT_FOUND
        finally:
            capture.unlink(missing_ok=True)
            diff.unlink(missing_ok=True)

        parsed = parse_compare(result.stderr + result.stdout)
        if parsed is None:
            return NOT_FOUND
        confidence, x, y = parsed
        if region is not None:
            x, y = x + region.x, y + region.y
        return ImageMatch(found=confidence >= threshold, x=x, y=y, confidence=confidence)

    async def wait_for_image(
        self, template_path: str, timeout_ms: int, threshold: float = DEFAULT_IMAGE_THRESHOLD
    ) -> ImageMatch:
        start = time.monotonic()
        while (time.monotonic() - start) * 1000 < timeout_ms:
            match = await self.find_image(template_path, None, threshold)
            if match.found:
                return match
            await asyncio.sleep(IMAGE_POLL_INTERVAL_MS / 1000)
        return NOT_FOUND
