"""External command-line tools used by the Linux collaborators.

Input goes through ``xdotool``; screenshots and image comparison go through
ImageMagick (``import``, ``convert``, ``compare``).  All of them are invoked
as subprocesses through ``run_tool``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import shutil

logger = logging.getLogger("mohaa_pilot.engine.tools")

# tool -> what it is needed for
REQUIRED_TOOLS: dict[str, str] = {
    "xdotool": "mouse/keyboard input and window lookup",
    "import": "screenshots (ImageMagick)",
    "convert": "pixel sampling (ImageMagick)",
    "compare": "template image matching (ImageMagick)",
}


class ToolError(Exception):
    """An external tool could not be started or timed out."""


@dataclasses.dataclass
class ToolResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_tool(*args: str, timeout: float = 10.0) -> ToolResult:
    """Run ``args`` and capture its output.

    A non-zero exit is returned, not raised; ``compare`` for one exits 1 when
    images differ.

    Raises:
        ToolError: if the binary is missing or the call exceeds *timeout* seconds.
    """
    logger.debug("exec: %s", " ".join(args))
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise ToolError(f"{args[0]} is not installed") from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise ToolError(f"{args[0]} timed out after {timeout:.0f}s") from exc

    result = ToolResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    if not result.ok:
        logger.debug("%s returned %d: %s", args[0], result.returncode, result.stderr.strip())
    return result


def check_dependencies() -> dict[str, object]:
    """Report which external tools are available on PATH.

    Returns ``{"ok": bool, "missing": [...], "tools": {name: {"path", "purpose"}}}``.
    """
    tools: dict[str, dict[str, str | None]] = {}
    missing: list[str] = []
    for name, purpose in REQUIRED_TOOLS.items():
        path = shutil.which(name)
        tools[name] = {"path": path, "purpose": purpose}
        if path is None:
            missing.append(name)
    return {"ok": not missing, "missing": missing, "tools": tools}
