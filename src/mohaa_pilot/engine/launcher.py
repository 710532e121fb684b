"""Game process lifecycle: launch, monitor, stop, restart.

``ProcessLauncher`` spawns the OpenMoHAA binary with piped stdio, reads its
stdout/stderr into a bounded line buffer and exposes search/wait helpers
over that buffer.  It implements the ``ProcessController`` protocol.
"""

from __future__ import annotations

import asyncio
import collections
import dataclasses
import datetime as dt
import logging
import os
import re
import signal
import time
from pathlib import Path
from typing import Callable

from mohaa_pilot.engine.errors import AutomationError
from mohaa_pilot.engine.protocols import ConsoleOutput, GameConfig, ProcessState
from mohaa_pilot.models import (
    CONSOLE_BUFFER_LINES,
    CONSOLE_SEARCH_LINES,
    RESTART_PAUSE_MS,
    STARTUP_GRACE_MS,
    STARTUP_TIMEOUT_MS,
    STOP_GRACE_MS,
)

logger = logging.getLogger("mohaa_pilot.engine.launcher")

_STARTUP_MARKERS = ("Initializing", "Loading", "---")
_STARTUP_POLL_S = 0.5

OutputListener = Callable[[ConsoleOutput], None]


class GameProcessError(AutomationError):
    """The game binary could not be started or controlled."""


def build_arguments(config: GameConfig) -> list[str]:
    """Command line for *config*: user arguments followed by ``+set`` cvars."""
    args = list(config.arguments)
    if config.game_directory:
        args += ["+set", "fs_game", config.game_directory]
    if config.enable_console:
        args += ["+set", "con_enable", "1"]
    if config.enable_cheats:
        args += ["+set", "sv_cheats", "1"]
    if config.windowed:
        args += ["+set", "r_fullscreen", "0"]
    if config.resolution:
        width, height = config.resolution
        args += ["+set", "r_customwidth", str(width), "+set", "r_customheight", str(height), "+set", "r_mode", "-1"]
    return args


def validate_executable(path: str) -> None:
    """Raise GameProcessError unless *path* is an existing executable file."""
    exe = Path(path)
    if not exe.is_file():
        raise GameProcessError(f"Executable not found: {path}")
    if not os.access(exe, os.X_OK):
        raise GameProcessError(f"Executable is not executable: {path}")


class ProcessLauncher:
    """Owns the game process and a bounded buffer of its output."""

    def __init__(self, buffer_lines: int = CONSOLE_BUFFER_LINES) -> None:
        self._buffer: collections.deque[ConsoleOutput] = collections.deque(maxlen=buffer_lines)
        self._listeners: list[OutputListener] = []
        self._proc: asyncio.subprocess.Process | None = None
        self._config: GameConfig | None = None
        self._state = ProcessState()
        self._tasks: list[asyncio.Task[None]] = []

    # -- Lifecycle ------------------------------------------------------------

    async def launch(self, config: GameConfig, startup_timeout_ms: int = STARTUP_TIMEOUT_MS) -> ProcessState:
        """Start the game and wait until it looks initialised.

        An already running instance is stopped first.

        Raises:
            GameProcessError: bad executable, spawn failure, or early exit.
        """
        validate_executable(config.executable_path)
        if self._state.running:
            await self.stop()

        self._config = config
        args = build_arguments(config)
        cwd = config.working_directory or str(Path(config.executable_path).parent)
        env = {**os.environ, **config.environment}

        logger.info("Launching OpenMoHAA: %s", config.executable_path)
        logger.debug("Arguments: %s", " ".join(args))
        logger.debug("Working directory: %s", cwd)

        try:
            self._proc = await asyncio.create_subprocess_exec(
                config.executable_path,
                *args,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            self._state = ProcessState(running=False, last_error=str(exc))
            raise GameProcessError(f"Failed to start {config.executable_path}: {exc}") from exc

        self._state = ProcessState(
            pid=self._proc.pid,
            running=True,
            start_time=dt.datetime.now(dt.timezone.utc).isoformat(),
        )
        self._tasks = [
            asyncio.ensure_future(self._read_stream(self._proc.stdout, "stdout")),
            asyncio.ensure_future(self._read_stream(self._proc.stderr, "stderr")),
            asyncio.ensure_future(self._watch_exit(self._proc)),
        ]

        await self._wait_for_startup(startup_timeout_ms)
        logger.info("Game launched, PID %s", self._state.pid)
        return self.get_state()

    async def _wait_for_startup(self, timeout_ms: int) -> None:
        start = time.monotonic()
        while True:
            if not self._state.running:
                raise GameProcessError("Process exited during startup")
            elapsed_ms = (time.monotonic() - start) * 1000
            recent = list(self._buffer)[-CONSOLE_SEARCH_LINES:]
            if any(marker in line.text for line in recent for marker in _STARTUP_MARKERS):
                return
            # No marker yet: treat a process that stays up past the grace period as started
            if elapsed_ms > STARTUP_GRACE_MS or elapsed_ms > timeout_ms:
                return
            await asyncio.sleep(_STARTUP_POLL_S)

    async def _read_stream(self, stream: asyncio.StreamReader | None, name: str) -> None:
        if stream is None:
            return
        while True:
            raw = await stream.readline()
            if not raw:
                break
            text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if text.strip():
                self._handle_line(text, name)

    def _handle_line(self, text: str, stream: str) -> None:
        output = ConsoleOutput(text=text, stream=stream)
        self._buffer.append(output)
        for listener in list(self._listeners):
            try:
                listener(output)
            except Exception as exc:
                logger.warning("Output listener failed: %s", exc)

    async def _watch_exit(self, proc: asyncio.subprocess.Process) -> None:
        code = await proc.wait()
        logger.info("Process exited with code %s", code)
        if proc is self._proc:
            self._state.running = False
            self._state.exit_code = code

    async def stop(self) -> None:
        """Terminate gracefully, escalating to SIGKILL after the grace period."""
        proc = self._proc
        if proc is None or not self._state.running:
            return

        logger.info("Stopping game process...")
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(proc.wait(), timeout=STOP_GRACE_MS / 1000)
        except asyncio.TimeoutError:
            logger.warning("Graceful shutdown failed, force killing...")
            self._kill_group(proc)
            await proc.wait()
        self._finish(proc)
        logger.info("Game process stopped")

    async def force_kill(self) -> None:
        proc = self._proc
        if proc is None:
            return
        self._kill_group(proc)
        await proc.wait()
        self._finish(proc)

    async def restart(self) -> ProcessState:
        if self._config is None:
            raise GameProcessError("No configuration available for restart")
        await self.stop()
        await asyncio.sleep(RESTART_PAUSE_MS / 1000)
        return await self.launch(self._config)

    @staticmethod
    def _kill_group(proc: asyncio.subprocess.Process) -> None:
        # The game runs in its own session; take down any children with it
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError as exc:
            logger.error("Failed to kill process group %s: %s", proc.pid, exc)
            proc.kill()

    def _finish(self, proc: asyncio.subprocess.Process) -> None:
        self._state.running = False
        self._state.exit_code = proc.returncode
        self._proc = None

    # -- Input / state --------------------------------------------------------

    async def send_input(self, text: str) -> bool:
        """Write one line to the game's stdin. False if there is no stdin to write to."""
        if self._proc is None or self._proc.stdin is None or not self._state.running:
            return False
        try:
            self._proc.stdin.write((text + "\n").encode("utf-8"))
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.error("Failed to send input: %s", exc)
            return False
        return True

    def get_state(self) -> ProcessState:
        return dataclasses.replace(self._state)

    def is_running(self) -> bool:
        return self._state.running

    @property
    def pid(self) -> int | None:
        return self._state.pid

    # -- Console buffer -------------------------------------------------------

    def add_output_listener(self, listener: OutputListener) -> Callable[[], None]:
        """Call *listener* for every new output line. Returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def get_console_buffer(self, lines: int | None = None) -> list[ConsoleOutput]:
        buffered = list(self._buffer)
        return buffered[-lines:] if lines else buffered

    def clear_console_buffer(self) -> None:
        self._buffer.clear()

    def search_console(self, pattern: str, limit: int | None = None) -> list[ConsoleOutput]:
        """Case-insensitive regex search over the buffer, or its last *limit* lines."""
        regex = re.compile(pattern, re.IGNORECASE)
        return [line for line in self.get_console_buffer(limit) if regex.search(line.text)]

    async def wait_for_console_pattern(self, pattern: str, timeout_ms: int) -> ConsoleOutput | None:
        """Return the first line matching *pattern*, recent or new, or None on timeout."""
        regex = re.compile(pattern, re.IGNORECASE)
        for line in self.get_console_buffer(CONSOLE_SEARCH_LINES):
            if regex.search(line.text):
                return line

        loop = asyncio.get_running_loop()
        found: asyncio.Future[ConsoleOutput] = loop.create_future()

        def on_output(output: ConsoleOutput) -> None:
            if not found.done() and regex.search(output.text):
                found.set_result(output)

        remove = self.add_output_listener(on_output)
        try:
            return await asyncio.wait_for(found, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            return None
        finally:
            remove()
