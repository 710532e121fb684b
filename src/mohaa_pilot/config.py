"""mohaa-pilot configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from mohaa_pilot.models import (
    CONDITION_POLL_INTERVAL_MS,
    CONSOLE_BUFFER_LINES,
    DEFAULT_COMMAND_TIMEOUT_MS,
    DEFAULT_CONDITION_TIMEOUT_MS,
    DEFAULT_RESOLUTION,
)

PROJECT_DIR_NAME = ".mohaa-pilot"

ENV_EXEC_PATH = "OPENMOHAA_EXEC_PATH"
ENV_GAME_DIR = "OPENMOHAA_GAME_DIR"


class PilotConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@dataclass
class PilotConfig:
    """Configuration for the automation engine and its collaborators."""

    # Game
    executable_path: str = ""
    game_directory: str = ""
    windowed: bool = True
    resolution: tuple[int, int] = DEFAULT_RESOLUTION

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME))
    scripts_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME) / "scripts")
    evidence_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME) / "evidence")

    # Behavior
    console_buffer_lines: int = CONSOLE_BUFFER_LINES
    command_timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS
    poll_interval_ms: int = CONDITION_POLL_INTERVAL_MS
    condition_timeout_ms: int = DEFAULT_CONDITION_TIMEOUT_MS

    @classmethod
    def from_file(cls, config_path: Path) -> PilotConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise PilotConfigError(f"Config file not found: {config_path}\n\nTo fix: mohaa-pilot init")
        with open(config_path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise PilotConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PilotConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def for_project(cls, project_dir: Path) -> PilotConfig:
        """Load ``config.yaml`` from *project_dir* or fall back to defaults rooted there."""
        config_path = project_dir / "config.yaml"
        if config_path.is_file():
            config = cls.from_file(config_path)
        else:
            config = cls()
            config.project_dir = project_dir
            config.scripts_dir = project_dir / "scripts"
            config.evidence_dir = project_dir / "evidence"
        config.apply_env()
        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> PilotConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        config.scripts_dir = project_dir / data.get("scripts_dir", "scripts")
        config.evidence_dir = project_dir / data.get("evidence_dir", "evidence")

        game = data.get("game", {}) or {}
        if not isinstance(game, dict):
            raise PilotConfigError("'game' must be a mapping")
        if "executable_path" in game:
            config.executable_path = str(game["executable_path"])
        if "game_directory" in game:
            config.game_directory = str(game["game_directory"])
        if "windowed" in game:
            config.windowed = bool(game["windowed"])
        if "resolution" in game:
            res = game["resolution"]
            if isinstance(res, dict):
                config.resolution = (
                    int(res.get("width", DEFAULT_RESOLUTION[0])),
                    int(res.get("height", DEFAULT_RESOLUTION[1])),
                )

        for key in ("console_buffer_lines", "command_timeout_ms", "poll_interval_ms", "condition_timeout_ms"):
            if key in data:
                try:
                    value = int(data[key])
                except (TypeError, ValueError) as exc:
                    raise PilotConfigError(f"'{key}' must be an integer, got: {data[key]!r}") from exc
                if value <= 0:
                    raise PilotConfigError(f"'{key}' must be positive, got: {value}")
                setattr(config, key, value)

        return config

    def apply_env(self) -> None:
        """Let ``OPENMOHAA_EXEC_PATH`` / ``OPENMOHAA_GAME_DIR`` override the file values."""
        exec_path = os.environ.get(ENV_EXEC_PATH, "").strip()
        if exec_path:
            self.executable_path = exec_path
        game_dir = os.environ.get(ENV_GAME_DIR, "").strip()
        if game_dir:
            self.game_directory = game_dir


def resolve_project_dir(start: Path | None = None) -> Path:
    """Find the .mohaa-pilot/ project directory, searching upward from *start* (default: cwd)."""
    current = (start or Path.cwd()).resolve()
    candidate = current / PROJECT_DIR_NAME
    if candidate.is_dir():
        return candidate

    for parent in current.parents:
        candidate = parent / PROJECT_DIR_NAME
        if candidate.is_dir():
            return candidate

    # Fallback: use start/.mohaa-pilot (may not exist yet)
    return current / PROJECT_DIR_NAME
