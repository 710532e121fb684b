"""Unit tests for mohaa_pilot.config — PilotConfig and related functions."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from mohaa_pilot.config import (
    ENV_EXEC_PATH,
    ENV_GAME_DIR,
    PROJECT_DIR_NAME,
    PilotConfig,
    PilotConfigError,
    resolve_project_dir,
)
from mohaa_pilot.engine.session import GameSession
from mohaa_pilot.models import (
    CONDITION_POLL_INTERVAL_MS,
    CONSOLE_BUFFER_LINES,
    DEFAULT_COMMAND_TIMEOUT_MS,
    DEFAULT_RESOLUTION,
)


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestPilotConfigDefaults:
    """PilotConfig should have sensible defaults for every field."""

    def test_default_executable_is_empty(self):
        assert PilotConfig().executable_path == ""

    def test_default_windowed_resolution(self):
        cfg = PilotConfig()
        assert cfg.windowed is True
        assert cfg.resolution == DEFAULT_RESOLUTION

    def test_default_behaviour_matches_models_constants(self):
        cfg = PilotConfig()
        assert cfg.console_buffer_lines == CONSOLE_BUFFER_LINES
        assert cfg.command_timeout_ms == DEFAULT_COMMAND_TIMEOUT_MS
        assert cfg.poll_interval_ms == CONDITION_POLL_INTERVAL_MS == 200
        assert cfg.condition_timeout_ms == 30000

    def test_default_paths_under_project_dir(self):
        cfg = PilotConfig()
        assert cfg.project_dir == Path(PROJECT_DIR_NAME)
        assert cfg.evidence_dir == Path(PROJECT_DIR_NAME) / "evidence"


# ---------------------------------------------------------------------------
# 2. from_file()
# ---------------------------------------------------------------------------

class TestFromFile:
    """PilotConfig.from_file() should load and parse valid YAML."""

    def test_from_file_with_valid_yaml(self, tmp_path: Path, sample_config_yaml: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(sample_config_yaml, encoding="utf-8")

        cfg = PilotConfig.from_file(config_file)

        assert cfg.executable_path == "/usr/games/openmohaa"
        assert cfg.game_directory == "mymod"
        assert cfg.windowed is False
        assert cfg.resolution == (1920, 1080)
        assert cfg.console_buffer_lines == 500
        assert cfg.command_timeout_ms == 3000
        assert cfg.poll_interval_ms == 100
        assert cfg.project_dir == tmp_path
        assert cfg.evidence_dir == tmp_path / "evidence"

    def test_from_file_missing_file_raises_config_error(self, tmp_path: Path):
        with pytest.raises(PilotConfigError, match="Config file not found"):
            PilotConfig.from_file(tmp_path / "nonexistent.yaml")

    def test_from_file_empty_yaml_returns_defaults(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")
        cfg = PilotConfig.from_file(config_file)
        assert cfg.executable_path == ""
        assert cfg.project_dir == tmp_path

    def test_invalid_yaml_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("game: [unclosed\n", encoding="utf-8")
        with pytest.raises(PilotConfigError, match="Invalid YAML"):
            PilotConfig.from_file(config_file)

    def test_non_mapping_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(PilotConfigError, match="must be a YAML mapping"):
            PilotConfig.from_file(config_file)

    def test_non_integer_timeout_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("command_timeout_ms: soon\n", encoding="utf-8")
        with pytest.raises(PilotConfigError, match="must be an integer"):
            PilotConfig.from_file(config_file)

    def test_non_positive_poll_interval_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("poll_interval_ms: 0\n", encoding="utf-8")
        with pytest.raises(PilotConfigError, match="must be positive"):
            PilotConfig.from_file(config_file)

    def test_game_must_be_mapping(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("game: openmohaa\n", encoding="utf-8")
        with pytest.raises(PilotConfigError, match="'game' must be a mapping"):
            PilotConfig.from_file(config_file)


# ---------------------------------------------------------------------------
# 3. for_project() and environment overrides
# ---------------------------------------------------------------------------

class TestForProject:
    def test_loads_config_yaml(self, tmp_project_dir: Path):
        with patch.dict("os.environ", {}, clear=True):
            cfg = PilotConfig.for_project(tmp_project_dir)
        assert cfg.executable_path == "/opt/openmohaa/openmohaa"
        assert cfg.command_timeout_ms == 2000

    def test_defaults_rooted_at_missing_project(self, tmp_path: Path):
        project = tmp_path / PROJECT_DIR_NAME
        with patch.dict("os.environ", {}, clear=True):
            cfg = PilotConfig.for_project(project)
        assert cfg.project_dir == project
        assert cfg.scripts_dir == project / "scripts"
        assert cfg.evidence_dir == project / "evidence"

    def test_env_overrides_file_values(self, tmp_project_dir: Path):
        env = {ENV_EXEC_PATH: "/env/openmohaa", ENV_GAME_DIR: "envmod"}
        with patch.dict("os.environ", env, clear=True):
            cfg = PilotConfig.for_project(tmp_project_dir)
        assert cfg.executable_path == "/env/openmohaa"
        assert cfg.game_directory == "envmod"

    def test_blank_env_is_ignored(self, tmp_project_dir: Path):
        with patch.dict("os.environ", {ENV_EXEC_PATH: "   "}, clear=True):
            cfg = PilotConfig.for_project(tmp_project_dir)
        assert cfg.executable_path == "/opt/openmohaa/openmohaa"


# ---------------------------------------------------------------------------
# 4. resolve_project_dir()
# ---------------------------------------------------------------------------

class TestResolveProjectDir:
    def test_finds_project_in_start_dir(self, tmp_project_dir: Path):
        assert resolve_project_dir(tmp_project_dir.parent) == tmp_project_dir.resolve()

    def test_finds_project_in_parent(self, tmp_project_dir: Path):
        nested = tmp_project_dir.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert resolve_project_dir(nested) == tmp_project_dir.resolve()

    def test_falls_back_to_start(self, tmp_path: Path):
        # tmp_path has no .mohaa-pilot/ above it unless the host has one
        result = resolve_project_dir(tmp_path)
        assert result.name == PROJECT_DIR_NAME


# ---------------------------------------------------------------------------
# 5. GameSession wiring
# ---------------------------------------------------------------------------

class TestSessionFromConfig:
    def test_condition_timeout_reaches_engine(self):
        session = GameSession.from_config(PilotConfig(condition_timeout_ms=1234, poll_interval_ms=50))
        assert session.engine._conditions.default_timeout_ms == 1234
