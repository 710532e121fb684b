"""Script data model: Script, Step, WaitCondition and the run results.

Scripts are immutable once built.  They are parsed from the JSON/YAML
document shape::

    {name, description?, setup?: [Step], steps: [Step], teardown?: [Step]}
    Step = {action, params, timeout?, waitAfter?, condition?: {type, params, timeout}}

and serialised back to the same shape by ``to_dict``.
"""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from mohaa_pilot.engine.errors import ScriptValidationError
from mohaa_pilot.engine.schemas import has_errors, validate_document


def _plain(value: Any) -> Any:
    """Reduce typed param values (PixelColor, ScreenRegion, tuples) to the document shape."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclasses.dataclass(frozen=True)
class WaitCondition:
    """A polled predicate gating a step.

    ``timeout`` is in ms; None defers to the engine's configured default.
    """

    type: str  # console_pattern, pixel_color, cvar_value, window_exists, timeout
    params: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    timeout: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WaitCondition:
        return cls(
            type=data["type"],
            params=dict(data.get("params") or {}),
            timeout=data.get("timeout") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "params": _plain(self.params)}
        if self.timeout is not None:
            out["timeout"] = self.timeout
        return out


@dataclasses.dataclass(frozen=True)
class Step:
    """One action with its params, optional post-delay and wait-condition."""

    action: str
    params: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    timeout: int | None = None
    wait_after: int | None = None
    condition: WaitCondition | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Step:
        condition = data.get("condition")
        return cls(
            action=data["action"],
            params=dict(data.get("params") or {}),
            timeout=data.get("timeout"),
            wait_after=data.get("waitAfter"),
            condition=WaitCondition.from_dict(condition) if condition else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"action": self.action, "params": _plain(self.params)}
        if self.timeout is not None:
            out["timeout"] = self.timeout
        if self.wait_after is not None:
            out["waitAfter"] = self.wait_after
        if self.condition is not None:
            out["condition"] = self.condition.to_dict()
        return out


@dataclasses.dataclass(frozen=True)
class Script:
    """A named automation run: setup, main steps and teardown."""

    name: str
    steps: tuple[Step, ...] = ()
    setup: tuple[Step, ...] = ()
    teardown: tuple[Step, ...] = ()
    description: str | None = None

    def __post_init__(self) -> None:
        # Accept lists from callers but store tuples
        for phase in ("steps", "setup", "teardown"):
            object.__setattr__(self, phase, tuple(getattr(self, phase)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], validate: bool = True) -> Script:
        """Build a Script from the document shape.

        Raises:
            ScriptValidationError: if *validate* is set and the document has errors.
        """
        if validate:
            issues = validate_document(data)
            if has_errors(issues):
                raise ScriptValidationError(issues)
        return cls(
            name=data["name"],
            description=data.get("description"),
            setup=[Step.from_dict(s) for s in data.get("setup") or []],
            steps=[Step.from_dict(s) for s in data.get("steps") or []],
            teardown=[Step.from_dict(s) for s in data.get("teardown") or []],
        )

    @classmethod
    def from_json(cls, text: str, validate: bool = True) -> Script:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ScriptValidationError(
                [{"severity": "error", "field": "json_syntax", "message": f"JSON parse error: {exc}"}]
            ) from exc
        return cls.from_dict(data, validate=validate)

    @classmethod
    def from_file(cls, path: Path, validate: bool = True) -> Script:
        """Load a script from a ``.json``, ``.yaml`` or ``.yml`` file."""
        return cls.from_dict(load_document(path), validate=validate)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.description is not None:
            out["description"] = self.description
        if self.setup:
            out["setup"] = [s.to_dict() for s in self.setup]
        out["steps"] = [s.to_dict() for s in self.steps]
        if self.teardown:
            out["teardown"] = [s.to_dict() for s in self.teardown]
        return out


def load_document(path: Path) -> Any:
    """Read a raw script document from disk without validating it.

    Raises:
        ScriptValidationError: if the file is missing or not parseable.
    """
    if not path.is_file():
        raise ScriptValidationError(
            [{"severity": "error", "field": "file", "message": f"Script file not found: {path}"}]
        )
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ScriptValidationError(
            [{"severity": "error", "field": "syntax", "message": f"Parse error in {path.name}: {exc}"}]
        ) from exc


def validate_script(script: Script) -> list[dict[str, Any]]:
    """Validate an already-built Script (e.g. one constructed in code)."""
    return validate_document(script.to_dict())


@dataclasses.dataclass
class StepResult:
    """Outcome of one executed step."""

    action: str
    success: bool
    duration_ms: float
    error: str | None = None


@dataclasses.dataclass
class TestResult:
    """Outcome of a whole script run."""

    __test__ = False  # not a pytest test class

    name: str
    passed: bool
    duration_ms: float
    steps: list[StepResult]

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)
