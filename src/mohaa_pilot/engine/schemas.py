"""JSON Schemas for script documents, per-action params and wait-conditions.

The action vocabulary is closed: ``ACTION_SCHEMAS`` is the single source of
truth for which action tags exist and what parameters each one accepts.
``validate_document`` checks a whole script in one pass and returns every
issue found, so a malformed script is rejected before its first step runs.
"""

from __future__ import annotations

import re
from typing import Any

from jsonschema import Draft7Validator

# ── Building blocks ───────────────────────────────────────────────────────

_STR = {"type": "string"}
_NAME = {"type": "string", "minLength": 1}
_BOOL = {"type": "boolean"}
_INT = {"type": "integer"}
_COORD = {"type": "integer", "minimum": 0}
_POS_INT = {"type": "integer", "minimum": 1}
_MS = {"type": "number", "minimum": 0}
_TIMEOUT_MS = {"type": "number", "exclusiveMinimum": 0}
_TOLERANCE = {"type": "integer", "minimum": 0, "maximum": 255}
_THRESHOLD = {"type": "number", "minimum": 0, "maximum": 1}
_BUTTON = {"enum": ["left", "right", "middle"]}
_SCALAR = {"type": ["string", "number", "boolean"]}
_CHANNEL = {"type": "integer", "minimum": 0, "maximum": 255}
# {"r", "g", "b"} or [r, g, b]
_COLOR = {
    "anyOf": [
        {"type": "object", "required": ["r", "g", "b"], "properties": {c: _CHANNEL for c in ("r", "g", "b")}},
        {"type": "array", "items": _CHANNEL, "minItems": 3, "maxItems": 3},
    ]
}
_REGION = {
    "type": "object",
    "required": ["x", "y", "width", "height"],
    "properties": {"x": _COORD, "y": _COORD, "width": _POS_INT, "height": _POS_INT},
}
_MODIFIERS = {"type": "array", "items": {"enum": ["ctrl", "alt", "shift", "super"]}}


def _params(required: tuple[str, ...] = (), **properties: Any) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema


# ── Actions ───────────────────────────────────────────────────────────────

ACTION_SCHEMAS: dict[str, dict[str, Any]] = {
    # Process control
    "launch": _params(
        ("executablePath",),
        executablePath=_NAME,
        workingDirectory=_STR,
        args={"type": "array", "items": _STR},
        env={"type": "object", "additionalProperties": _STR},
        windowed=_BOOL,
        width=_POS_INT,
        height=_POS_INT,
        gameDirectory=_STR,
        enableConsole=_BOOL,
        enableCheats=_BOOL,
    ),
    "stop": _params(),
    "restart": _params(),
    "kill": _params(),
    # Console
    "command": _params(("command",), command=_NAME),
    "set_cvar": _params(("name", "value"), name=_NAME, value=_SCALAR),
    "get_cvar": _params(("name",), name=_NAME, storeAs=_NAME),
    "load_map": _params(("map",), map=_NAME),
    "exec_config": _params(("path",), path=_NAME),
    # Input
    "mouse_move": _params(("x", "y"), x=_INT, y=_INT, relative=_BOOL, window=_BOOL),
    "mouse_click": {
        **_params(x=_COORD, y=_COORD, button=_BUTTON),
        "dependencies": {"x": ["y"], "y": ["x"]},
    },
    "double_click": _params(button=_BUTTON),
    "drag": _params(
        ("startX", "startY", "endX", "endY"),
        startX=_COORD,
        startY=_COORD,
        endX=_COORD,
        endY=_COORD,
        button=_BUTTON,
    ),
    "scroll": _params(("direction",), direction={"enum": ["up", "down"]}, clicks=_POS_INT),
    "type": _params(("text",), text=_STR, delay=_MS),
    "press_key": _params(("key",), key=_NAME, modifiers=_MODIFIERS),
    "key_combo": _params(("combo",), combo=_NAME),
    "toggle_console": _params(),
    "focus_window": _params(),
    # Screen
    "screenshot": _params(("path",), path=_NAME, region=_REGION),
    "check_pixel": _params(("x", "y", "expected"), x=_COORD, y=_COORD, expected=_COLOR, tolerance=_TOLERANCE),
    "find_image": _params(
        ("template",),
        template=_NAME,
        region=_REGION,
        threshold=_THRESHOLD,
        storeX=_NAME,
        storeY=_NAME,
    ),
    # Waits
    "wait": _params(ms=_MS),
    "wait_for_console": _params(("pattern",), pattern=_NAME, timeout=_TIMEOUT_MS),
    "wait_for_pixel": _params(
        ("x", "y", "expected"),
        x=_COORD,
        y=_COORD,
        expected=_COLOR,
        timeout=_TIMEOUT_MS,
        tolerance=_TOLERANCE,
    ),
    "wait_for_image": _params(("template",), template=_NAME, timeout=_TIMEOUT_MS, threshold=_THRESHOLD),
    # Assertions
    "assert": _params(("variable", "expected"), variable=_NAME, expected={}),
    "assert_running": _params(),
    "assert_not_running": _params(),
    # Bookkeeping
    "set_variable": _params(("name", "value"), name=_NAME, value={}),
    "log": _params(("message",), message=_STR, data={}),
}

ACTIONS: frozenset[str] = frozenset(ACTION_SCHEMAS)

# ── Conditions ────────────────────────────────────────────────────────────

CONDITION_SCHEMAS: dict[str, dict[str, Any]] = {
    "console_pattern": _params(("pattern",), pattern=_NAME),
    "pixel_color": _params(("x", "y", "expected"), x=_COORD, y=_COORD, expected=_COLOR, tolerance=_TOLERANCE),
    "cvar_value": _params(("name", "expected"), name=_NAME, expected=_SCALAR),
    "window_exists": _params(("title",), title=_NAME),
    "timeout": _params(),
}

CONDITION_TYPES: frozenset[str] = frozenset(CONDITION_SCHEMAS)

# ── Document shape ────────────────────────────────────────────────────────

_CONDITION_SHAPE = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": _NAME,
        "params": {"type": "object"},
        "timeout": _TIMEOUT_MS,
    },
}

_STEP_SHAPE = {
    "type": "object",
    "required": ["action"],
    "properties": {
        "action": _NAME,
        "params": {"type": "object"},
        "timeout": _TIMEOUT_MS,
        "waitAfter": _MS,
        "condition": _CONDITION_SHAPE,
    },
}

SCRIPT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "steps"],
    "properties": {
        "name": _NAME,
        "description": _STR,
        "setup": {"type": "array", "items": _STEP_SHAPE},
        "steps": {"type": "array", "items": _STEP_SHAPE},
        "teardown": {"type": "array", "items": _STEP_SHAPE},
    },
}

PHASES = ("setup", "steps", "teardown")

_SCRIPT_VALIDATOR = Draft7Validator(SCRIPT_SCHEMA)
_ACTION_VALIDATORS = {name: Draft7Validator(schema) for name, schema in ACTION_SCHEMAS.items()}
_CONDITION_VALIDATORS = {name: Draft7Validator(schema) for name, schema in CONDITION_SCHEMAS.items()}

# Actions that write a variable, and the param naming it
_VARIABLE_WRITERS = {"set_variable": ("name",), "get_cvar": ("storeAs",), "find_image": ("storeX", "storeY")}


def _issue(severity: str, field: str, message: str) -> dict[str, Any]:
    return {"severity": severity, "field": field, "message": message}


def _schema_issues(validator: Draft7Validator, data: Any, prefix: str) -> list[dict[str, Any]]:
    issues = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        loc = ".".join(str(p) for p in err.path)
        issues.append(_issue("error", f"{prefix}.{loc}" if loc else prefix, err.message))
    return issues


def _pattern_issues(pattern: Any, field: str) -> list[dict[str, Any]]:
    if not isinstance(pattern, str):
        return []
    try:
        re.compile(pattern)
    except re.error as exc:
        return [_issue("error", field, f"Invalid regular expression {pattern!r}: {exc}")]
    return []


def validate_condition(condition: Any, prefix: str = "condition") -> list[dict[str, Any]]:
    """Validate a standalone wait-condition mapping."""
    issues = _schema_issues(Draft7Validator(_CONDITION_SHAPE), condition, prefix)
    if issues:
        return issues
    kind = condition["type"]
    validator = _CONDITION_VALIDATORS.get(kind)
    if validator is None:
        return [
            _issue(
                "error",
                f"{prefix}.type",
                f"Unknown condition type '{kind}'. Valid types: {', '.join(sorted(CONDITION_TYPES))}",
            )
        ]
    params = condition.get("params", {})
    issues.extend(_schema_issues(validator, params, f"{prefix}.params"))
    if kind == "console_pattern":
        issues.extend(_pattern_issues(params.get("pattern"), f"{prefix}.params.pattern"))
    return issues


def validate_step(step: dict[str, Any], prefix: str) -> list[dict[str, Any]]:
    """Validate one step's action tag, params and optional condition."""
    issues: list[dict[str, Any]] = []
    action = step["action"]
    validator = _ACTION_VALIDATORS.get(action)
    if validator is None:
        issues.append(_issue("error", f"{prefix}.action", f"Unknown action: {action}"))
    else:
        params = step.get("params", {})
        issues.extend(_schema_issues(validator, params, f"{prefix}.params"))
        if action == "wait_for_console":
            issues.extend(_pattern_issues(params.get("pattern"), f"{prefix}.params.pattern"))
    if "condition" in step:
        issues.extend(validate_condition(step["condition"], f"{prefix}.condition"))
    return issues


def validate_document(data: Any) -> list[dict[str, Any]]:
    """Validate a script document. Returns a list of issue dicts (empty when valid)."""
    issues = _schema_issues(_SCRIPT_VALIDATOR, data, "script")
    if issues:
        # Shape errors make per-step checks unreliable
        return issues

    stored: set[str] = set()
    for phase in PHASES:
        for idx, step in enumerate(data.get(phase, []) or []):
            prefix = f"{phase}[{idx}]"
            issues.extend(validate_step(step, prefix))

            params = step.get("params", {})
            for key in _VARIABLE_WRITERS.get(step["action"], ()):
                if isinstance(params.get(key), str):
                    stored.add(params[key])
            if step["action"] == "assert":
                variable = params.get("variable")
                if isinstance(variable, str) and variable not in stored:
                    issues.append(
                        _issue(
                            "warning",
                            f"{prefix}.params.variable",
                            f"Variable '{variable}' is not stored by an earlier step; "
                            "it must be set on the engine before the run",
                        )
                    )

    if not data.get("steps"):
        issues.append(_issue("info", "script.steps", "Script has no main steps"))

    return issues


def has_errors(issues: list[dict[str, Any]]) -> bool:
    return any(i["severity"] == "error" for i in issues)
