"""Exceptions raised while validating or executing automation scripts.

Every runtime failure is caught by the engine and turned into a failed
``StepResult``; these classes only exist so the error text and the phase
loop can tell the kinds apart.
"""

from __future__ import annotations

from typing import Any


class AutomationError(Exception):
    """Base class for automation failures."""

    pass


class UnknownActionError(AutomationError):
    """The step's action tag is not part of the action vocabulary."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Unknown action: {action}")
        self.action = action


class ActionFailedError(AutomationError):
    """A collaborator rejected the action or reported failure."""

    pass


class ConditionNotMetError(AutomationError):
    """A wait-condition did not become true before its timeout."""

    def __init__(self, condition_type: str, timeout_ms: int, params: dict[str, Any] | None = None) -> None:
        super().__init__(f"Condition not met: {condition_type} {params or {}} within {timeout_ms}ms")
        self.condition_type = condition_type
        self.timeout_ms = timeout_ms


class AssertionFailedError(AutomationError):
    """A stored variable did not hold the expected value."""

    def __init__(self, variable: str, actual: Any, expected: Any) -> None:
        super().__init__(f"Assertion failed: {variable} = {actual!r}, expected {expected!r}")
        self.variable = variable
        self.actual = actual
        self.expected = expected


class ScriptValidationError(AutomationError):
    """The script document is malformed; carries every issue found."""

    def __init__(self, issues: list[dict[str, Any]]) -> None:
        self.issues = issues
        summary = "; ".join(f"{i['field']}: {i['message']}" for i in issues if i.get("severity") == "error")
        super().__init__(f"Invalid script ({len(issues)} issue(s)): {summary}")
