"""Automation engine — runs scripts through setup, main steps and teardown.

The engine owns the per-run step results, an engine-scoped variable store
and a list of observers.  It never talks to the game directly; every action
is one call on an injected collaborator (see ``protocols``).

Run semantics:

* the script is validated up front; a malformed script runs nothing;
* setup and main steps stop at the first failure, which is also recorded
  as a synthetic ``"error"`` result;
* teardown always runs in full and its failures are recorded per step;
* cancellation is checked before each setup/main step only.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any, Callable, Sequence

from mohaa_pilot.engine.actions import ActionDispatcher
from mohaa_pilot.engine.builders import create_console_test, create_map_load_test
from mohaa_pilot.engine.conditions import ConditionEvaluator
from mohaa_pilot.engine.errors import ConditionNotMetError, ScriptValidationError
from mohaa_pilot.engine.protocols import ConsoleChannel, InputController, ProcessController, ScreenReader
from mohaa_pilot.engine.schemas import has_errors
from mohaa_pilot.engine.script import Script, Step, StepResult, TestResult, WaitCondition, validate_script
from mohaa_pilot.models import CONDITION_POLL_INTERVAL_MS, DEFAULT_CONDITION_TIMEOUT_MS

logger = logging.getLogger("mohaa_pilot.engine.automation")


@dataclasses.dataclass(frozen=True)
class AutomationEvent:
    """Notification delivered to engine observers."""

    kind: str  # script_start, phase, step_start, step_complete, script_complete, abort, log
    data: Any = None


Observer = Callable[[AutomationEvent], None]


class CancelToken:
    """Cooperative cancellation flag, checked between steps."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class _StepFailed(Exception):
    """Internal: a step failed and its result has already been recorded."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.cause = cause


class AutomationEngine:
    """Executes automation scripts against the game collaborators.

    Args:
        process: Game process control and console buffer.
        console: Command channel into the game console.
        ui: Synthetic mouse/keyboard input and window lookup.
        screen: Screenshots, pixel sampling and template matching.
        poll_interval_ms: Cadence for wait-condition polling.
        condition_timeout_ms: Timeout for conditions that do not set their own.
    """

    def __init__(
        self,
        process: ProcessController,
        console: ConsoleChannel,
        ui: InputController,
        screen: ScreenReader,
        poll_interval_ms: int = CONDITION_POLL_INTERVAL_MS,
        condition_timeout_ms: int = DEFAULT_CONDITION_TIMEOUT_MS,
    ) -> None:
        self._observers: list[Observer] = []
        self._variables: dict[str, Any] = {}
        self._step_results: list[StepResult] = []
        self._running = False
        self._active_token: CancelToken | None = None

        self._conditions = ConditionEvaluator(process, console, ui, screen, poll_interval_ms, condition_timeout_ms)
        self._dispatcher = ActionDispatcher(process, console, ui, screen, self._variables, self._emit)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register *callback* for engine events. Returns an unsubscribe function."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _emit(self, kind: str, data: Any = None) -> None:
        event = AutomationEvent(kind, data)
        for callback in list(self._observers):
            try:
                callback(event)
            except Exception as exc:
                logger.warning("Observer %r failed on %s event: %s", callback, kind, exc)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run_script(self, script: Script, cancel_token: CancelToken | None = None) -> TestResult:
        """Run *script* to completion and return its TestResult.

        Never raises: validation problems, step failures and collaborator
        exceptions all end up as failed StepResults.
        """
        token = cancel_token or CancelToken()
        self._active_token = token
        self._running = True
        self._step_results = []
        start = time.monotonic()

        self._emit("script_start", {"name": script.name})
        logger.info("Running script '%s'", script.name)

        try:
            issues = validate_script(script)
            if has_errors(issues):
                error = ScriptValidationError(issues)
                logger.warning("Script '%s' rejected: %s", script.name, error)
                self._step_results.append(StepResult(action="error", success=False, duration_ms=0, error=str(error)))
            else:
                await self._run_phases(script, token)
        finally:
            self._running = False
            self._active_token = None

        result = TestResult(
            name=script.name,
            passed=all(r.success for r in self._step_results),
            duration_ms=(time.monotonic() - start) * 1000,
            steps=list(self._step_results),
        )
        logger.info(
            "Script '%s' %s in %.0fms (%d step results)",
            script.name,
            "passed" if result.passed else "failed",
            result.duration_ms,
            len(result.steps),
        )
        self._emit("script_complete", result)
        return result

    async def _run_phases(self, script: Script, token: CancelToken) -> None:
        try:
            if script.setup:
                self._emit("phase", "setup")
                await self._run_interruptible(script.setup, token)

            if not token.cancelled:
                self._emit("phase", "main")
                await self._run_interruptible(script.steps, token)
        except _StepFailed as failure:
            self._step_results.append(
                StepResult(action="error", success=False, duration_ms=0, error=str(failure.cause))
            )
        finally:
            if script.teardown:
                self._emit("phase", "teardown")
                for step in script.teardown:
                    try:
                        await self._execute_step(step)
                    except _StepFailed as failure:
                        logger.warning("Teardown step '%s' failed: %s", step.action, failure.cause)

    async def _run_interruptible(self, steps: Sequence[Step], token: CancelToken) -> None:
        for step in steps:
            if token.cancelled:
                logger.info("Run cancelled before step '%s'", step.action)
                return
            await self._execute_step(step)

    async def _execute_step(self, step: Step) -> StepResult:
        """Execute one step, record its result, and raise _StepFailed on failure."""
        start = time.monotonic()
        self._emit("step_start", {"action": step.action, "params": dict(step.params)})

        try:
            await self._dispatcher.execute(step)

            if step.wait_after:
                await asyncio.sleep(step.wait_after / 1000)

            if step.condition is not None:
                if not await self._conditions.wait_for_condition(step.condition):
                    raise ConditionNotMetError(
                        step.condition.type,
                        self._conditions.timeout_for(step.condition),
                        dict(step.condition.params),
                    )
        except Exception as exc:
            result = StepResult(
                action=step.action,
                success=False,
                duration_ms=(time.monotonic() - start) * 1000,
                error=str(exc),
            )
            logger.debug("Step '%s' failed: %s", step.action, exc)
            self._step_results.append(result)
            self._emit("step_complete", result)
            raise _StepFailed(exc) from exc

        result = StepResult(action=step.action, success=True, duration_ms=(time.monotonic() - start) * 1000)
        self._step_results.append(result)
        self._emit("step_complete", result)
        return result

    def abort(self) -> None:
        """Cancel the active run, if any. Teardown still runs."""
        if self._active_token is not None:
            self._active_token.cancel()
        self._emit("abort")

    def is_running(self) -> bool:
        return self._running

    def get_step_results(self) -> list[StepResult]:
        """Copy of the current (or last) run's step results."""
        return list(self._step_results)

    async def wait_for_condition(self, condition: WaitCondition) -> bool:
        return await self._conditions.wait_for_condition(condition)

    async def check_condition(self, condition: WaitCondition) -> bool:
        return await self._conditions.check_condition(condition)

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def get_variable(self, name: str) -> Any:
        return self._variables.get(name)

    def set_variable(self, name: str, value: Any) -> None:
        self._variables[name] = value

    def clear_variables(self) -> None:
        self._variables.clear()

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    create_map_load_test = staticmethod(create_map_load_test)
    create_console_test = staticmethod(create_console_test)
