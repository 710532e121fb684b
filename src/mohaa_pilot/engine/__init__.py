"""mohaa-pilot engine — script execution against a running OpenMoHAA.

- AutomationEngine: runs scripts through setup, main steps and teardown
- Script / Step / WaitCondition: the immutable script model
- ProcessLauncher, ConsoleManager, XdotoolInput, ScreenCapture: Linux collaborators
- ReportGenerator: markdown report generation from run records
"""

from mohaa_pilot.engine.automation import AutomationEngine, AutomationEvent, CancelToken
from mohaa_pilot.engine.builders import create_console_test, create_map_load_test
from mohaa_pilot.engine.console import ConsoleManager
from mohaa_pilot.engine.errors import (
    ActionFailedError,
    AssertionFailedError,
    AutomationError,
    ConditionNotMetError,
    ScriptValidationError,
    UnknownActionError,
)
from mohaa_pilot.engine.input_controller import XdotoolInput
from mohaa_pilot.engine.launcher import GameProcessError, ProcessLauncher
from mohaa_pilot.engine.report_generator import ReportGenerator, RunRecord
from mohaa_pilot.engine.screen_capture import ScreenCapture
from mohaa_pilot.engine.script import Script, Step, StepResult, TestResult, WaitCondition, validate_script
from mohaa_pilot.engine.tools import check_dependencies

__all__ = [
    "ActionFailedError",
    "AssertionFailedError",
    "AutomationEngine",
    "AutomationError",
    "AutomationEvent",
    "CancelToken",
    "ConditionNotMetError",
    "ConsoleManager",
    "GameProcessError",
    "ProcessLauncher",
    "ReportGenerator",
    "RunRecord",
    "ScreenCapture",
    "Script",
    "ScriptValidationError",
    "Step",
    "StepResult",
    "TestResult",
    "UnknownActionError",
    "WaitCondition",
    "XdotoolInput",
    "check_dependencies",
    "create_console_test",
    "create_map_load_test",
    "validate_script",
]
