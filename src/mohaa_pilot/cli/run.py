"""mohaa-pilot run — Execute an automation script against the game.

Loads project config, parses and validates the script, runs it through the
automation engine with live per-step output, then writes the markdown
report and ``run-result.json`` to the evidence directory.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from mohaa_pilot.config import PROJECT_DIR_NAME, PilotConfig, PilotConfigError, resolve_project_dir
from mohaa_pilot.engine.automation import AutomationEvent
from mohaa_pilot.engine.errors import ScriptValidationError
from mohaa_pilot.engine.report_generator import RunRecord, write_junit_xml
from mohaa_pilot.engine.runner import run_and_record
from mohaa_pilot.engine.script import Script, StepResult
from mohaa_pilot.engine.session import GameSession

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

logger = logging.getLogger("mohaa_pilot.cli.run")


def _config_error(message: str, title: str = "Config Error") -> typer.Exit:
    console.print(Panel(f"[red]{escape(message)}[/red]", title=f"[red]{title}[/red]", border_style="red"))
    return typer.Exit(code=2)


def _print_run_header(script: Script, script_path: Path, config: PilotConfig) -> None:
    info_lines = [
        f"[bold]Script:[/bold]      {script.name}",
        f"[bold]File:[/bold]        {script_path}",
        f"[bold]Steps:[/bold]       {len(script.setup)} setup, {len(script.steps)} main, {len(script.teardown)} teardown",
        f"[bold]Executable:[/bold]  {config.executable_path or '[dim]from script[/dim]'}",
    ]
    console.print()
    console.print(Panel("\n".join(info_lines), title="[bold cyan]mohaa-pilot Run[/bold cyan]", border_style="cyan"))
    console.print()


def _print_step_result(step_num: int, result: StepResult) -> None:
    """Print a single step result line."""
    if result.success:
        icon = "[bold green]✓[/bold green]"
        status = "[green]PASS[/green]"
    else:
        icon = "[bold red]✗[/bold red]"
        status = "[red]FAIL[/red]"

    console.print(f"  {icon} {step_num:>3}. {result.action}  {status}  [dim]{result.duration_ms:.0f}ms[/dim]")
    if result.error and not result.success:
        error_short = result.error if len(result.error) <= 120 else result.error[:117] + "..."
        console.print(f"       [dim red]{escape(error_short)}[/dim red]")


def _print_summary_panel(record: RunRecord, run_dir: Path | None) -> None:
    """Print the final summary panel."""
    steps = record.result.steps
    if record.passed:
        border = "green"
        verdict = "[bold green]SCRIPT PASSED[/bold green]"
    else:
        border = "red"
        verdict = "[bold red]SCRIPT FAILED[/bold red]"

    summary_lines = [
        verdict,
        "",
        f"  Steps:     {sum(1 for s in steps if s.success)}/{len(steps)} passed",
        f"  Duration:  {record.result.duration_ms / 1000:.1f}s",
        f"  Run ID:    {record.run_id}",
    ]
    if run_dir is not None:
        summary_lines.append(f"  Evidence:  {run_dir}")

    console.print()
    console.print(Panel("\n".join(summary_lines), border_style=border))
    console.print()


async def _execute(
    session: GameSession, script: Script, script_path: Path, live: bool
) -> tuple[RunRecord, Path | None]:
    counter = {"n": 0}

    def on_event(event: AutomationEvent) -> None:
        if event.kind == "phase":
            console.print(f"[dim]── {event.data} ──[/dim]")
        elif event.kind == "step_complete":
            counter["n"] += 1
            _print_step_result(counter["n"], event.data)
        elif event.kind == "log":
            console.print(f"  [cyan]log[/cyan] {event.data['message']}")
        elif event.kind == "abort":
            console.print("\n[yellow]Abort requested, running teardown...[/yellow]")

    unsubscribe = session.engine.subscribe(on_event) if live else None

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.engine.abort)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not supported on this platform")

    # No evidence without an initialised project
    evidence_dir = session.config.evidence_dir if session.config.project_dir.is_dir() else None
    if evidence_dir is None:
        logger.debug("No project at %s, run evidence will not be saved", session.config.project_dir)

    try:
        return await run_and_record(session.engine, script, evidence_dir, script_path)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
        if unsubscribe is not None:
            unsubscribe()
        await session.shutdown()


def run(
    script_path: Path = typer.Argument(..., help="Script file to run (.json, .yaml or .yml)."),
    dir: Optional[Path] = typer.Option(
        None,
        "--dir",
        "-d",
        help="mohaa-pilot project directory. Defaults to auto-detected .mohaa-pilot/ from cwd.",
    ),
    junit_xml: Optional[Path] = typer.Option(
        None,
        "--junit-xml",
        help="Path to write JUnit XML report (for CI integration).",
    ),
    output_format: str = typer.Option(
        "text",
        "--output",
        "-o",
        help="Output format: text or json.",
    ),
) -> None:
    """Run an automation script against OpenMoHAA.

    Exit codes: 0 = passed, 1 = failed, 2 = config or script error.
    """
    if output_format not in ("text", "json"):
        raise _config_error(f"Invalid output format: {output_format}\n\nValid formats: text, json")

    if dir is not None:
        project_dir = dir.resolve()
        if project_dir.name != PROJECT_DIR_NAME:
            project_dir = project_dir / PROJECT_DIR_NAME
    else:
        project_dir = resolve_project_dir()

    try:
        config = PilotConfig.for_project(project_dir)
    except PilotConfigError as exc:
        raise _config_error(str(exc))

    try:
        script = Script.from_file(script_path)
    except ScriptValidationError as exc:
        details = "\n".join(f"  {i['field']}: {i['message']}" for i in exc.issues if i["severity"] == "error")
        raise _config_error(f"{script_path} is not a valid script:\n\n{details}", title="Script Error")

    if output_format == "text":
        _print_run_header(script, script_path, config)

    session = GameSession.from_config(config)
    record, run_dir = asyncio.run(_execute(session, script, script_path, live=output_format == "text"))

    if output_format == "json":
        output_console.print(json.dumps(record.to_dict(), indent=2), markup=False, highlight=False, soft_wrap=True)
    else:
        _print_summary_panel(record, run_dir)

    if junit_xml is not None:
        try:
            write_junit_xml(junit_xml, record)
            if output_format == "text":
                console.print(f"[dim]JUnit XML written to: {junit_xml}[/dim]\n")
        except OSError as exc:
            console.print(f"[yellow]Warning: Failed to write JUnit XML: {exc}[/yellow]")

    # Exit code: 0 = pass, 1 = fail
    if not record.passed:
        raise typer.Exit(code=1)
