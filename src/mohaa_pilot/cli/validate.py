"""mohaa-pilot validate — Check script files without launching the game.

Parses each script (JSON or YAML), validates its shape and every step's
action parameters and wait-conditions, and reports all issues at once.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel

from mohaa_pilot.engine.errors import ScriptValidationError
from mohaa_pilot.engine.schemas import validate_document
from mohaa_pilot.engine.script import load_document

console = Console(stderr=True)

# ── Severity ordering ─────────────────────────────────────────────────────

_SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}

_SCRIPT_SUFFIXES = (".json", ".yaml", ".yml")


def validate_file(path: Path) -> list[dict[str, Any]]:
    """Validate one script file. Returns list of issue dicts."""
    try:
        data = load_document(path)
    except ScriptValidationError as exc:
        return exc.issues
    return validate_document(data)


def _expand(paths: list[Path]) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.suffix.lower() in _SCRIPT_SUFFIXES))
        else:
            files.append(path)
    return files


# ── CLI command ───────────────────────────────────────────────────────────


def validate(
    scripts: list[Path] = typer.Argument(
        ...,
        help="Script files (or directories of scripts) to validate.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit 1 on warnings as well as errors (default: exit 1 on errors only).",
    ),
) -> None:
    """Validate automation scripts without running them.

    \b
    Examples:
      mohaa-pilot validate .mohaa-pilot/scripts/
      mohaa-pilot validate smoke.yaml --strict
    """
    files = _expand(scripts)
    if not files:
        console.print(
            Panel(
                "[yellow]No script files found to validate.[/yellow]\n\n"
                "Run [bold]mohaa-pilot init[/bold] to scaffold a sample script.",
                title="No Files Found",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=0)

    total_errors = 0
    total_warnings = 0
    for path in files:
        issues = validate_file(path)
        total_errors += sum(1 for i in issues if i["severity"] == "error")
        total_warnings += sum(1 for i in issues if i["severity"] == "warning")
        _print_file_result(path, issues)

    # ── Summary ────────────────────────────────────────────────────────
    console.print()
    if total_errors == 0 and total_warnings == 0:
        console.print(Panel("[bold green]All scripts valid. No errors or warnings.[/bold green]", border_style="green"))
    elif total_errors > 0:
        console.print(
            Panel(
                f"[bold red]Validation failed.[/bold red]  "
                f"{total_errors} error(s), {total_warnings} warning(s)\n\n"
                "Fix the errors above before running the scripts.",
                border_style="red",
            )
        )
        raise typer.Exit(code=1)
    elif strict:
        console.print(
            Panel(
                f"[bold yellow]Validation warnings found (--strict mode).[/bold yellow]  "
                f"{total_warnings} warning(s)",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=1)
    else:
        console.print(
            Panel(
                f"[yellow]Validation passed with {total_warnings} warning(s).[/yellow]  "
                "Use [bold]--strict[/bold] to fail on warnings.",
                border_style="yellow",
            )
        )


def _print_file_result(path: Path, issues: list[dict[str, Any]]) -> None:
    """Print validation results for a single file."""
    errors = [i for i in issues if i["severity"] == "error"]
    warnings = [i for i in issues if i["severity"] == "warning"]

    if not errors and not warnings:
        console.print(f"  [green]✓[/green] [dim]{path}[/dim]  [green]OK[/green]")
    elif errors:
        status = f"[bold red]{len(errors)} error(s)[/bold red]"
        if warnings:
            status += f", [yellow]{len(warnings)} warning(s)[/yellow]"
        console.print(f"  [red]✗[/red] [bold]{path}[/bold]  {status}")
    else:
        console.print(f"  [yellow]![/yellow] [dim]{path}[/dim]  [yellow]{len(warnings)} warning(s)[/yellow]")

    for issue in sorted(issues, key=lambda i: _SEVERITY_ORDER.get(i["severity"], 99)):
        sev_label = {
            "error": "[bold red]ERROR[/bold red]",
            "warning": "[yellow]WARN[/yellow]",
            "info": "[dim]INFO[/dim]",
        }.get(issue["severity"], issue["severity"])
        field = issue.get("field", "")
        field_str = f"[dim] ({field})[/dim]" if field else ""
        console.print(f"      {sev_label}{field_str}  {issue['message']}")
