"""mohaa-pilot new — Write ready-made scripts as YAML.

``new map-test`` and ``new console-test`` wrap the script builders so a
starting point can be generated and then edited by hand.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.panel import Panel

from mohaa_pilot.config import PilotConfig, PilotConfigError, resolve_project_dir
from mohaa_pilot.engine.builders import create_console_test, create_map_load_test
from mohaa_pilot.engine.script import Script

console = Console(stderr=True)

new_app = typer.Typer(no_args_is_help=True)


def _resolve_exec_path(exec_path: Optional[str]) -> str:
    if exec_path:
        return exec_path
    try:
        config = PilotConfig.for_project(resolve_project_dir())
    except PilotConfigError as exc:
        console.print(Panel(f"[red]{exc}[/red]", title="[red]Config Error[/red]", border_style="red"))
        raise typer.Exit(code=2)
    if not config.executable_path:
        console.print(
            Panel(
                "[red]No game executable configured.[/red]\n\n"
                "Pass [bold]--exec[/bold], set [bold]OPENMOHAA_EXEC_PATH[/bold], or set "
                "[bold]game.executable_path[/bold] in .mohaa-pilot/config.yaml",
                title="[red]Config Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)
    return config.executable_path


def _write(script: Script, output: Optional[Path], default_name: str) -> None:
    text = yaml.safe_dump(script.to_dict(), sort_keys=False, default_flow_style=False)
    if output is None:
        scripts_dir = resolve_project_dir() / "scripts"
        output = scripts_dir / default_name if scripts_dir.is_dir() else Path(default_name)
    if output.exists():
        console.print(
            Panel(
                f"[yellow]File already exists:[/yellow] {output}",
                title="Not Overwritten",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=2)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]✓[/green] Wrote [cyan]{output}[/cyan] ({len(script.steps)} main steps)")


@new_app.command("map-test")
def map_test(
    map_name: str = typer.Argument(..., help="Map to load, e.g. dm/mohdm1."),
    exec_path: Optional[str] = typer.Option(None, "--exec", "-e", help="Path to the OpenMoHAA binary."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write the script."),
) -> None:
    """Generate a script that launches the game and loads MAP_NAME."""
    script = create_map_load_test(map_name, _resolve_exec_path(exec_path))
    _write(script, output, f"map-{map_name.replace('/', '_')}.yaml")


@new_app.command("console-test")
def console_test(
    commands: list[str] = typer.Argument(..., help="Console commands to type, in order."),
    exec_path: Optional[str] = typer.Option(None, "--exec", "-e", help="Path to the OpenMoHAA binary."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write the script."),
) -> None:
    """Generate a script that types COMMANDS into the in-game console."""
    script = create_console_test(commands, _resolve_exec_path(exec_path))
    _write(script, output, "console-test.yaml")
