"""mohaa-pilot init — Initialize a .mohaa-pilot/ project directory.

Creates the directory structure, config template and a sample script.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

from mohaa_pilot.config import PROJECT_DIR_NAME

console = Console()

# ── Sample file contents ──────────────────────────────────────────────────

_SAMPLE_CONFIG = """\
# mohaa-pilot project configuration

game:
  # Path to the OpenMoHAA binary (env OPENMOHAA_EXEC_PATH takes priority)
  executable_path: /usr/local/games/openmohaa/openmohaa
  # fs_game mod directory (env OPENMOHAA_GAME_DIR takes priority)
  # game_directory: main
  windowed: true
  resolution:
    width: 1280
    height: 720

scripts_dir: scripts
evidence_dir: evidence

# Lines of game output kept in memory
console_buffer_lines: 10000
# How long a console command waits for output (ms)
command_timeout_ms: 5000
# Wait-condition polling cadence (ms)
poll_interval_ms: 200
"""

_SAMPLE_SCRIPT = """\
name: Smoke test
description: Launch the game, load a map and check the console answers

setup:
  - action: launch
    params:
      executablePath: /usr/local/games/openmohaa/openmohaa
      windowed: true
      width: 1280
      height: 720
    timeout: 60000
    condition:
      type: console_pattern
      params:
        pattern: Initializing
      timeout: 30000

steps:
  - action: load_map
    params:
      map: dm/mohdm1
  - action: wait_for_console
    params:
      pattern: "Loading|loaded"
      timeout: 60000
  - action: get_cvar
    params:
      name: mapname
      storeAs: current_map
  - action: assert
    params:
      variable: current_map
      expected: dm/mohdm1
  - action: screenshot
    params:
      path: /tmp/mohdm1.png

teardown:
  - action: command
    params:
      command: quit
  - action: wait
    params:
      ms: 2000
"""


def init(
    dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Parent directory for .mohaa-pilot/ project. Defaults to current directory.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing .mohaa-pilot/ directory.",
    ),
) -> None:
    """Initialize a new mohaa-pilot project directory.

    Creates .mohaa-pilot/ with scripts/ and evidence/ subdirectories, a
    config.yaml template and a sample script.
    """
    project_dir = dir.resolve() / PROJECT_DIR_NAME

    if project_dir.exists() and not force:
        console.print(
            Panel(
                f"[yellow]Directory already exists:[/yellow] {project_dir}\n\n"
                "Use [bold]--force[/bold] to overwrite.",
                title="Already Initialized",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=2)

    subdirs = ["scripts", "evidence"]
    for sub in subdirs:
        (project_dir / sub).mkdir(parents=True, exist_ok=True)

    (project_dir / "config.yaml").write_text(_SAMPLE_CONFIG, encoding="utf-8")
    (project_dir / "scripts" / "smoke.yaml").write_text(_SAMPLE_SCRIPT, encoding="utf-8")

    tree = Tree(f"[bold green]{project_dir}[/bold green]", guide_style="dim")
    tree.add("[cyan]config.yaml[/cyan]")
    for sub in subdirs:
        branch = tree.add(f"[blue]{sub}/[/blue]")
        for child in sorted((project_dir / sub).iterdir()):
            if child.is_file():
                branch.add(f"[dim]{child.name}[/dim]")

    console.print()
    console.print(Panel(tree, title="[bold green]mohaa-pilot Initialized[/bold green]", border_style="green"))
    console.print()
    console.print("[dim]Next steps:[/dim]")
    console.print("  1. Set [cyan]game.executable_path[/cyan] in [cyan].mohaa-pilot/config.yaml[/cyan]")
    console.print("  2. Run [bold]mohaa-pilot validate .mohaa-pilot/scripts/[/bold]")
    console.print("  3. Run [bold]mohaa-pilot run .mohaa-pilot/scripts/smoke.yaml[/bold]")
    console.print()
