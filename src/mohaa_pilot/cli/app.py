"""mohaa-pilot CLI — Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import typer
from rich.console import Console

from mohaa_pilot import __version__

TAGLINE = "Scripted automation runs against OpenMoHAA."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"mohaa-pilot v{__version__}", style="bold")
        console.print(f"  {TAGLINE}", style="dim")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="mohaa-pilot",
    help=TAGLINE,
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show mohaa-pilot version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
) -> None:
    """mohaa-pilot -- drive OpenMoHAA from declarative scripts.

    Launch the game, type into its console, click, screenshot, assert.
    """
    if verbose:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────

from mohaa_pilot.cli.init_cmd import init  # noqa: E402
from mohaa_pilot.cli.new_cmd import new_app  # noqa: E402
from mohaa_pilot.cli.run import run  # noqa: E402
from mohaa_pilot.cli.validate import validate  # noqa: E402

app.command(name="init", help="Initialize a .mohaa-pilot/ project directory.")(init)
app.command(name="run", help="Run an automation script against the game.")(run)
app.command(name="validate", help="Validate script files without launching the game.")(validate)
app.add_typer(new_app, name="new", help="Generate ready-made scripts.")
