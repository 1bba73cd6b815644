"""
Main Typer application for agentrelay CLI.

This module defines the root CLI application and registers all command groups.
"""

from typing import Annotated

import typer
from rich.console import Console

from agentrelay import __version__
from agentrelay.cli.commands import agents, config, run

# Create the main Typer app
app = typer.Typer(
    name="agentrelay",
    help="Relay between streaming agents and threaded chat.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"agentrelay version [green]{__version__}[/green]")
        raise typer.Exit()


# noinspection PyUnusedLocal
@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    [bold blue]agentrelay[/bold blue] - Agent to chat relay

    Connects conversational agents to Slack channels, streaming their
    output into rate-limited message edits.
    """


# Register command groups
app.add_typer(run.app, name="run")
app.add_typer(config.app, name="config")
app.add_typer(agents.app, name="agents")


if __name__ == "__main__":
    app()
