"""
agentrelay config - Configuration inspection commands.

Usage:
    agentrelay config show
    agentrelay config show relay
    agentrelay config show --json
    agentrelay config validate
    agentrelay config validate --config relay.yaml
"""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from agentrelay.config import ConfigurationError, get_nested_value, load_config
from agentrelay.config.paths import get_global_config_path

app = typer.Typer(
    name="config",
    help="Configuration inspection.",
)

console = Console()

_SECRET_KEYS = {"bot_token", "app_token", "signing_secret"}


def _redact(value: Any) -> Any:
    """Mask credential values before printing."""
    if isinstance(value, dict):
        return {
            key: ("****" if key in _SECRET_KEYS and item else _redact(item))
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


@app.command()
def show(
    section: Annotated[
        str | None,
        typer.Argument(
            help="Config section to show (e.g., 'relay', 'bots.support').",
        ),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file to load.",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
    show_secrets: Annotated[
        bool,
        typer.Option(
            "--show-secrets",
            help="Print tokens and secrets unmasked.",
        ),
    ] = False,
) -> None:
    """Show the effective (merged) configuration."""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    config_dict: Any = config.model_dump(mode="json")
    if section:
        config_dict = get_nested_value(config_dict, section)
        if config_dict is None:
            console.print(f"[red]Section '{section}' not found in configuration.[/red]")
            raise typer.Exit(1)

    if not show_secrets:
        config_dict = _redact(config_dict)

    if json_output:
        console.print(Syntax(json.dumps(config_dict, indent=2), "json", theme="monokai"))
        return

    output = yaml.dump(
        config_dict,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )
    if section:
        console.print(Panel(Syntax(output, "yaml", theme="monokai"), title=f"[cyan]{section}[/cyan]"))
    else:
        console.print(Syntax(output, "yaml", theme="monokai"))


@app.command()
def validate(
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file to validate.",
        ),
    ] = None,
) -> None:
    """Validate configuration."""
    global_path = get_global_config_path()
    console.print("Validating merged configuration...")
    if global_path.exists():
        console.print(f"  [dim]global:[/dim] {global_path}")
    if config_path:
        console.print(f"  [dim]file:[/dim] {config_path}")

    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    console.print("[green]Configuration is valid.[/green]")

    table = Table(title="Bots")
    table.add_column("Bot", style="cyan")
    table.add_column("Channel")
    table.add_column("Channel ID", style="dim")
    table.add_column("Agent")
    table.add_column("Allowed users", style="dim")

    for name, bot in config.bots.items():
        if not bot.channels:
            table.add_row(name, "-", "-", "-", "-")
        for channel_name, channel in bot.channels.items():
            table.add_row(
                name,
                channel_name,
                channel.channel_id,
                channel.agent_type,
                ", ".join(channel.allowed_users) or "anyone",
            )

    console.print(table)
    console.print(
        f"  Flush interval: {config.relay.min_flush_interval}s, "
        f"max message length: {config.relay.max_message_length}"
    )
