"""
agentrelay run - Start the relay.

Usage:
    agentrelay run
    agentrelay run --config relay.yaml
    agentrelay run --bot support
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from agentrelay.agent import AgentManager
from agentrelay.config import Config, ConfigurationError, load_config
from agentrelay.logging_config import setup_logging
from agentrelay.relay import RelayService

app = typer.Typer(
    name="run",
    help="Start the relay and serve all configured bots.",
    invoke_without_command=True,
)

console = Console()
logger = logging.getLogger(__name__)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops; Ctrl+C surfaces as KeyboardInterrupt instead
            logger.debug(f"Signal handler for {sig.name} not supported")


async def _serve(config: Config, bot: str | None) -> None:
    """Run the relay service until SIGINT or SIGTERM."""
    manager = AgentManager(max_run_time=config.agent.max_run_time)
    service = RelayService(config, agent_manager=manager)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    await service.run(stop_event, only=bot)


@app.callback(invoke_without_command=True)
def run_relay(
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file to load (overrides AGENTRELAY_CONFIG).",
        ),
    ] = None,
    bot: Annotated[
        str | None,
        typer.Option(
            "--bot",
            "-b",
            help="Only start the named bot.",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-l",
            help="Override the configured log level.",
        ),
    ] = None,
) -> None:
    """Start the relay and serve until interrupted."""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    if not config.bots:
        console.print("[yellow]No bots configured. Add at least one bot under 'bots'.[/yellow]")
        raise typer.Exit(1)

    if bot is not None and bot not in config.bots:
        console.print(f"[red]Bot '{bot}' is not configured.[/red]")
        console.print(f"[dim]Configured bots: {', '.join(config.bots)}[/dim]")
        raise typer.Exit(1)

    setup_logging(log_level or config.logging.level, config.logging.file)

    names = [bot] if bot else list(config.bots)
    console.print(f"[bold green]Starting relay with {len(names)} bot(s)...[/bold green]")
    for name in names:
        console.print(f"  [cyan]•[/cyan] {name}")
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        asyncio.run(_serve(config, bot))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")

    console.print("[green]✓[/green] Relay stopped")
