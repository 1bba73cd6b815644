"""
agentrelay agents - List agent types.

Usage:
    agentrelay agents
"""

import typer
from rich.console import Console
from rich.table import Table

from agentrelay.agent import AgentManager

app = typer.Typer(
    name="agents",
    help="List available agent types.",
    invoke_without_command=True,
)

console = Console()


@app.callback(invoke_without_command=True)
def list_agents() -> None:
    """List agent types that channels can use."""
    manager = AgentManager()

    table = Table(title="Agent Types")
    table.add_column("Type", style="cyan")

    for agent_type in manager.agent_types:
        table.add_row(agent_type)

    console.print(table)
