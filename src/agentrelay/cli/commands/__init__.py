"""CLI command modules."""

from agentrelay.cli.commands import agents, config, run

__all__ = ["agents", "config", "run"]
