"""Allow ``python -m agentrelay``."""

from agentrelay.cli.app import app

app()
