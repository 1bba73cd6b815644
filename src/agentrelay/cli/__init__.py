"""Command line interface for agentrelay."""
