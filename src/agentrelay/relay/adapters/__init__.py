"""Chat transport implementations."""

from agentrelay.relay.adapters.slack import SlackTransport

__all__ = [
    "SlackTransport",
]
