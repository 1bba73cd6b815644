"""
agentrelay - Relay between streaming agents and threaded chat.

Connects event-emitting conversational agents to Slack, coalescing their
partial output under the chat surface's rate limits and routing threaded
replies back to the conversation that asked for them.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("agentrelay")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
]
