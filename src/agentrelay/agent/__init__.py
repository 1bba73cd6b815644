"""Agent collaborator for the relay.

An agent accepts one input at a time and reports everything it does through
an append-only event log:
- Wait for idle, then submit input and get a request id
- Observe output fragments and info/warning/error emissions
- The request ends with an ``input.handled`` event for that id
"""

from agentrelay.agent.base import Agent
from agentrelay.agent.cancellation import CancellationToken
from agentrelay.agent.echo import EchoAgent
from agentrelay.agent.events import AgentEvent, EventCursor, EventLog, EventType
from agentrelay.agent.manager import AgentManager, AgentNotFoundError
from agentrelay.agent.models import AgentConfig

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentEvent",
    "AgentManager",
    "AgentNotFoundError",
    "CancellationToken",
    "EchoAgent",
    "EventCursor",
    "EventLog",
    "EventType",
]
