"""Bidirectional message relay between agents and a threaded chat surface.

Architecture:
    Transport → Inbound Dispatcher → Agent Event Correlator → Flush Scheduler → Transport
                                   ↘ Thread Router → Correlated Channel

Key Components:
    - ChatTransport: Abstract protocol for chat surfaces (Slack implemented)
    - FlushScheduler: Rate-limited, coalescing output buffering
    - ThreadRouter / CorrelatedChannel: Threaded request/response conversations
    - AgentEventCorrelator: One agent request/response cycle
    - InboundDispatcher: Classifies and routes inbound messages
    - RelayBot / RelayService: Wiring and lifecycle
"""

from agentrelay.relay.bot import RelayBot
from agentrelay.relay.channel import CorrelatedChannel, ThreadRouter
from agentrelay.relay.correlator import AgentEventCorrelator
from agentrelay.relay.dispatcher import InboundDispatcher
from agentrelay.relay.exceptions import (
    BotNotFoundError,
    ChannelClosedError,
    ChannelNotFoundError,
    MessageNotFoundError,
    RelayError,
    TransportError,
)
from agentrelay.relay.models import CorrelationResult, DestinationBuffer, InboundMessage
from agentrelay.relay.scheduler import FlushScheduler
from agentrelay.relay.service import EscalationProvider, RelayService
from agentrelay.relay.transport import ChatTransport

__all__ = [
    "AgentEventCorrelator",
    "BotNotFoundError",
    "ChannelClosedError",
    "ChannelNotFoundError",
    "ChatTransport",
    "CorrelatedChannel",
    "CorrelationResult",
    "DestinationBuffer",
    "EscalationProvider",
    "FlushScheduler",
    "InboundDispatcher",
    "InboundMessage",
    "MessageNotFoundError",
    "RelayBot",
    "RelayError",
    "RelayService",
    "ThreadRouter",
    "TransportError",
]
