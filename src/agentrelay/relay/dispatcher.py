"""Classifies inbound messages and routes them to a conversation or an agent."""

import logging
import re
from typing import Awaitable, Callable, Optional

from agentrelay.agent import Agent
from agentrelay.config.schema import ChannelConfig
from agentrelay.relay.channel import ThreadRouter
from agentrelay.relay.correlator import AgentEventCorrelator, Notifier
from agentrelay.relay.models import InboundMessage

logger = logging.getLogger(__name__)

NOT_AUTHORIZED_NOTICE = "Sorry, you are not authorized."

_LEADING_MENTION = re.compile(r"^\s*<@[^>]+>\s*")

# (destination, agent_type) -> agent bound to that destination
AgentResolver = Callable[[str, str], Awaitable[Agent]]


def strip_leading_mention(text: str) -> str:
    """Remove a leading ``<@USER>`` mention token and surrounding whitespace."""
    return _LEADING_MENTION.sub("", text, count=1).strip()


class InboundDispatcher:
    """Entry point for every message the transport delivers.

    A threaded reply is handed to the thread router and dropped unless its
    root is tracked by a live channel. Anything else posted in a configured channel is checked against the
    channel's allow-list and, with any leading mention removed, submitted to
    the channel's agent.
    """

    def __init__(
        self,
        router: ThreadRouter,
        correlator: AgentEventCorrelator,
        channels: dict[str, ChannelConfig],
        resolve_agent: AgentResolver,
        notify: Notifier,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            router: Thread router owning tracked messages
            correlator: Correlator running agent requests
            channels: Configured channels keyed by name
            resolve_agent: Coroutine returning the agent for a destination
            notify: Coroutine posting a notice to a destination
        """
        self._router = router
        self._correlator = correlator
        self._channels = channels
        self._resolve_agent = resolve_agent
        self._notify = notify

    def find_channel_config(self, destination: str) -> Optional[ChannelConfig]:
        """Get the configuration of the channel with id ``destination``."""
        for channel_config in self._channels.values():
            if channel_config.channel_id == destination:
                return channel_config
        return None

    async def dispatch(self, message: InboundMessage) -> None:
        """Handle one inbound message; errors are logged and the message dropped."""
        try:
            await self._dispatch(message)
        except Exception as e:
            logger.error(f"Error processing message {message.message_id}: {e}", exc_info=True)

    async def _dispatch(self, message: InboundMessage) -> None:
        if not message.sender or not message.text.strip():
            return

        if message.is_bot or message.sender == self._router.identity:
            return

        root_id = message.thread_root_id
        if root_id is not None:
            # Threads the relay did not start are not conversations with the agent
            if not self._router.route_reply(message):
                logger.debug(f"Dropped reply to {root_id} from {message.sender}")
            return

        channel_config = self.find_channel_config(message.destination)
        if channel_config is None:
            logger.debug(f"Ignoring message from unconfigured destination {message.destination}")
            return

        if channel_config.allowed_users and message.sender not in channel_config.allowed_users:
            logger.info(f"Rejected message from unauthorized user {message.sender}")
            await self._notify(message.destination, NOT_AUTHORIZED_NOTICE)
            return

        text = strip_leading_mention(message.text)
        if not text:
            return

        agent = await self._resolve_agent(message.destination, channel_config.agent_type)
        result = await self._correlator.run(agent, message.destination, text)
        logger.debug(f"Request {result.request_id} for {message.destination} finished: {result}")
