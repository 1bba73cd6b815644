"""A relay bot: one chat identity wired to per-channel agents."""

import asyncio
import logging
from typing import Optional

from agentrelay.agent import Agent, AgentManager
from agentrelay.config.schema import BotConfig, RelaySettings
from agentrelay.relay.channel import CorrelatedChannel, ThreadRouter
from agentrelay.relay.correlator import AgentEventCorrelator
from agentrelay.relay.dispatcher import InboundDispatcher
from agentrelay.relay.exceptions import ChannelNotFoundError
from agentrelay.relay.models import InboundMessage
from agentrelay.relay.scheduler import FlushScheduler
from agentrelay.relay.transport import ChatTransport

logger = logging.getLogger(__name__)


class RelayBot:
    """Connects a chat transport to agents, one agent per channel.

    The bot:
    1. Starts the transport and learns its own identity
    2. Announces itself in every configured channel
    3. Dispatches each inbound message in its own task
    4. Opens correlated channels for callers that need replies
    5. On stop, flushes pending output and deletes its agents
    """

    def __init__(
        self,
        config: BotConfig,
        transport: ChatTransport,
        agent_manager: AgentManager,
        settings: Optional[RelaySettings] = None,
    ) -> None:
        """Initialize the bot.

        Args:
            config: Bot configuration
            transport: Chat transport for this bot's identity
            agent_manager: Manager spawning the channel agents
            settings: Relay limits (defaults when omitted)
        """
        settings = settings or RelaySettings()

        self._config = config
        self._name = config.name or "bot"
        self._transport = transport
        self._agent_manager = agent_manager
        self._max_concurrent = settings.max_concurrent_messages

        self._router = ThreadRouter(transport)
        self._scheduler = FlushScheduler(
            transport,
            max_message_length=min(settings.max_message_length, transport.max_message_length),
            min_interval=settings.min_flush_interval,
        )
        self._correlator = AgentEventCorrelator(self._scheduler, self._notify)
        self._dispatcher = InboundDispatcher(
            router=self._router,
            correlator=self._correlator,
            channels=config.channels,
            resolve_agent=self.get_or_create_agent,
            notify=self._notify,
        )

        self._channel_agents: dict[str, Agent] = {}
        self._tasks: set[asyncio.Task] = set()
        self._listener: Optional[asyncio.Task] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._running = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> BotConfig:
        return self._config

    @property
    def transport(self) -> ChatTransport:
        return self._transport

    @property
    def router(self) -> ThreadRouter:
        return self._router

    @property
    def scheduler(self) -> FlushScheduler:
        return self._scheduler

    @property
    def dispatcher(self) -> InboundDispatcher:
        return self._dispatcher

    @property
    def identity(self) -> Optional[str]:
        """User id the bot posts as."""
        return self._router.identity

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the transport, begin listening and announce the bot."""
        if self._running:
            logger.warning(f"Bot {self._name} is already running")
            return

        await self._transport.start()
        self._router.identity = self._transport.identity
        self._semaphore = asyncio.Semaphore(self._max_concurrent)
        self._running = True

        self._listener = asyncio.create_task(self._listen(), name=f"listen-{self._name}")
        logger.info(f"Bot {self._name} (@{self.identity}) started")

        if self._config.announce_online:
            await self._announce()

    async def _announce(self) -> None:
        for channel_config in self._config.channels.values():
            try:
                await self._transport.post_message(
                    channel_config.channel_id,
                    f"🤖 Bot {self._name} is now online and ready!",
                )
            except Exception as e:
                logger.error(f"Failed to announce to channel {channel_config.channel_id}: {e}")

    async def stop(self) -> None:
        """Stop listening, flush pending output and release all resources."""
        if not self._running:
            logger.warning(f"Bot {self._name} is not running")
            return

        logger.info(f"Stopping bot {self._name}")
        self._running = False

        if self._listener is not None:
            self._listener.cancel()
            await asyncio.gather(self._listener, return_exceptions=True)
            self._listener = None

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        await self._scheduler.close()
        await self._router.close_all()

        for agent in self._channel_agents.values():
            await self._agent_manager.delete_agent(agent)
        self._channel_agents.clear()

        try:
            await self._transport.stop()
        except Exception as e:
            logger.error(f"Error stopping transport for bot {self._name}: {e}")

        logger.info(f"Bot {self._name} stopped")

    async def _listen(self) -> None:
        try:
            async for message in self._transport.receive_messages():
                if not self._running:
                    break
                self.handle_message(message)
        except asyncio.CancelledError:
            logger.debug(f"Stopped listening for bot {self._name}")
            raise
        except Exception as e:
            logger.error(f"Error listening for bot {self._name}: {e}", exc_info=True)

    def handle_message(self, message: InboundMessage) -> asyncio.Task:
        """Dispatch an inbound message in its own task.

        Tasks start in arrival order, so replies routed to a channel keep
        transport order.
        """
        task = asyncio.create_task(
            self._handle_message(message), name=f"handle-{self._name}-{message.message_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _handle_message(self, message: InboundMessage) -> None:
        if self._semaphore is None:
            await self._dispatcher.dispatch(message)
            return
        async with self._semaphore:
            await self._dispatcher.dispatch(message)

    async def _notify(self, destination: str, text: str) -> None:
        await self._transport.post_message(destination, text)

    async def get_or_create_agent(self, destination: str, agent_type: str) -> Agent:
        """Get the agent serving ``destination``, spawning it on first use."""
        agent = self._channel_agents.get(destination)
        if agent is None:
            agent = await self._agent_manager.spawn_agent(agent_type, headless=True)
            # Another message may have spawned one while we awaited
            existing = self._channel_agents.setdefault(destination, agent)
            if existing is not agent:
                await self._agent_manager.delete_agent(agent)
                agent = existing
        return agent

    def create_channel(self, channel_name: str) -> CorrelatedChannel:
        """Open a correlated channel on a configured channel.

        Args:
            channel_name: Key under the bot's ``channels`` configuration

        Raises:
            ChannelNotFoundError: If the channel is not configured
        """
        channel_config = self._config.channels.get(channel_name)
        if channel_config is None:
            raise ChannelNotFoundError(channel_name)
        return self.create_channel_for_destination(channel_config.channel_id)

    def create_channel_for_destination(self, destination: str) -> CorrelatedChannel:
        """Open a correlated channel on any destination (channel or user id)."""
        return self._router.create_channel(destination)
