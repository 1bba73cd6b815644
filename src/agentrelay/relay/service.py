"""Relay service running every configured bot."""

import asyncio
import logging
from typing import Callable, Optional

from agentrelay.agent import AgentManager
from agentrelay.config.schema import BotConfig, Config, EscalationConfig
from agentrelay.relay.adapters.slack import SlackTransport
from agentrelay.relay.bot import RelayBot
from agentrelay.relay.channel import CorrelatedChannel
from agentrelay.relay.exceptions import BotNotFoundError
from agentrelay.relay.transport import ChatTransport

logger = logging.getLogger(__name__)

# (bot config, max message length) -> transport
TransportFactory = Callable[[BotConfig, int], ChatTransport]


class RelayService:
    """Owns one ``RelayBot`` per configured bot.

    Bots are started together and stopped together; a bot that fails to
    start is logged and skipped so the others keep serving.
    """

    def __init__(
        self,
        config: Config,
        agent_manager: Optional[AgentManager] = None,
        transport_factory: TransportFactory = SlackTransport.from_config,
    ) -> None:
        """Initialize the service.

        Args:
            config: Root configuration
            agent_manager: Manager spawning agents (built from config when omitted)
            transport_factory: Builds the transport for each bot
        """
        self._config = config
        self._agent_manager = agent_manager or AgentManager(
            max_run_time=config.agent.max_run_time
        )
        self._bots: dict[str, RelayBot] = {}
        self._running = False

        for name, bot_config in config.bots.items():
            transport = transport_factory(bot_config, config.relay.max_message_length)
            self._bots[name] = RelayBot(
                bot_config, transport, self._agent_manager, settings=config.relay
            )

    @property
    def agent_manager(self) -> AgentManager:
        return self._agent_manager

    @property
    def bots(self) -> dict[str, RelayBot]:
        return dict(self._bots)

    @property
    def is_running(self) -> bool:
        return self._running

    def get_bot(self, name: str) -> Optional[RelayBot]:
        """Get a bot by name."""
        return self._bots.get(name)

    async def start(self, only: Optional[str] = None) -> None:
        """Start all bots, or only the named one.

        Raises:
            BotNotFoundError: If ``only`` names an unknown bot
        """
        if only is not None and only not in self._bots:
            raise BotNotFoundError(only)

        self._running = True
        for name, bot in self._bots.items():
            if only is not None and name != only:
                continue
            try:
                await bot.start()
            except Exception as e:
                logger.error(f"Failed to start bot {name}: {e}", exc_info=True)

        started = [name for name, bot in self._bots.items() if bot.is_running]
        logger.info(f"Relay service started with {len(started)} bot(s): {', '.join(started)}")

    async def stop(self) -> None:
        """Stop every running bot and delete remaining agents."""
        self._running = False
        for name, bot in self._bots.items():
            if not bot.is_running:
                continue
            try:
                await bot.stop()
            except Exception as e:
                logger.error(f"Failed to stop bot {name}: {e}", exc_info=True)

        await self._agent_manager.delete_all()
        logger.info("Relay service stopped")

    async def run(self, stop_event: asyncio.Event, only: Optional[str] = None) -> None:
        """Run until ``stop_event`` is set, then shut down."""
        await self.start(only=only)
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    def create_channel(self, bot_name: str, channel_name: str) -> CorrelatedChannel:
        """Open a correlated channel on a bot's configured channel.

        Raises:
            BotNotFoundError: If the bot is not configured
            ChannelNotFoundError: If the channel is not configured for the bot
        """
        bot = self._bots.get(bot_name)
        if bot is None:
            raise BotNotFoundError(bot_name)
        return bot.create_channel(channel_name)


class EscalationProvider:
    """Opens conversations with humans for approval or escalation workflows.

    Example:
        channel = provider.create_channel()
        await channel.send("Deploy to production?")
        async for reply in channel.receive():
            ...
        await channel.close()
    """

    def __init__(self, service: RelayService, config: EscalationConfig) -> None:
        self._service = service
        self._config = config

    @property
    def config(self) -> EscalationConfig:
        return self._config

    def create_channel(self, channel_name: Optional[str] = None) -> CorrelatedChannel:
        """Open a correlated channel.

        Args:
            channel_name: Configured channel name (defaults to the provider's channel)
        """
        return self._service.create_channel(self._config.bot, channel_name or self._config.channel)
