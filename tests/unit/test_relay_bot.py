"""Unit tests for the relay bot and the multi-bot service."""

import asyncio

import pytest

from agentrelay.agent import AgentManager
from agentrelay.config.schema import Config, EscalationConfig, RelaySettings
from agentrelay.relay.bot import RelayBot
from agentrelay.relay.exceptions import (
    BotNotFoundError,
    ChannelNotFoundError,
    TransportError,
)
from agentrelay.relay.models import InboundMessage
from agentrelay.relay.service import EscalationProvider, RelayService

FAST = RelaySettings(min_flush_interval=0.01)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def config(sample_config) -> Config:
    return Config.model_validate(sample_config)


@pytest.fixture
def bot(config, transport) -> RelayBot:
    return RelayBot(config.bots["support"], transport, AgentManager(), settings=FAST)


class TestRelayBot:
    """Tests for RelayBot."""

    @pytest.mark.asyncio
    async def test_start_announces_online(self, bot, transport):
        """Test start posts an online notice to every configured channel."""
        await bot.start()

        assert bot.is_running
        assert bot.identity == "UBOT"
        assert transport.posts("C001") == ["🤖 Bot support is now online and ready!"]
        assert transport.posts("C002") == ["🤖 Bot support is now online and ready!"]

        await bot.stop()

    @pytest.mark.asyncio
    async def test_announce_can_be_disabled(self, config, transport):
        """Test no notice is posted when announcements are off."""
        bot_config = config.bots["support"].model_copy(update={"announce_online": False})
        bot = RelayBot(bot_config, transport, AgentManager(), settings=FAST)

        await bot.start()
        await bot.stop()

        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_announce_failure_logged(self, bot, transport, caplog):
        """Test a failed announcement does not stop the bot from starting."""
        transport.fail_post = TransportError("boom")

        await bot.start()

        assert bot.is_running
        assert "Failed to announce" in caplog.text
        transport.fail_post = None
        await bot.stop()

    @pytest.mark.asyncio
    async def test_message_relayed_through_agent(self, bot, transport):
        """Test a channel message reaches the echo agent and its output is posted."""
        await bot.start()
        transport.calls.clear()

        task = bot.handle_message(
            InboundMessage(sender="UALICE", destination="C001", text="<@UBOT> hello world", ts="9.0")
        )
        await asyncio.wait_for(task, timeout=2.0)
        await bot.scheduler.wait_idle()

        assert "[INFO]: Echoing 2 word(s)" in transport.posts("C001")
        assert "hello world" in transport.messages.values()

        await bot.stop()

    @pytest.mark.asyncio
    async def test_listener_dispatches_transport_messages(self, bot, transport):
        """Test messages received from the transport are handled."""
        await bot.start()

        transport.push(
            InboundMessage(sender="UALICE", destination="C001", text="ping", ts="9.0")
        )
        await wait_until(lambda: "ping" in transport.messages.values(), timeout=2.0)

        await bot.stop()

    @pytest.mark.asyncio
    async def test_unauthorized_user_gets_notice(self, bot, transport):
        """Test the allow-list of a channel is enforced."""
        await bot.start()

        task = bot.handle_message(
            InboundMessage(sender="UMALLORY", destination="C002", text="hi", ts="9.0")
        )
        await task

        assert transport.posts("C002")[-1] == "Sorry, you are not authorized."

        await bot.stop()

    @pytest.mark.asyncio
    async def test_one_agent_per_destination(self, bot):
        """Test each destination gets its own agent, reused across messages."""
        first = await bot.get_or_create_agent("C001", "echo")
        again = await bot.get_or_create_agent("C001", "echo")
        other = await bot.get_or_create_agent("C002", "echo")

        assert first is again
        assert first is not other

    @pytest.mark.asyncio
    async def test_stop_deletes_agents(self, bot):
        """Test stopping the bot deletes the agents it spawned."""
        await bot.start()
        await bot.get_or_create_agent("C001", "echo")

        await bot.stop()

        assert bot._agent_manager.agents == []
        assert not bot.is_running

    @pytest.mark.asyncio
    async def test_stop_closes_channels(self, bot):
        """Test stopping the bot closes open correlated channels."""
        await bot.start()
        channel = bot.create_channel("general")

        await bot.stop()

        assert channel.closed

    @pytest.mark.asyncio
    async def test_correlated_channel_receives_replies(self, bot, transport):
        """Test a reply in a bot-opened thread reaches the channel, not the agent."""
        await bot.start()
        channel = bot.create_channel("general")
        message_id = await channel.send("Deploy?")
        root_ts = message_id.split("-", 1)[1]

        await bot.handle_message(
            InboundMessage(
                sender="UALICE", destination="C001", text="yes", ts="99.0", thread_ts=root_ts
            )
        )

        replies = []
        async for text in channel.receive():
            replies.append(text)
            break
        assert replies == ["yes"]
        assert bot._agent_manager.agents == []

        await bot.stop()

    def test_create_channel_unknown(self, bot):
        """Test opening a channel that is not configured fails."""
        with pytest.raises(ChannelNotFoundError, match='Channel "missing" not found'):
            bot.create_channel("missing")


@pytest.fixture
def service(config, make_transport) -> RelayService:
    return RelayService(
        config,
        agent_manager=AgentManager(),
        transport_factory=lambda bot_config, max_length: make_transport(),
    )


class TestRelayService:
    """Tests for RelayService."""

    def test_one_bot_per_config(self, service):
        assert list(service.bots) == ["support"]
        assert service.get_bot("support").name == "support"
        assert service.get_bot("missing") is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, service):
        await service.start()

        assert service.is_running
        assert service.get_bot("support").is_running

        await service.stop()

        assert not service.is_running
        assert not service.get_bot("support").is_running

    @pytest.mark.asyncio
    async def test_start_unknown_bot(self, service):
        with pytest.raises(BotNotFoundError, match="Bot missing not found"):
            await service.start(only="missing")

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, service):
        stop_event = asyncio.Event()

        task = asyncio.create_task(service.run(stop_event))
        await wait_until(lambda: service.get_bot("support").is_running)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert not service.get_bot("support").is_running

    @pytest.mark.asyncio
    async def test_create_channel_unknown_bot(self, service):
        with pytest.raises(BotNotFoundError):
            service.create_channel("missing", "general")

    @pytest.mark.asyncio
    async def test_escalation_provider(self, service):
        await service.start()
        provider = EscalationProvider(service, EscalationConfig(bot="support", channel="ops"))

        channel = provider.create_channel()
        assert channel.destination == "C002"
        assert provider.create_channel("general").destination == "C001"

        await service.stop()
