"""Slack chat transport using Socket Mode."""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import AsyncIterator
from typing import Optional

from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.web.async_client import AsyncWebClient

from agentrelay.config.schema import BotConfig
from agentrelay.relay.exceptions import MessageNotFoundError, RelayError, TransportError
from agentrelay.relay.models import InboundMessage
from agentrelay.relay.transport import DEFAULT_MAX_MESSAGE_LENGTH, ChatTransport

logger = logging.getLogger(__name__)

# Edits, deletions and membership notices are not conversation input
_IGNORED_SUBTYPES = frozenset(
    {
        "message_changed",
        "message_deleted",
        "message_replied",
        "channel_join",
        "channel_leave",
        "channel_topic",
        "channel_purpose",
    }
)

_SEEN_CAPACITY = 1000


class SlackTransport(ChatTransport):
    """Slack transport using Socket Mode.

    Socket Mode uses a WebSocket connection, so no public URL is needed.
    Channel messages and app mentions both arrive as events; a mention in a
    channel produces one of each, and the duplicate is dropped.

    Configuration:
        - bot_token: Bot User OAuth Token (starts with xoxb-)
        - app_token: App-Level Token for Socket Mode (starts with xapp-)
    """

    def __init__(
        self,
        bot_token: str,
        app_token: Optional[str],
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
        web_client: Optional[AsyncWebClient] = None,
    ):
        """Initialize Slack transport.

        Args:
            bot_token: Bot User OAuth Token (xoxb-...)
            app_token: App-Level Token for Socket Mode (xapp-...)
            max_message_length: Maximum characters per posted message
            web_client: Pre-built web client (tests)
        """
        super().__init__()

        self._bot_token = bot_token
        self._app_token = app_token
        self._max_message_length = max_message_length

        self._web_client: Optional[AsyncWebClient] = web_client
        self._socket_client: Optional[SocketModeClient] = None
        self._message_queue: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self._seen: OrderedDict[str, None] = OrderedDict()

    @classmethod
    def from_config(cls, config: BotConfig, max_message_length: int) -> "SlackTransport":
        """Build a transport for a configured bot."""
        return cls(
            bot_token=config.bot_token,
            app_token=config.app_token,
            max_message_length=max_message_length,
        )

    @property
    def max_message_length(self) -> int:
        return self._max_message_length

    async def start(self) -> None:
        """Authenticate and connect with Socket Mode."""
        if self._running:
            logger.warning("Slack transport already running")
            return

        if not self._app_token:
            raise RelayError("Slack Socket Mode requires an app token (xapp-...)")

        logger.info("Starting Slack transport (Socket Mode)")

        if self._web_client is None:
            self._web_client = AsyncWebClient(token=self._bot_token)

        try:
            auth_response = await self._web_client.auth_test()
        except SlackApiError as e:
            logger.error(f"Failed to authenticate Slack bot: {e}")
            raise TransportError(f"Slack authentication failed: {e}") from e

        self._identity = auth_response["user_id"]
        logger.info(f"Slack bot authenticated as @{auth_response.get('user')} ({self._identity})")

        self._socket_client = SocketModeClient(
            app_token=self._app_token,
            web_client=self._web_client,
        )
        self._socket_client.socket_mode_request_listeners.append(self._handle_socket_event)
        await self._socket_client.connect()

        self._running = True
        logger.info("Slack transport started")

    async def stop(self) -> None:
        """Disconnect from Slack."""
        if not self._running:
            return

        logger.info("Stopping Slack transport")
        self._running = False

        if self._socket_client:
            await self._socket_client.close()
            self._socket_client = None

        logger.info("Slack transport stopped")

    async def _handle_socket_event(
        self, client: SocketModeClient, req: SocketModeRequest
    ) -> None:
        """Acknowledge a Socket Mode request and queue message events."""
        await client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))

        if req.type != "events_api":
            return

        event = req.payload.get("event", {})
        if event.get("type") in ("message", "app_mention"):
            self.handle_event(event)

    def handle_event(self, event: dict) -> Optional[InboundMessage]:
        """Convert a Slack message event and queue it.

        Args:
            event: ``message`` or ``app_mention`` event payload

        Returns:
            The queued message, or None if the event was ignored
        """
        if event.get("subtype") in _IGNORED_SUBTYPES:
            return None

        channel_id = event.get("channel")
        ts = event.get("ts")
        if not channel_id or not ts:
            return None

        key = f"{channel_id}-{ts}"
        if key in self._seen:
            return None
        self._seen[key] = None
        if len(self._seen) > _SEEN_CAPACITY:
            self._seen.popitem(last=False)

        message = InboundMessage(
            sender=event.get("user"),
            destination=channel_id,
            text=event.get("text") or "",
            ts=ts,
            thread_ts=event.get("thread_ts"),
            is_bot=bool(event.get("bot_id")) or event.get("subtype") == "bot_message",
            metadata={
                "event_type": event.get("type"),
                "channel_type": event.get("channel_type"),
            },
        )
        self._message_queue.put_nowait(message)
        return message

    async def receive_messages(self) -> AsyncIterator[InboundMessage]:
        """Receive messages from Slack.

        Yields:
            InboundMessage objects as they arrive
        """
        while self._running:
            try:
                # Wait with a timeout so a stopped transport ends the iteration
                message = await asyncio.wait_for(self._message_queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            yield message

    async def post_message(self, destination: str, text: str) -> str:
        """Post a message to a Slack channel.

        Returns:
            Message timestamp (ts) of the new message

        Raises:
            TransportError: If posting fails
        """
        client = self._require_client()
        try:
            response = await client.chat_postMessage(channel=destination, text=text)
        except SlackApiError as e:
            raise TransportError(f"Failed to post Slack message: {e}", destination) from e

        return response["ts"]

    async def update_message(self, destination: str, message_id: str, text: str) -> None:
        """Edit a Slack message in place.

        Raises:
            MessageNotFoundError: If Slack reports ``message_not_found``
            TransportError: If the edit fails for any other reason
        """
        client = self._require_client()
        try:
            await client.chat_update(channel=destination, ts=message_id, text=text)
        except SlackApiError as e:
            if _slack_error_code(e) == "message_not_found":
                raise MessageNotFoundError(destination, message_id) from e
            raise TransportError(f"Failed to update Slack message: {e}", destination) from e

    def _require_client(self) -> AsyncWebClient:
        if self._web_client is None:
            raise TransportError("Web client not initialized")
        return self._web_client

    async def health_check(self) -> bool:
        """Check if the Slack connection is healthy."""
        if not self._running or not self._web_client:
            return False

        try:
            await self._web_client.auth_test()
            return True
        except SlackApiError as e:
            logger.error(f"Slack health check failed: {e}")
            return False


def _slack_error_code(error: SlackApiError) -> Optional[str]:
    response = error.response
    if response is None:
        return None
    try:
        return response.get("error")
    except AttributeError:
        return None
