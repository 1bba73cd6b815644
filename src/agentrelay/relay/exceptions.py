"""
Relay exceptions for agentrelay.

Defines the error taxonomy shared by transports, channels and bots.
"""


class RelayError(Exception):
    """Base exception for relay errors."""

    pass


class TransportError(RelayError):
    """A chat transport call failed."""

    def __init__(self, message: str, destination: str | None = None):
        super().__init__(message)
        self.destination = destination


class MessageNotFoundError(TransportError):
    """An edit targeted a message that no longer exists."""

    def __init__(self, destination: str, message_id: str):
        super().__init__(f"Message {message_id} not found in {destination}", destination)
        self.message_id = message_id


class ChannelClosedError(RelayError):
    """Sending on a correlated channel after it was closed."""

    pass


class ChannelNotFoundError(RelayError):
    """A channel name is not present in the bot configuration."""

    def __init__(self, channel_name: str):
        super().__init__(f'Channel "{channel_name}" not found in configuration.')
        self.channel_name = channel_name


class BotNotFoundError(RelayError):
    """A bot name is not present in the service configuration."""

    def __init__(self, bot_name: str):
        super().__init__(f"Bot {bot_name} not found")
        self.bot_name = bot_name
