"""
Pydantic configuration schema for agentrelay.

This module defines all configuration models with validation.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =============================================================================
# Bot Configuration
# =============================================================================


class ChannelConfig(BaseModel):
    """A chat channel the bot serves with one agent."""

    channel_id: str = Field(min_length=1)
    allowed_users: list[str] = Field(
        default_factory=list,
        description="User ids allowed to talk to the agent (empty = everyone)",
    )
    agent_type: str = Field(min_length=1)


class BotConfig(BaseModel):
    """Slack bot configuration.

    Uses Socket Mode when ``app_token`` is set (WebSocket connection,
    no public URL required).
    """

    name: str | None = None  # Filled from the key under ``bots`` when omitted
    bot_token: str = Field(min_length=1, description="Bot User OAuth Token (xoxb-...)")
    app_token: str | None = Field(
        default=None,
        description="App-Level Token for Socket Mode (xapp-...)",
    )
    signing_secret: str = Field(min_length=1)
    announce_online: bool = True
    channels: dict[str, ChannelConfig] = Field(default_factory=dict)


# =============================================================================
# Relay Configuration
# =============================================================================


class RelaySettings(BaseModel):
    """Outbound flushing and message handling limits."""

    min_flush_interval: float = Field(
        default=0.25,
        ge=0.0,
        description="Minimum seconds between flush cycles",
    )
    max_message_length: int = Field(
        default=3900,
        ge=1,
        le=40000,
        description="Maximum characters per outbound message",
    )
    max_concurrent_messages: int = Field(
        default=100,
        ge=1,
        description="Maximum inbound messages handled concurrently per bot",
    )


class AgentSettings(BaseModel):
    """Defaults for spawned agents."""

    max_run_time: float = Field(
        default=0,
        ge=0,
        description="Maximum seconds per request (0 = unbounded)",
    )


class LoggingSettings(BaseModel):
    """Operator log configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file: Path | None = None


class EscalationConfig(BaseModel):
    """Escalation provider opening correlated channels on a bot."""

    type: Literal["slack"] = "slack"
    bot: str
    channel: str


# =============================================================================
# Root Configuration Model
# =============================================================================


class Config(BaseModel):
    """
    Root configuration model for agentrelay.

    Configuration can be loaded from YAML files and environment variables,
    merged in order of priority.
    """

    model_config = ConfigDict(extra="allow")

    bots: dict[str, BotConfig] = Field(default_factory=dict)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    escalation: EscalationConfig | None = None

    @model_validator(mode="after")
    def _name_bots(self) -> "Config":
        for name, bot in self.bots.items():
            if bot.name is None:
                bot.name = name
        return self

    @model_validator(mode="after")
    def _check_escalation(self) -> "Config":
        if self.escalation is not None:
            bot = self.bots.get(self.escalation.bot)
            if bot is None:
                raise ValueError(f"Escalation bot '{self.escalation.bot}' is not configured")
            if self.escalation.channel not in bot.channels:
                raise ValueError(
                    f"Escalation channel '{self.escalation.channel}' is not configured "
                    f"for bot '{self.escalation.bot}'"
                )
        return self
