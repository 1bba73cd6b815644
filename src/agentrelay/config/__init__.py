"""
Configuration management for agentrelay.

This module provides configuration loading, merging, and validation.
"""

from agentrelay.config.loader import (
    ConfigurationError,
    apply_env_overrides,
    expand_env_placeholders,
    load_config,
    load_config_dict,
    load_yaml_file,
)
from agentrelay.config.merger import deep_merge, get_nested_value, set_nested_value
from agentrelay.config.schema import (
    AgentSettings,
    BotConfig,
    ChannelConfig,
    Config,
    EscalationConfig,
    LoggingSettings,
    RelaySettings,
)

__all__ = [
    "AgentSettings",
    "BotConfig",
    "ChannelConfig",
    "Config",
    "ConfigurationError",
    "EscalationConfig",
    "LoggingSettings",
    "RelaySettings",
    "apply_env_overrides",
    "deep_merge",
    "expand_env_placeholders",
    "get_nested_value",
    "load_config",
    "load_config_dict",
    "load_yaml_file",
    "set_nested_value",
]
