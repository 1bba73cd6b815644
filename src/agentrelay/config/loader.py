"""
Configuration loader for agentrelay.

Loads and merges configuration from multiple sources:
1. Default values
2. Global config (~/.agentrelay/config.yaml)
3. Explicit config file (--config / AGENTRELAY_CONFIG)
4. Environment variables (AGENTRELAY_<SECTION>__<KEY>)

String values of the form ``${NAME}`` are replaced with the value of the
environment variable ``NAME``, which keeps tokens out of config files.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from agentrelay.config.merger import deep_merge, set_nested_value
from agentrelay.config.paths import get_global_config_path
from agentrelay.config.schema import Config

ENV_PREFIX = "AGENTRELAY_"
_RESERVED_ENV = {"AGENTRELAY_HOME", "AGENTRELAY_CONFIG"}
_PLACEHOLDER = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed configuration dictionary.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}")
    return content


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern (double underscore separates
    nesting levels, so keys may contain single underscores):
    AGENTRELAY_<SECTION>__<KEY>=<value>

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides applied.
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key in _RESERVED_ENV:
            continue

        # AGENTRELAY_RELAY__MIN_FLUSH_INTERVAL -> relay.min_flush_interval
        config_key = ".".join(part.lower() for part in key[len(ENV_PREFIX) :].split("__"))
        config = set_nested_value(config, config_key, _parse_env_value(value))

    return config


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to the appropriate type.

    Args:
        value: String value from environment.

    Returns:
        Parsed value (bool, int, float, list or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    if re.match(r"^-?\d+$", value):
        return int(value)

    if re.match(r"^-?\d+\.\d+$", value):
        return float(value)

    # List (comma-separated)
    if "," in value:
        return [item.strip() for item in value.split(",")]

    return value


def expand_env_placeholders(value: Any) -> Any:
    """
    Replace ``${NAME}`` string values with environment variable values.

    Args:
        value: Configuration value (dicts and lists are walked recursively).

    Returns:
        The value with placeholders expanded.

    Raises:
        ConfigurationError: If a referenced variable is not set.
    """
    if isinstance(value, dict):
        return {key: expand_env_placeholders(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_placeholders(item) for item in value]
    if isinstance(value, str):
        match = _PLACEHOLDER.match(value.strip())
        if match:
            env_name = match.group(1)
            env_value = os.environ.get(env_name)
            if env_value is None:
                raise ConfigurationError(f"Environment variable {env_name} is not set")
            return env_value
    return value


def load_config_dict(
    config_path: Path | None = None,
    skip_global: bool = False,
    skip_env: bool = False,
) -> dict[str, Any]:
    """
    Load and merge raw configuration without validating it.

    Args:
        config_path: Explicit config file. Can also be set via AGENTRELAY_CONFIG.
        skip_global: Skip the global config file.
        skip_env: Skip environment variable overrides.

    Returns:
        Merged configuration dictionary.

    Raises:
        ConfigurationError: If a file cannot be read or parsed.
    """
    config_dict: dict[str, Any] = {}

    if not skip_global:
        global_path = get_global_config_path()
        if global_path.exists():
            config_dict = deep_merge(config_dict, load_yaml_file(global_path))

    explicit = config_path or (
        Path(os.environ["AGENTRELAY_CONFIG"]) if os.environ.get("AGENTRELAY_CONFIG") else None
    )
    if explicit is not None:
        if not explicit.exists():
            raise ConfigurationError(f"Config file not found: {explicit}")
        config_dict = deep_merge(config_dict, load_yaml_file(explicit))

    if not skip_env:
        config_dict = apply_env_overrides(config_dict)

    return config_dict


def load_config(
    config_path: Path | None = None,
    skip_global: bool = False,
    skip_env: bool = False,
) -> Config:
    """
    Load, merge and validate configuration from all sources.

    Loading order (later overrides earlier):
    1. Default values from Config model
    2. Global config (~/.agentrelay/config.yaml)
    3. Explicit config file
    4. Environment variables (AGENTRELAY_*)

    Args:
        config_path: Explicit config file. Can also be set via AGENTRELAY_CONFIG.
        skip_global: Skip the global config file.
        skip_env: Skip environment variable overrides.

    Returns:
        Merged and validated Config object.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    config_dict = load_config_dict(config_path, skip_global=skip_global, skip_env=skip_env)
    config_dict = expand_env_placeholders(config_dict)

    try:
        return Config.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
