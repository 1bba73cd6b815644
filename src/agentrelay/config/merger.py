"""
Configuration merger for agentrelay.

Implements deep merge and dotted-key access on plain dictionaries.
"""

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Merge rules:
    - Scalar values and lists: override replaces base
    - Dicts: recursive deep merge
    - null/None value: remove key from result

    Args:
        base: Base configuration dictionary.
        override: Override configuration dictionary.

    Returns:
        Merged configuration dictionary.

    Examples:
        >>> deep_merge({"relay": {"max_message_length": 3900}}, {"relay": {"min_flush_interval": 1}})
        {'relay': {'max_message_length': 3900, 'min_flush_interval': 1}}
    """
    result = base.copy()

    for key, value in override.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def get_nested_value(config: dict[str, Any], key: str, default: Any = None) -> Any:
    """
    Get a value from a nested dictionary using dot notation.

    Args:
        config: Configuration dictionary.
        key: Dot-separated key path (e.g., "relay.max_message_length").
        default: Value returned when the path does not exist.

    Returns:
        The value at the key path, or default.
    """
    current: Any = config
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_nested_value(config: dict[str, Any], key: str, value: Any) -> dict[str, Any]:
    """
    Set a value in a nested dictionary using dot notation.

    Intermediate dictionaries are created as needed.

    Args:
        config: Configuration dictionary (not modified).
        key: Dot-separated key path.
        value: Value to set.

    Returns:
        A new dictionary with the value set.
    """
    parts = key.split(".")
    result = config.copy()
    current = result

    for part in parts[:-1]:
        child = current.get(part)
        child = child.copy() if isinstance(child, dict) else {}
        current[part] = child
        current = child

    current[parts[-1]] = value
    return result
