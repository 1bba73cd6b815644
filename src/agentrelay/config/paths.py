"""
Path utilities for agentrelay.

Provides consistent path resolution for configuration files.
"""

import os
from pathlib import Path


def get_relay_home() -> Path:
    """
    Get the agentrelay home directory.

    Resolution order:
    1. AGENTRELAY_HOME environment variable
    2. Default: ~/.agentrelay

    Returns:
        Path to the agentrelay home directory.
    """
    env_home = os.environ.get("AGENTRELAY_HOME")
    if env_home:
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".agentrelay"


def get_global_config_path() -> Path:
    """
    Get the path to the global configuration file.

    Returns:
        Path to ~/.agentrelay/config.yaml
    """
    return get_relay_home() / "config.yaml"
