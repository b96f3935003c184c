"""XDG-compliant path management for gitopsctl.

This module provides standardized paths following the XDG Base Directory
Specification for configuration and state storage.

XDG defaults:
- Config: ~/.config/gitopsctl/
- State: ~/.local/state/gitopsctl/
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "gitopsctl"


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/gitopsctl/ (or XDG_CONFIG_HOME/gitopsctl/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    """Get the state directory path.

    State data includes application records and the pass journal.

    Returns:
        Path to ~/.local/state/gitopsctl/ (or XDG_STATE_HOME/gitopsctl/).
    """
    return _get_xdg_dir("XDG_STATE_HOME", ".local/state")


def get_config_path() -> Path:
    """Get the default controller config file path.

    Returns:
        Path to ~/.config/gitopsctl/config.toml.
    """
    return get_config_dir() / "config.toml"


def get_applications_dir() -> Path:
    """Get the directory holding local Application records.

    Returns:
        Path to ~/.local/state/gitopsctl/applications/.
    """
    return get_state_dir() / "applications"


def get_journal_path() -> Path:
    """Get the pass journal file path.

    Returns:
        Path to ~/.local/state/gitopsctl/journal.jsonl.
    """
    return get_state_dir() / "journal.jsonl"
