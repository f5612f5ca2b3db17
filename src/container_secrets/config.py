"""Configuration for container-secrets."""

import os
from pathlib import Path

from .errors import ConfigError
from .process import DEFAULT_TIMEOUT


def get_data_dir() -> Path:
    """Get data directory following XDG spec."""
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        base = Path(xdg_data)
    else:
        base = Path.home() / ".local" / "share"
    return base / "container-secrets"


def get_default_secrets_dir() -> Path:
    """Get the directory holding secrets metadata."""
    env_dir = os.environ.get("CONTAINER_SECRETS_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return get_data_dir()


def get_default_driver() -> str:
    """Get the driver used when none is requested."""
    return os.environ.get("CONTAINER_SECRETS_DRIVER") or "file"


def get_driver_timeout() -> float:
    """Get the driver subprocess timeout in seconds."""
    value = os.environ.get("CONTAINER_SECRETS_TIMEOUT")
    if not value:
        return DEFAULT_TIMEOUT

    try:
        timeout = float(value)
    except ValueError:
        raise ConfigError(f"CONTAINER_SECRETS_TIMEOUT must be a number, got {value!r}")

    if timeout <= 0:
        raise ConfigError(f"CONTAINER_SECRETS_TIMEOUT must be positive, got {value!r}")
    return timeout


def get_log_level() -> str:
    """Get the log level for the CLI."""
    return os.environ.get("CONTAINER_SECRETS_LOG_LEVEL", "WARNING").upper()


# Constants
DATA_DIR = get_data_dir()
DEFAULT_SECRETS_DIR = get_default_secrets_dir()
