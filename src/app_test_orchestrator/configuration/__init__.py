"""Configuration domain exports."""

from .config_scaffold_builder import (
    DEFAULT_CONFIG_FILENAME,
    build_placeholder_configuration,
    write_placeholder_configuration,
)
from .loader import ConfigurationError, load_configuration, resolve_config_path
from .runtime_settings import (
    Action,
    ChannelSettings,
    Platform,
    RemoteFarmSettings,
    RunConfig,
    TimeoutSettings,
)

__all__ = [
    "Action",
    "ChannelSettings",
    "Platform",
    "RemoteFarmSettings",
    "RunConfig",
    "TimeoutSettings",
    "ConfigurationError",
    "load_configuration",
    "resolve_config_path",
    "DEFAULT_CONFIG_FILENAME",
    "build_placeholder_configuration",
    "write_placeholder_configuration",
]
