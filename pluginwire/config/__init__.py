"""Configuration module for pluginwire."""

from pluginwire.config.loader import apply_host_environment, get_config_path, load_config
from pluginwire.config.schema import PluginConfig

__all__ = [
    "PluginConfig",
    "load_config",
    "get_config_path",
    "apply_host_environment",
]
