"""Configuration loading utilities."""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from loguru import logger

from pluginwire.config.schema import PluginConfig
from pluginwire.utils.exceptions import StartupFailure

CONFIG_PATH_ENV = "PLUGINWIRE_CONFIG"

# Variables the host sets on the plugin's environment.
ENV_CLIENT_CERT = "PLUGIN_CLIENT_CERT"
ENV_PROTOCOL_VERSIONS = "PLUGIN_PROTOCOL_VERSIONS"
ENV_MIN_PORT = "PLUGIN_MIN_PORT"
ENV_MAX_PORT = "PLUGIN_MAX_PORT"
ENV_UNIX_SOCKET_DIR = "PLUGIN_UNIX_SOCKET_DIR"


def get_config_path(environ: Mapping[str, str] | None = None) -> Path | None:
    """Get the configuration file path, if one is configured."""
    env = os.environ if environ is None else environ
    raw = (env.get(CONFIG_PATH_ENV) or "").strip()
    return Path(raw).expanduser() if raw else None


def load_config(config_path: Path | None = None, environ: Mapping[str, str] | None = None) -> PluginConfig:
    """
    Load configuration from file (optional) and the inherited host environment.

    Args:
        config_path: Optional path to a JSON config file.
        environ: Environment to read host variables from. Defaults to os.environ.

    Returns:
        Loaded configuration object.
    """
    env = os.environ if environ is None else environ
    path = config_path or get_config_path(env)
    data: dict[str, Any] = {}
    if path is not None and path.exists():
        try:
            with open(path) as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError("top-level value must be an object")
            data = convert_keys(raw)
        except (json.JSONDecodeError, ValueError) as e:
            raise StartupFailure(
                f"Failed to load plugin config from {path}: {e}. Fix the file or remove it.",
                code="CONFIG_INVALID",
            ) from e
    try:
        cfg = PluginConfig(**data)
    except ValueError as e:
        raise StartupFailure(f"Invalid plugin configuration: {e}", code="CONFIG_INVALID") from e
    apply_host_environment(cfg, env)
    return cfg


def apply_host_environment(cfg: PluginConfig, environ: Mapping[str, str]) -> None:
    """Overlay the PLUGIN_* variables inherited from the host onto cfg (in place)."""
    client_cert = environ.get(ENV_CLIENT_CERT)
    if client_cert is not None:
        cfg.handshake.client_cert = client_cert or None

    versions_raw = (environ.get(ENV_PROTOCOL_VERSIONS) or "").strip()
    if versions_raw:
        versions: list[int] = []
        for part in versions_raw.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                versions.append(int(part))
            except ValueError:
                logger.warning("Ignoring invalid protocol version {!r} from {}", part, ENV_PROTOCOL_VERSIONS)
        cfg.handshake.host_protocol_versions = versions

    cfg.transport.min_port = _port_from_env(environ, ENV_MIN_PORT, cfg.transport.min_port)
    cfg.transport.max_port = _port_from_env(environ, ENV_MAX_PORT, cfg.transport.max_port)
    if cfg.transport.min_port and cfg.transport.max_port and cfg.transport.min_port > cfg.transport.max_port:
        raise StartupFailure(
            f"{ENV_MIN_PORT} ({cfg.transport.min_port}) is greater than {ENV_MAX_PORT} ({cfg.transport.max_port})",
            code="CONFIG_INVALID",
        )

    socket_dir = (environ.get(ENV_UNIX_SOCKET_DIR) or "").strip()
    if socket_dir:
        cfg.transport.unix_socket_dir = socket_dir


def _port_from_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        port = int(raw)
    except ValueError as e:
        raise StartupFailure(f"Couldn't parse {name}={raw!r} as a port number", code="CONFIG_INVALID") from e
    if not 0 <= port <= 65535:
        raise StartupFailure(f"{name}={port} is not a valid port number", code="CONFIG_INVALID")
    return port


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)
