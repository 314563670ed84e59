"""Configuration schema using Pydantic.

Defaults match what a Terraform-style host expects; the host's inherited
PLUGIN_* variables are overlaid by the loader.
"""

import os
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Terraform's well-known handshake cookie
DEFAULT_MAGIC_COOKIE_KEY = "TF_PLUGIN_MAGIC_COOKIE"
DEFAULT_MAGIC_COOKIE_VALUE = "d602bf8f470bc67ca7faa0386276bbdd4330efaf76d1a219cb4d6991ca9872b2"


class HandshakeConfig(BaseModel):
    """Negotiation line and pre-flight settings."""
    core_protocol_version: int = 1  # first field of the negotiation line, fixed by the host
    protocol_versions: list[int] = Field(default_factory=lambda: [6])
    magic_cookie_key: str = DEFAULT_MAGIC_COOKIE_KEY
    magic_cookie_value: str = DEFAULT_MAGIC_COOKIE_VALUE
    host_protocol_versions: list[int] = Field(default_factory=list)  # from PLUGIN_PROTOCOL_VERSIONS
    client_cert: str | None = None  # from PLUGIN_CLIENT_CERT

    @field_validator("protocol_versions")
    @classmethod
    def _non_empty(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("at least one protocol version must be supported")
        return value


class TransportConfig(BaseModel):
    """Listening endpoint."""
    network: Literal["unix", "tcp"] = "tcp" if os.name == "nt" else "unix"
    host: str = "127.0.0.1"
    min_port: int = 0  # PLUGIN_MIN_PORT
    max_port: int = 0  # PLUGIN_MAX_PORT
    unix_socket_dir: str | None = None  # PLUGIN_UNIX_SOCKET_DIR
    max_message_bytes: int = 256 * 1024 * 1024
    common_name: str = "localhost"


class LifecycleConfig(BaseModel):
    """Drain and orphan-watch behaviour."""
    drain_grace_seconds: float = 5.0
    orphan_watch: bool = True
    orphan_poll_interval_seconds: float = 1.0
    stop_grace_seconds: float = 0.5


class LoggingConfig(BaseModel):
    """Log sinks; stdout is reserved for the negotiation line."""
    level: str = "INFO"
    file: str | None = None


class PluginConfig(BaseSettings):
    """Root configuration for pluginwire."""
    handshake: HandshakeConfig = Field(default_factory=HandshakeConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="PLUGINWIRE_",
        env_nested_delimiter="__",
    )
