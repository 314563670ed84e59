"""Endpoint selection and binding for the plugin's gRPC server."""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass

import grpc
from loguru import logger

from pluginwire.config.schema import TransportConfig
from pluginwire.utils.exceptions import StartupFailure

SOCKET_FILENAME = "plugin.sock"


@dataclass(frozen=True, slots=True)
class Endpoint:
    """A bound listening endpoint as advertised on the negotiation line."""

    network: str
    address: str
    socket_dir: str | None = None

    @property
    def grpc_target(self) -> str:
        if self.network == "unix":
            return f"unix:{self.address}"
        return self.address

    def cleanup(self) -> None:
        if self.socket_dir:
            shutil.rmtree(self.socket_dir, ignore_errors=True)


def tcp_candidates(config: TransportConfig) -> Iterator[str]:
    """Yield bind addresses: the configured port range, or an ephemeral port."""
    if config.min_port or config.max_port:
        low = config.min_port or 1024
        high = config.max_port or 65535
        for port in range(low, high + 1):
            yield f"{config.host}:{port}"
        return
    yield f"{config.host}:0"


def bind(server: grpc.aio.Server, config: TransportConfig, credentials: grpc.ServerCredentials) -> Endpoint:
    """Attach a secure port to server; raise StartupFailure if nothing binds."""
    if config.network == "unix":
        return _bind_unix(server, config, credentials)
    return _bind_tcp(server, config, credentials)


def _bind_unix(server: grpc.aio.Server, config: TransportConfig, credentials: grpc.ServerCredentials) -> Endpoint:
    base = config.unix_socket_dir
    if base:
        os.makedirs(base, exist_ok=True)
    try:
        socket_dir = tempfile.mkdtemp(prefix="plugin", dir=base)
    except OSError as exc:
        raise StartupFailure(f"Couldn't create a directory for the plugin socket: {exc}", code="BIND_FAILED") from exc
    path = os.path.join(socket_dir, SOCKET_FILENAME)
    try:
        server.add_secure_port(f"unix:{path}", credentials)
    except RuntimeError as exc:
        shutil.rmtree(socket_dir, ignore_errors=True)
        raise StartupFailure(f"Couldn't listen on unix socket {path}: {exc}", code="BIND_FAILED") from exc
    logger.debug("Bound unix socket {}", path)
    return Endpoint(network="unix", address=path, socket_dir=socket_dir)


def _bind_tcp(server: grpc.aio.Server, config: TransportConfig, credentials: grpc.ServerCredentials) -> Endpoint:
    last_error: Exception | None = None
    for address in tcp_candidates(config):
        try:
            port = server.add_secure_port(address, credentials)
        except RuntimeError as exc:
            last_error = exc
            continue
        if port:
            logger.debug("Bound tcp {}:{}", config.host, port)
            return Endpoint(network="tcp", address=f"{config.host}:{port}")
    detail = f": {last_error}" if last_error else ""
    if config.min_port or config.max_port:
        raise StartupFailure(
            f"Couldn't bind plugin TCP listener in port range {config.min_port}-{config.max_port}{detail}",
            code="BIND_FAILED",
        )
    raise StartupFailure(f"Couldn't bind plugin TCP listener on {config.host}{detail}", code="BIND_FAILED")
