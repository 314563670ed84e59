"""Startup sequence: pre-flight, TLS, bind, emit the negotiation line, serve until terminated."""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import NoReturn, TextIO

from loguru import logger

from pluginwire.config.loader import load_config
from pluginwire.config.schema import PluginConfig
from pluginwire.control.controller import Controller
from pluginwire.crypto.certificate import build_trust_material
from pluginwire.domain.service import DomainService
from pluginwire.handshake.negotiation import (
    NegotiationRecord,
    check_magic_cookie,
    describe_startup_crash,
    negotiate_protocol_version,
    report_startup_failure,
    write_negotiation_line,
)
from pluginwire.lifecycle.state import Lifecycle, LifecycleState
from pluginwire.lifecycle.supervisor import Supervisor
from pluginwire.logging_utils import configure_logging
from pluginwire.transport.server import TransportServer
from pluginwire.utils.exceptions import StartupFailure

Preflight = Callable[[PluginConfig], None]


def _as_services(services: DomainService | Iterable[DomainService]) -> list[DomainService]:
    if isinstance(services, DomainService):
        return [services]
    result = list(services)
    for service in result:
        if not isinstance(service, DomainService):
            raise StartupFailure(f"Not a DomainService: {service!r}", code="INVALID_SERVICE")
    return result


class PluginServer:
    """One plugin process: owns the Lifecycle, Supervisor and TransportServer."""

    def __init__(
        self,
        services: DomainService | Iterable[DomainService],
        config: PluginConfig | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        stdout: TextIO | None = None,
        getppid: Callable[[], int] = os.getppid,
        install_signals: bool = True,
        preflight: Sequence[Preflight] = (),
    ):
        self.services = _as_services(services)
        self.environ = os.environ if environ is None else environ
        self.config = config
        self.stdout = stdout
        self.preflight = tuple(preflight)
        self.lifecycle = Lifecycle()
        self.record: NegotiationRecord | None = None
        self.transport: TransportServer | None = None
        self.supervisor: Supervisor | None = None
        self._getppid = getppid
        self._install_signals = install_signals
        self._loop: asyncio.AbstractEventLoop | None = None
        self._terminated: asyncio.Event | None = None

    async def start(self) -> NegotiationRecord:
        """Run every startup step up to and including the negotiation line.

        Raises StartupFailure for anything that prevents the line being written.
        """
        self._loop = asyncio.get_running_loop()
        self._terminated = asyncio.Event()
        cfg = self.config or load_config(environ=self.environ)
        self.config = cfg

        check_magic_cookie(cfg.handshake, self.environ)
        for check in self.preflight:
            check(cfg)

        version = negotiate_protocol_version(cfg.handshake.protocol_versions, cfg.handshake.host_protocol_versions)
        logger.debug("Negotiated protocol version {}", version)
        trust = build_trust_material(cfg.handshake.client_cert, cfg.transport.common_name)

        self.supervisor = Supervisor(self.lifecycle, cfg.lifecycle, on_terminate=self._on_terminate, getppid=self._getppid)
        self.supervisor.start()
        if self._install_signals:
            self.supervisor.install_signal_handlers(self._loop)

        self.transport = TransportServer(cfg.transport, trust, self.lifecycle)
        try:
            endpoint = await self.transport.start(self.services, Controller(self.lifecycle))
            record = NegotiationRecord(
                handshake_version=cfg.handshake.core_protocol_version,
                protocol_version=version,
                network=endpoint.network,
                address=endpoint.address,
                rpc_protocol="grpc",
                server_certificate=trust.handshake_certificate,
            )
            write_negotiation_line(record, self.stdout)
        except Exception:
            await self.transport.stop(0)
            self.supervisor.stop()
            raise
        self.record = record
        self.lifecycle.mark_serving()
        logger.info("Plugin serving {} on {} (protocol {})", [s.name for s in self.services], endpoint.address, version)
        return record

    def _on_terminate(self, reason: str) -> None:
        loop, event = self._loop, self._terminated
        if loop is None or event is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(event.set)

    async def wait_terminated(self) -> str:
        if self._terminated is None:
            raise RuntimeError("PluginServer.start() has not been called")
        await self._terminated.wait()
        return self.lifecycle.reason or ""

    async def stop(self) -> None:
        """Tear down after TERMINATED; waits for any active commit point first."""
        cfg = self.config or PluginConfig()
        if self.lifecycle.state is not LifecycleState.TERMINATED:
            self.lifecycle.terminate("server stopped")
        if self.supervisor is not None:
            self.supervisor.stop()
        await asyncio.to_thread(self.lifecycle.commits.wait_released, cfg.lifecycle.drain_grace_seconds)
        if self.transport is not None:
            await self.transport.stop(cfg.lifecycle.stop_grace_seconds)

    async def serve(self) -> str:
        """start(), block until TERMINATED, stop(); returns the termination reason."""
        await self.start()
        try:
            reason = await self.wait_terminated()
        finally:
            await self.stop()
        logger.info("Plugin exiting: {}", reason)
        return reason


def run(
    services: DomainService | Iterable[DomainService],
    config: PluginConfig | None = None,
    preflight: Sequence[Preflight] = (),
) -> NoReturn:
    """Process entry point for a plugin binary. Never returns.

    Whatever stops startup before the negotiation line ends as one stdout line
    for the host to show the user, then exit status 1.
    """
    configure_logging(config.logging if config else None)
    server: PluginServer | None = None
    try:
        if config is None:
            config = load_config()
            configure_logging(config.logging)
        server = PluginServer(services, config, preflight=preflight)
        asyncio.run(server.serve())
    except StartupFailure as exc:
        logger.error("Startup failed [{}]: {}", exc.code, exc.message)
        report_startup_failure(exc.message)
        sys.exit(1)
    except Exception as exc:
        if server is not None and server.record is not None:
            # stdout already carries the record; the host reads nothing else there
            logger.exception("Plugin crashed while serving")
            sys.exit(1)
        logger.exception("Startup failed")
        report_startup_failure(describe_startup_crash(exc))
        sys.exit(1)
    sys.exit(0)
