"""mTLS gRPC server hosting health, control and domain services."""

from __future__ import annotations

import asyncio
import concurrent.futures
from collections.abc import Iterable

import grpc
from grpc_health.v1 import health, health_pb2, health_pb2_grpc
from loguru import logger

from pluginwire.config.schema import TransportConfig
from pluginwire.control.controller import Controller
from pluginwire.crypto.certificate import TrustMaterial
from pluginwire.domain.service import DomainService
from pluginwire.lifecycle.state import Lifecycle, LifecycleState
from pluginwire.transport.listener import Endpoint, bind
from pluginwire.utils.exceptions import StartupFailure

# go-plugin hosts probe the "plugin" service; "" is the overall server status
HEALTH_SERVICE_NAMES = ("plugin", "")


class TransportServer:
    """Owns the grpc.aio server for one plugin process."""

    def __init__(self, config: TransportConfig, trust: TrustMaterial, lifecycle: Lifecycle):
        self.config = config
        self.trust = trust
        self.lifecycle = lifecycle
        self.health = health.aio.HealthServicer()
        self.endpoint: Endpoint | None = None
        self._server: grpc.aio.Server | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def credentials(self) -> grpc.ServerCredentials:
        server = self.trust.server
        return grpc.ssl_server_credentials(
            [(server.private_key_pem, server.certificate_pem)],
            root_certificates=self.trust.client_certificate_pem,
            require_client_auth=self.trust.mutual,
        )

    def _options(self) -> list[tuple[str, int]]:
        limit = self.config.max_message_bytes
        return [
            ("grpc.max_receive_message_length", limit),
            ("grpc.max_send_message_length", limit),
            ("grpc.keepalive_time_ms", 10000),
            ("grpc.keepalive_timeout_ms", 5000),
            ("grpc.keepalive_permit_without_calls", 1),
            ("grpc.http2.min_ping_interval_without_data_ms", 5000),
        ]

    async def start(self, services: Iterable[DomainService], controller: Controller) -> Endpoint:
        """Register every surface, bind and start; health reports SERVING once this returns."""
        self._loop = asyncio.get_running_loop()
        server = grpc.aio.server(options=self._options())
        health_pb2_grpc.add_HealthServicer_to_server(self.health, server)
        handlers = [controller.generic_handler()]
        seen: set[str] = set()
        for service in services:
            if service.name in seen:
                raise StartupFailure(f"Two services are both named {service.name}", code="INVALID_SERVICE")
            seen.add(service.name)
            handlers.append(service.generic_handler(self.lifecycle, require_peer_certificate=self.trust.mutual))
            logger.debug("Registered service {} ({})", service.name, ", ".join(service.method_names) or "no methods")
        server.add_generic_rpc_handlers(tuple(handlers))

        endpoint = bind(server, self.config, self.credentials())
        await server.start()
        self._server = server
        self.endpoint = endpoint
        for name in HEALTH_SERVICE_NAMES:
            await self.health.set(name, health_pb2.HealthCheckResponse.SERVING)
        self.lifecycle.add_listener(self._on_transition)
        logger.info("gRPC server listening on {} {} (mTLS={})", endpoint.network, endpoint.address, self.trust.mutual)
        return endpoint

    def _on_transition(self, old: LifecycleState, new: LifecycleState, reason: str) -> None:
        if new not in (LifecycleState.DRAINING, LifecycleState.TERMINATED) or self._loop is None:
            return
        if self._loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(self._set_not_serving(), self._loop)
        future.add_done_callback(_log_health_update_failure)

    async def _set_not_serving(self) -> None:
        for name in HEALTH_SERVICE_NAMES:
            await self.health.set(name, health_pb2.HealthCheckResponse.NOT_SERVING)

    async def stop(self, grace: float | None = None) -> None:
        server, self._server = self._server, None
        if server is not None:
            await self._set_not_serving()
            await server.stop(grace)
            logger.debug("gRPC server stopped")
        if self.endpoint is not None:
            self.endpoint.cleanup()


def _log_health_update_failure(future: concurrent.futures.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.opt(exception=exc).error("Could not mark health NOT_SERVING: {}", exc)
