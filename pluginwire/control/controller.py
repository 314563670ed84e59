"""Control plane: the host's cooperative shutdown request."""

from __future__ import annotations

import grpc
from google.protobuf import empty_pb2
from loguru import logger

from pluginwire.lifecycle.state import Lifecycle

# plugin.Empty on the host side is wire-identical to google.protobuf.Empty
SERVICE_NAME = "plugin.GRPCController"
SHUTDOWN_METHOD = f"/{SERVICE_NAME}/Shutdown"


class Controller:
    """Serves ``plugin.GRPCController/Shutdown``.

    Acknowledges right away; draining happens on the supervisor's thread.
    """

    def __init__(self, lifecycle: Lifecycle):
        self.lifecycle = lifecycle

    async def Shutdown(self, request: empty_pb2.Empty, context: grpc.aio.ServicerContext) -> empty_pb2.Empty:
        logger.info("Shutdown requested by host ({})", context.peer())
        if not self.lifecycle.request_shutdown("control plane shutdown"):
            logger.debug("Shutdown already in progress ({})", self.lifecycle.state.value)
        return empty_pb2.Empty()

    def generic_handler(self) -> grpc.GenericRpcHandler:
        return grpc.method_handlers_generic_handler(
            SERVICE_NAME,
            {
                "Shutdown": grpc.unary_unary_rpc_method_handler(
                    self.Shutdown,
                    request_deserializer=empty_pb2.Empty.FromString,
                    response_serializer=empty_pb2.Empty.SerializeToString,
                )
            },
        )
