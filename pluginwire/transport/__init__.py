"""Listener binding and the gRPC server."""

from .listener import Endpoint, bind, tcp_candidates
from .server import HEALTH_SERVICE_NAMES, TransportServer

__all__ = ["Endpoint", "HEALTH_SERVICE_NAMES", "TransportServer", "bind", "tcp_candidates"]
