"""Control plane RPC surface."""

from .controller import SERVICE_NAME, SHUTDOWN_METHOD, Controller

__all__ = ["Controller", "SERVICE_NAME", "SHUTDOWN_METHOD"]
