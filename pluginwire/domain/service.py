"""Domain RPC registration and dispatch.

Plugin authors register unary handlers on a DomainService. Payloads pass
through as raw bytes unless (de)serializers are given; ``register_typed``
adds codec translation for handlers that take and return dynamic values.
Every call is tracked in the lifecycle's in-flight set.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import grpc
from loguru import logger

from pluginwire.codec.dynamic import Format, decode, encode
from pluginwire.codec.message import parse_message, serialize_message
from pluginwire.codec.types import TypeDescriptor
from pluginwire.lifecycle.state import Lifecycle
from pluginwire.utils.exceptions import (
    LifecycleViolation,
    TransportFault,
    classify_exception,
    sanitize_error_message,
)

Handler = Callable[[Any, Any], Any]


@dataclass(slots=True)
class _Method:
    name: str
    handler: Handler
    request_deserializer: Callable[[bytes], Any] | None = None
    response_serializer: Callable[[Any], bytes] | None = None


class DomainService:
    """A named gRPC service whose methods are plain Python callables.

    Handlers are ``fn(request, context)``; coroutine functions run on the event
    loop, plain functions in a worker thread.
    """

    def __init__(self, name: str):
        service_name = str(name).strip()
        if not service_name:
            raise ValueError("service name is required")
        self.name = service_name
        self._methods: dict[str, _Method] = {}
        self._lifecycle: Lifecycle | None = None

    @property
    def method_names(self) -> list[str]:
        return list(self._methods)

    def _bound_lifecycle(self) -> Lifecycle:
        if self._lifecycle is None:
            raise LifecycleViolation(f"service {self.name} is not being served")
        return self._lifecycle

    def commit_point(self, name: str):
        """Context manager guarding one side effect; see CommitGate."""
        return self._bound_lifecycle().commit_point(name)

    def async_commit_point(self, name: str):
        return self._bound_lifecycle().async_commit_point(name)

    def full_method(self, method: str) -> str:
        return f"/{self.name}/{method}"

    def register(
        self,
        method: str,
        handler: Handler,
        *,
        request_deserializer: Callable[[bytes], Any] | None = None,
        response_serializer: Callable[[Any], bytes] | None = None,
    ) -> None:
        method_name = str(method).strip()
        if not method_name:
            raise ValueError("rpc method name is required")
        if not callable(handler):
            raise ValueError("rpc handler must be callable")
        if method_name in self._methods:
            raise ValueError(f"rpc method already registered: {method_name}")
        self._methods[method_name] = _Method(method_name, handler, request_deserializer, response_serializer)

    def method(self, name: str | None = None, **kwargs: Any) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""

        def decorator(fn: Handler) -> Handler:
            self.register(name or fn.__name__, fn, **kwargs)
            return fn

        return decorator

    def register_typed(
        self,
        method: str,
        handler: Callable[[Any], Any],
        request_type: TypeDescriptor,
        response_type: TypeDescriptor,
    ) -> None:
        """Register a handler that takes and returns plain values.

        Request and response travel as DynamicValue messages; the response is
        always msgpack encoded.
        """
        is_async = inspect.iscoroutinefunction(handler)

        async def _typed(request: bytes, _context: Any) -> bytes:
            value = decode(parse_message(request), request_type)
            if is_async:
                result = await handler(value)
            else:
                result = await asyncio.to_thread(handler, value)
            return serialize_message(encode(result, response_type, Format.MSGPACK))

        self.register(method, _typed)

    def generic_handler(self, lifecycle: Lifecycle, *, require_peer_certificate: bool = False) -> grpc.GenericRpcHandler:
        self._lifecycle = lifecycle
        handlers = {
            m.name: grpc.unary_unary_rpc_method_handler(
                self._wrap(m, lifecycle, require_peer_certificate),
                request_deserializer=m.request_deserializer,
                response_serializer=m.response_serializer,
            )
            for m in self._methods.values()
        }
        return grpc.method_handlers_generic_handler(self.name, handlers)

    def _wrap(self, method: _Method, lifecycle: Lifecycle, require_peer_certificate: bool):
        full_method = self.full_method(method.name)
        is_async = inspect.iscoroutinefunction(method.handler)

        async def _call(request: Any, context: grpc.aio.ServicerContext) -> Any:
            peer = context.peer()
            logger.debug("{} from {}", full_method, peer)
            if require_peer_certificate and not _has_peer_certificate(context):
                fault = TransportFault("client certificate required", peer=peer)
                code, category, status = classify_exception(fault)
                logger.warning("Rejecting {} [{}/{}] from {}: {}", full_method, category.value, code, peer, fault.message)
                await context.abort(status, fault.message)
            try:
                record = lifecycle.begin_call(full_method)
            except LifecycleViolation as exc:
                logger.info("Refusing {}: {}", full_method, exc.message)
                await context.abort(grpc.StatusCode.UNAVAILABLE, exc.message)
            try:
                if is_async:
                    return await method.handler(request, context)
                return await asyncio.to_thread(method.handler, request, context)
            except grpc.aio.AbortError:
                raise
            except Exception as exc:
                code, category, status = classify_exception(exc)
                message = sanitize_error_message(str(exc))
                if status is grpc.StatusCode.INTERNAL:
                    logger.exception("{} failed [{}]: {}", full_method, code, message)
                else:
                    logger.warning("{} failed [{}/{}]: {}", full_method, category.value, code, message)
                await context.abort(status, message)
            finally:
                lifecycle.end_call(record)

        return _call


def _has_peer_certificate(context: grpc.aio.ServicerContext) -> bool:
    auth = context.auth_context() or {}
    return bool(auth.get("x509_pem_cert") or auth.get("x509_common_name"))
