"""
Exception hierarchy and error handling utilities for pluginwire.

Provides:
- Custom exception classes with error codes
- Error categorization (fatal startup, transport, codec, lifecycle)
- Safe error message formatting (no sensitive data leak)
- Mapping of exceptions onto gRPC status codes
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any

import grpc


class ErrorCategory(Enum):
    """Error categories for classification."""
    STARTUP = "startup"
    TRANSPORT = "transport"
    CODEC = "codec"
    LIFECYCLE = "lifecycle"
    DOMAIN = "domain"


class PluginWireError(Exception):
    """Base exception for all pluginwire errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.DOMAIN,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class StartupFailure(PluginWireError):
    """Raised before the negotiation line is written; fatal to the process.

    The message is shown verbatim to the user by the host, so it must be the
    whole diagnosis on its own.
    """

    def __init__(self, message: str, code: str = "STARTUP_FAILURE", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, category=ErrorCategory.STARTUP, details=details)


class HandshakeError(StartupFailure):
    """Negotiation record could not be built or parsed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, code="HANDSHAKE_ERROR", details=details)


class TransportFault(PluginWireError):
    """TLS or connection level failure, isolated to one connection."""

    def __init__(self, message: str, peer: str | None = None):
        details = {"peer": peer} if peer else {}
        super().__init__(message, code="TRANSPORT_FAULT", category=ErrorCategory.TRANSPORT, details=details)


class CodecMismatch(PluginWireError):
    """Payload shape disagrees with the type descriptor."""

    def __init__(self, message: str, path: str = ""):
        details = {"path": path} if path else {}
        text = f"{path}: {message}" if path else message
        super().__init__(text, code="CODEC_MISMATCH", category=ErrorCategory.CODEC, details=details)
        self.reason = message
        self.path = path


class LifecycleViolation(PluginWireError):
    """A call was refused or abandoned because the process is shutting down."""

    def __init__(self, message: str, state: str | None = None):
        details = {"state": state} if state else {}
        super().__init__(message, code="LIFECYCLE_VIOLATION", category=ErrorCategory.LIFECYCLE, details=details)


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----", re.DOTALL),
    re.compile(r"[a-zA-Z0-9]{32,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory, grpc.StatusCode]:
    """
    Classify an exception raised while serving a call.

    Returns:
        Tuple of (error_code, category, grpc_status)
    """
    if isinstance(exc, CodecMismatch):
        return exc.code, exc.category, grpc.StatusCode.INVALID_ARGUMENT

    if isinstance(exc, LifecycleViolation):
        return exc.code, exc.category, grpc.StatusCode.UNAVAILABLE

    if isinstance(exc, TransportFault):
        return exc.code, exc.category, grpc.StatusCode.UNAUTHENTICATED

    if isinstance(exc, PluginWireError):
        return exc.code, exc.category, grpc.StatusCode.INTERNAL

    if isinstance(exc, NotImplementedError):
        return "NOT_IMPLEMENTED", ErrorCategory.DOMAIN, grpc.StatusCode.UNIMPLEMENTED

    if isinstance(exc, TimeoutError):
        return "TIMEOUT", ErrorCategory.DOMAIN, grpc.StatusCode.DEADLINE_EXCEEDED

    if isinstance(exc, (json.JSONDecodeError, ValueError, TypeError, KeyError)):
        return "INVALID_VALUE", ErrorCategory.DOMAIN, grpc.StatusCode.INVALID_ARGUMENT

    return "INTERNAL_ERROR", ErrorCategory.DOMAIN, grpc.StatusCode.INTERNAL
