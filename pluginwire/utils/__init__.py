"""Utility functions for pluginwire."""

from pluginwire.utils.exceptions import (
    CodecMismatch,
    ErrorCategory,
    HandshakeError,
    LifecycleViolation,
    PluginWireError,
    StartupFailure,
    TransportFault,
    classify_exception,
    sanitize_error_message,
)

__all__ = [
    "PluginWireError",
    "StartupFailure",
    "HandshakeError",
    "TransportFault",
    "CodecMismatch",
    "LifecycleViolation",
    "ErrorCategory",
    "classify_exception",
    "sanitize_error_message",
]
