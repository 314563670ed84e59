"""The single-line negotiation record exchanged over stdout.

Format: ``CORE|PROTOCOL|NETWORK|ADDRESS|RPC|CERT``, for example
``1|6|unix|/tmp/plugin123/plugin.sock|grpc|MIIB...``. Older hosts and plugins
omit the last one or two fields; the parser accepts that, the writer always
emits all six.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TextIO

from loguru import logger

from pluginwire.config.schema import HandshakeConfig
from pluginwire.utils.exceptions import HandshakeError, StartupFailure, sanitize_error_message

NETWORKS = ("unix", "tcp")
RPC_PROTOCOLS = ("netrpc", "grpc")

NOT_A_PLUGIN_MESSAGE = (
    "This binary is a plugin. These are not meant to be executed directly.\n"
    "Please execute the program that consumes these plugins, which will\n"
    "load any plugins automatically"
)


@dataclass(frozen=True, slots=True)
class NegotiationRecord:
    """What the host needs to dial us: versions, endpoint and server certificate."""

    handshake_version: int
    protocol_version: int
    network: str
    address: str
    rpc_protocol: str = "grpc"
    server_certificate: str | None = None

    def __post_init__(self) -> None:
        if self.network not in NETWORKS:
            raise HandshakeError(f"unsupported network {self.network!r}")
        if self.rpc_protocol not in RPC_PROTOCOLS:
            raise HandshakeError(f"unsupported rpc protocol {self.rpc_protocol!r}")
        if not self.address:
            raise HandshakeError("negotiation record needs an address")
        if self.rpc_protocol == "grpc" and not self.server_certificate:
            raise HandshakeError("a grpc negotiation record must carry the server certificate")
        for name in ("address", "server_certificate"):
            value = getattr(self, name) or ""
            if "|" in value or "\n" in value or "\r" in value:
                raise HandshakeError(f"{name} may not contain '|' or line breaks")

    def to_line(self) -> str:
        return "|".join(
            [
                str(self.handshake_version),
                str(self.protocol_version),
                self.network,
                self.address,
                self.rpc_protocol,
                self.server_certificate or "",
            ]
        )


def parse_negotiation_line(line: str) -> NegotiationRecord:
    """Parse a line the way a host would; raises HandshakeError on anything malformed."""
    text = line.strip()
    parts = text.split("|")
    if len(parts) < 4 or len(parts) > 6:
        raise HandshakeError(f"not a valid negotiation record: {text[:80]!r}")
    try:
        core = int(parts[0])
        protocol = int(parts[1])
    except ValueError as exc:
        raise HandshakeError(f"not a valid negotiation record: bad version field ({exc})") from exc
    rpc = parts[4] if len(parts) > 4 and parts[4] else "netrpc"
    cert = parts[5] if len(parts) > 5 and parts[5] else None
    return NegotiationRecord(
        handshake_version=core,
        protocol_version=protocol,
        network=parts[2],
        address=parts[3],
        rpc_protocol=rpc,
        server_certificate=cert,
    )


def check_magic_cookie(config: HandshakeConfig, environ: Mapping[str, str] | None = None) -> None:
    """Refuse to start unless launched by a host that set the cookie."""
    env = os.environ if environ is None else environ
    if env.get(config.magic_cookie_key) != config.magic_cookie_value:
        raise StartupFailure(NOT_A_PLUGIN_MESSAGE, code="NOT_LAUNCHED_BY_HOST")


def negotiate_protocol_version(supported: Iterable[int], host_versions: Iterable[int] = ()) -> int:
    """Highest version both sides speak; the plugin's highest when there is no overlap."""
    ours = sorted(set(supported), reverse=True)
    if not ours:
        raise StartupFailure("The plugin supports no protocol versions", code="NO_PROTOCOL_VERSION")
    default = ours[0]
    theirs = set(host_versions)
    if not theirs:
        return default
    for version in ours:
        if version in theirs:
            return version
    logger.warning(
        "No protocol version in common (host {}, plugin {}); offering {}",
        sorted(theirs),
        ours,
        default,
    )
    return default


def write_negotiation_line(record: NegotiationRecord, stream: TextIO | None = None) -> str:
    """Write the record as the one and only stdout line."""
    out = stream or sys.stdout
    line = record.to_line()
    out.write(line + "\n")
    out.flush()
    return line


def report_startup_failure(message: str, stream: TextIO | None = None) -> None:
    """Write the diagnosis the host shows the user when no record will follow."""
    out = stream or sys.stdout
    out.write(message.rstrip("\n") + "\n")
    out.flush()


def describe_startup_crash(exc: BaseException) -> str:
    """One sanitized line for an unexpected exception raised before the record."""
    detail = " ".join(sanitize_error_message(str(exc)).split())
    text = f"{type(exc).__name__}: {detail}" if detail else type(exc).__name__
    return f"The plugin failed to start: {text}"
