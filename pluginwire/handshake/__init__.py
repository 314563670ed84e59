"""Plugin startup handshake."""

from .coordinator import PluginServer, run
from .negotiation import (
    NOT_A_PLUGIN_MESSAGE,
    NegotiationRecord,
    check_magic_cookie,
    negotiate_protocol_version,
    parse_negotiation_line,
    write_negotiation_line,
)

__all__ = [
    "NOT_A_PLUGIN_MESSAGE",
    "NegotiationRecord",
    "PluginServer",
    "check_magic_cookie",
    "negotiate_protocol_version",
    "parse_negotiation_line",
    "run",
    "write_negotiation_line",
]
