"""Tests for the negotiation record, magic cookie and version negotiation."""

import io

import pytest

from pluginwire.config.schema import HandshakeConfig
from pluginwire.handshake.negotiation import (
    NOT_A_PLUGIN_MESSAGE,
    NegotiationRecord,
    check_magic_cookie,
    describe_startup_crash,
    negotiate_protocol_version,
    parse_negotiation_line,
    report_startup_failure,
    write_negotiation_line,
)
from pluginwire.utils.exceptions import HandshakeError, StartupFailure

CERT = "MIIBkTCB+wIJAKHBfpegPjMCMA0GCSqGSIb3DQEBCwUAMBQxEjAQBgNVBAMMCWxvY2FsaG9zdA"


def test_parse_tcp_grpc_line() -> None:
    record = parse_negotiation_line(f"1|6|tcp|127.0.0.1:51820|grpc|{CERT}\n")
    assert record.handshake_version == 1
    assert record.protocol_version == 6
    assert record.network == "tcp"
    assert record.address == "127.0.0.1:51820"
    assert record.rpc_protocol == "grpc"
    assert record.server_certificate == CERT


def test_line_round_trip() -> None:
    record = NegotiationRecord(1, 6, "unix", "/tmp/plugin1/plugin.sock", "grpc", CERT)
    assert record.to_line() == f"1|6|unix|/tmp/plugin1/plugin.sock|grpc|{CERT}"
    assert parse_negotiation_line(record.to_line()) == record


def test_grpc_record_requires_certificate() -> None:
    with pytest.raises(HandshakeError):
        NegotiationRecord(1, 6, "tcp", "127.0.0.1:1234", "grpc", None)
    with pytest.raises(HandshakeError):
        parse_negotiation_line("1|6|tcp|127.0.0.1:1234|grpc|")


def test_legacy_short_line_defaults_to_netrpc() -> None:
    record = parse_negotiation_line("1|5|tcp|127.0.0.1:1234")
    assert record.rpc_protocol == "netrpc"
    assert record.server_certificate is None
    assert record.to_line() == "1|5|tcp|127.0.0.1:1234|netrpc|"


@pytest.mark.parametrize(
    "line",
    [
        "",
        "This binary is a plugin.",
        "1|6|tcp",
        "x|6|tcp|127.0.0.1:1|grpc|abc",
        "1|6|udp|127.0.0.1:1|grpc|abc",
        "1|6|tcp|127.0.0.1:1|http|abc",
        "1|6|tcp|127.0.0.1:1|grpc|abc|extra",
    ],
)
def test_malformed_lines_rejected(line: str) -> None:
    with pytest.raises(HandshakeError):
        parse_negotiation_line(line)


def test_record_fields_cannot_break_the_line() -> None:
    with pytest.raises(HandshakeError):
        NegotiationRecord(1, 6, "unix", "/tmp/a|b.sock", "grpc", CERT)
    with pytest.raises(HandshakeError):
        NegotiationRecord(1, 6, "tcp", "127.0.0.1:1", "grpc", "abc\ndef")


def test_write_emits_exactly_one_line() -> None:
    out = io.StringIO()
    record = NegotiationRecord(1, 6, "tcp", "127.0.0.1:1234", "grpc", CERT)
    write_negotiation_line(record, out)
    assert out.getvalue() == record.to_line() + "\n"
    assert out.getvalue().count("\n") == 1


def test_magic_cookie() -> None:
    cfg = HandshakeConfig()
    check_magic_cookie(cfg, {cfg.magic_cookie_key: cfg.magic_cookie_value})
    with pytest.raises(StartupFailure) as exc_info:
        check_magic_cookie(cfg, {})
    assert exc_info.value.message == NOT_A_PLUGIN_MESSAGE
    with pytest.raises(StartupFailure):
        check_magic_cookie(cfg, {cfg.magic_cookie_key: "wrong"})


@pytest.mark.parametrize(
    ("supported", "host", "expected"),
    [
        ([6], [], 6),
        ([5, 6], [5], 5),
        ([4, 5, 6], [5, 6, 7], 6),
        ([6], [4, 5], 6),
    ],
)
def test_negotiate_protocol_version(supported, host, expected) -> None:
    assert negotiate_protocol_version(supported, host) == expected


def test_negotiate_needs_a_supported_version() -> None:
    with pytest.raises(StartupFailure):
        negotiate_protocol_version([], [6])


def test_startup_crash_is_described_on_one_line() -> None:
    exc = RuntimeError("could not load\nlibfoo.so:   missing symbol")
    assert describe_startup_crash(exc) == "The plugin failed to start: RuntimeError: could not load libfoo.so: missing symbol"
    assert describe_startup_crash(KeyError()) == "The plugin failed to start: KeyError"


def test_startup_crash_description_redacts_secrets() -> None:
    line = describe_startup_crash(ValueError("password=hunter2 rejected"))
    assert "hunter2" not in line


def test_report_startup_failure_flushes_one_line() -> None:
    out = io.StringIO()
    report_startup_failure("Missing provider credentials\n", out)
    assert out.getvalue() == "Missing provider credentials\n"
