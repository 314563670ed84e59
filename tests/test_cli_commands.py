"""Tests for the diagnostic CLI commands."""

import pytest
from typer.testing import CliRunner

from pluginwire import __version__
from pluginwire.cli.commands import app, load_target
from pluginwire.crypto.certificate import encode_handshake_certificate, generate_identity
from pluginwire.utils.exceptions import StartupFailure

runner = CliRunner()


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_parse_handshake_shows_fields() -> None:
    cert = encode_handshake_certificate(generate_identity().certificate_der)
    result = runner.invoke(app, ["parse-handshake", f"1|6|tcp|127.0.0.1:51820|grpc|{cert}"])
    assert result.exit_code == 0
    assert "127.0.0.1:51820" in result.stdout
    assert "CN=localhost" in result.stdout


def test_parse_handshake_rejects_garbage() -> None:
    result = runner.invoke(app, ["parse-handshake", "hello"])
    assert result.exit_code == 1
    assert "not a valid negotiation record" in result.stdout


def test_describe_type() -> None:
    result = runner.invoke(app, ["describe-type", '["map",["list","string"]]'])
    assert result.exit_code == 0
    assert "map(list(string))" in result.stdout


def test_describe_type_rejects_unknown_kind() -> None:
    result = runner.invoke(app, ["describe-type", '"dynamic"'])
    assert result.exit_code == 1


def test_load_target_resolves_services(tmp_path, monkeypatch) -> None:
    (tmp_path / "fake_plugin.py").write_text(
        "from pluginwire.domain import DomainService\n"
        "one = DomainService('a.A')\n"
        "many = [one, DomainService('b.B')]\n"
        "def factory():\n"
        "    return DomainService('c.C')\n"
        "not_a_service = 42\n"
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    assert [s.name for s in load_target("fake_plugin:one")] == ["a.A"]
    assert [s.name for s in load_target("fake_plugin:many")] == ["a.A", "b.B"]
    assert [s.name for s in load_target("fake_plugin:factory")] == ["c.C"]
    for bad in ("fake_plugin", "fake_plugin:missing", "fake_plugin:not_a_service", "no_such_module:x"):
        with pytest.raises(StartupFailure):
            load_target(bad)


def test_load_target_reports_a_failing_factory(tmp_path, monkeypatch) -> None:
    (tmp_path / "broken_plugin.py").write_text(
        "def factory():\n"
        "    raise RuntimeError('database unreachable')\n"
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    with pytest.raises(StartupFailure) as exc_info:
        load_target("broken_plugin:factory")
    assert exc_info.value.code == "INVALID_TARGET"
    assert "database unreachable" in exc_info.value.message


def test_load_target_reports_a_module_that_fails_to_import(tmp_path, monkeypatch) -> None:
    (tmp_path / "crashing_plugin.py").write_text("raise ValueError('bad module state')\n")
    monkeypatch.syspath_prepend(str(tmp_path))
    with pytest.raises(StartupFailure) as exc_info:
        load_target("crashing_plugin:service")
    assert "bad module state" in exc_info.value.message


def test_serve_reports_a_failing_factory(tmp_path, monkeypatch) -> None:
    (tmp_path / "exploding_plugin.py").write_text(
        "def factory():\n"
        "    raise RuntimeError('boom')\n"
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    result = runner.invoke(app, ["serve", "exploding_plugin:factory"])
    assert result.exit_code == 1
    assert "exploding_plugin:factory raised RuntimeError: boom" in result.output
