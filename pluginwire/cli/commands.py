"""CLI commands for pluginwire.

``serve`` is the only command that talks to a host: it owns stdout for the
negotiation line. The rest are diagnostics for plugin authors.
"""

import importlib
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from pluginwire import __logo__, __version__
from pluginwire.utils.exceptions import CodecMismatch, HandshakeError, StartupFailure

app = typer.Typer(
    name="pluginwire",
    help=f"{__logo__} pluginwire - serve plugins to a go-plugin style host",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} pluginwire v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """pluginwire - plugin runtime over mTLS gRPC."""
    pass


def load_target(target: str):
    """Resolve ``module:attribute`` to a DomainService or a list of them."""
    from pluginwire.domain.service import DomainService

    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise StartupFailure(f"Target must look like module:attribute, got {target!r}", code="INVALID_TARGET")
    try:
        module = importlib.import_module(module_name)
    except Exception as e:
        raise StartupFailure(f"Cannot import plugin module {module_name!r}: {e}", code="INVALID_TARGET") from e
    obj = module
    for part in attr.split("."):
        if not hasattr(obj, part):
            raise StartupFailure(f"{module_name!r} has no attribute {attr!r}", code="INVALID_TARGET")
        obj = getattr(obj, part)
    if callable(obj) and not isinstance(obj, DomainService):
        try:
            obj = obj()
        except Exception as e:
            raise StartupFailure(f"{target} raised {type(e).__name__}: {e}", code="INVALID_TARGET") from e
    if isinstance(obj, DomainService):
        return [obj]
    if isinstance(obj, (list, tuple)) and obj and all(isinstance(s, DomainService) for s in obj):
        return list(obj)
    raise StartupFailure(f"{target} is not a DomainService or a list of them", code="INVALID_TARGET")


@app.command()
def serve(
    target: str = typer.Argument(..., help="module:attribute naming a DomainService (or list, or factory)"),
    config: Path = typer.Option(None, "--config", "-c", help="JSON config file (defaults to $PLUGINWIRE_CONFIG)"),
):
    """Serve domain services to the launching host. Writes the negotiation line on stdout."""
    from loguru import logger

    from pluginwire.config.loader import load_config
    from pluginwire.handshake.coordinator import run
    from pluginwire.handshake.negotiation import describe_startup_crash, report_startup_failure
    from pluginwire.logging_utils import configure_logging

    configure_logging()
    try:
        cfg = load_config(config)
        services = load_target(target)
    except StartupFailure as e:
        report_startup_failure(e.message)
        raise typer.Exit(1)
    except Exception as e:
        logger.exception("Startup failed")
        report_startup_failure(describe_startup_crash(e))
        raise typer.Exit(1)
    run(services, cfg)


@app.command("parse-handshake")
def parse_handshake(
    line: str = typer.Argument(..., help="A negotiation line as printed by a plugin"),
):
    """Parse a negotiation line and show its fields."""
    from pluginwire.crypto.certificate import handshake_certificate_to_pem
    from pluginwire.handshake.negotiation import parse_negotiation_line

    try:
        record = parse_negotiation_line(line)
    except HandshakeError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)

    table = Table(title="Negotiation Record")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("handshake_version", str(record.handshake_version))
    table.add_row("protocol_version", str(record.protocol_version))
    table.add_row("network", record.network)
    table.add_row("address", record.address)
    table.add_row("rpc_protocol", record.rpc_protocol)
    if record.server_certificate:
        try:
            from cryptography import x509

            cert = x509.load_pem_x509_certificate(handshake_certificate_to_pem(record.server_certificate))
            table.add_row("certificate_subject", cert.subject.rfc4514_string())
            table.add_row("certificate_expires", cert.not_valid_after_utc.isoformat())
        except ValueError as e:
            table.add_row("server_certificate", f"[red]unreadable: {e}[/red]")
    else:
        table.add_row("server_certificate", "[dim](none)[/dim]")
    console.print(table)


@app.command("describe-type")
def describe_type(
    descriptor: str = typer.Argument(..., help='Type descriptor JSON, e.g. \'["list","string"]\''),
):
    """Pretty-print a JSON type descriptor."""
    from pluginwire.codec.types import describe, descriptor_from_json, descriptor_to_obj

    try:
        parsed = descriptor_from_json(descriptor)
    except CodecMismatch as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[bold]{describe(parsed)}[/bold]")
    console.print_json(json.dumps(descriptor_to_obj(parsed)))


@app.command()
def version():
    """Show the pluginwire version."""
    console.print(f"{__logo__} pluginwire v{__version__}")


if __name__ == "__main__":
    app()
