"""Typer CLI entrypoint."""

from __future__ import annotations

import base64
import logging
import shlex
import sys
from pathlib import Path

import typer

from receiptlink.core.errors import PrinterError, ReceiptlinkError
from receiptlink.core.model import PayloadEncoding, PermissionState
from receiptlink.core.service import PrinterService

app = typer.Typer(help="Thermal receipt printing over Bluetooth serial")

_state: dict[str, Path | None] = {"config": None}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Path | None = typer.Option(None, "--config", help="Path to a config YAML file"),
) -> None:
    logging.basicConfig(
        level="DEBUG" if verbose else "WARNING",
        format="%(asctime)s.%(msecs)03d | %(levelname)s | %(module)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%H:%M:%S",
    )
    _state["config"] = config


def _confirm(permissions: tuple[str, ...]) -> bool:
    return typer.confirm(f"Allow Bluetooth access ({', '.join(permissions)})?", default=True)


def _build_service() -> PrinterService:
    service = PrinterService(config_path=_state["config"], prompt=_confirm)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _ensure_permission(service: PrinterService) -> None:
    # Ask once when nothing has been decided yet; an explicit denial stays denied.
    if service.permission_state() is PermissionState.UNKNOWN:
        service.request_permission()


@app.command("permission")
def request_permission() -> None:
    """Request the Bluetooth permissions required on this OS version."""
    try:
        service = _build_service()
        tier = service.request_permission()
        typer.echo(f"Permission granted ({tier.value})")
    except ReceiptlinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices() -> None:
    """List printers already paired with this system."""
    try:
        service = _build_service()
        _ensure_permission(service)
        devices = service.list_paired_devices()
        if not devices:
            typer.echo("No paired devices found")
            return

        for device in devices:
            typer.echo(f"{device.address} {device.name or '<unknown-device>'}")
    except ReceiptlinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("status")
def status() -> None:
    """Show adapter and permission state."""
    try:
        service = _build_service()
        _echo_status(service)
    except ReceiptlinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("print")
def print_payload(
    address: str = typer.Option(..., "--address", "-a", help="Printer MAC address"),
    text: str | None = typer.Option(None, "--text", help="Text to print"),
    data: str | None = typer.Option(None, "--base64", help="Base64-encoded bytes to print"),
    file: Path | None = typer.Option(
        None, "--file", exists=True, dir_okay=False, readable=True, help="File whose bytes are printed"
    ),
) -> None:
    """Connect to a printer, send one payload, and disconnect."""
    sources = [value for value in (text, data, file) if value is not None]
    if len(sources) != 1:
        typer.echo("Error: pass exactly one of --text, --base64 or --file", err=True)
        raise typer.Exit(code=2)

    if file is not None:
        data = base64.b64encode(file.read_bytes()).decode("ascii")

    try:
        service = _build_service()
        _ensure_permission(service)
        service.connect(address)
        try:
            if text is not None:
                service.print(text, PayloadEncoding.RAW)
            else:
                service.print(data, PayloadEncoding.BASE64)
        finally:
            service.disconnect()
        typer.echo(f"Printed to {address.upper()}")
    except ReceiptlinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


_SHELL_HELP = "commands: permission | connect ADDR | print TEXT | print64 DATA | disconnect | devices | status | quit"


@app.command("shell")
def shell() -> None:
    """Serve one request per input line against a single persistent connection."""
    try:
        service = _build_service()
    except ReceiptlinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(_SHELL_HELP)
    try:
        while True:
            line = sys.stdin.readline()
            if not line:
                break
            line = line.strip()
            if not line:
                continue
            command, _, argument = line.partition(" ")
            if command in {"quit", "exit"}:
                break
            try:
                _run_shell_command(service, command, argument.strip())
            except PrinterError as exc:
                typer.echo(f"Error [{exc.category.value}]: {exc}", err=True)
            except ReceiptlinkError as exc:
                typer.echo(f"Error: {exc}", err=True)
    finally:
        service.disconnect()


def _run_shell_command(service: PrinterService, command: str, argument: str) -> None:
    if command == "permission":
        tier = service.request_permission()
        typer.echo(f"ok granted {tier.value}")
    elif command == "connect":
        address = shlex.split(argument)[0] if argument else ""
        _ensure_permission(service)
        service.connect(address)
        typer.echo(f"ok connected {address.upper()}")
    elif command == "print":
        service.print(argument, PayloadEncoding.RAW)
        typer.echo("ok printed")
    elif command == "print64":
        service.print(argument, PayloadEncoding.BASE64)
        typer.echo("ok printed")
    elif command == "disconnect":
        service.disconnect()
        typer.echo("ok disconnected")
    elif command == "devices":
        _ensure_permission(service)
        for device in service.list_paired_devices():
            typer.echo(f"{device.address} {device.name or '<unknown-device>'}")
        typer.echo("ok")
    elif command == "status":
        _echo_status(service)
    else:
        typer.echo(f"unknown command '{command}'; {_SHELL_HELP}", err=True)


def _echo_status(service: PrinterService) -> None:
    adapter = service.adapter_status()
    typer.echo(f"adapter: {'present' if adapter.present else 'missing'}, {'on' if adapter.enabled else 'off'}")
    typer.echo(f"permission: {service.permission_tier().value} {service.permission_state().value}")
    typer.echo(f"connection: {service.state.value}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
