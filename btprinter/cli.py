"""Typer CLI entrypoint."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import sys
from pathlib import Path
from typing import Any

import typer

from btprinter.api import PrinterChannel
from btprinter.core.config import load_settings
from btprinter.core.errors import BtPrinterError, ChannelError
from btprinter.core.manager import PrinterConnectionManager

app = typer.Typer(help="Discover and print to a paired Bluetooth serial printer")


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level="DEBUG" if verbose else "INFO",
        format="%(asctime)s | %(levelname)s | %(name)s - %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    ctx.obj = {"config": config}


def _build_manager(ctx: typer.Context) -> PrinterConnectionManager:
    settings = load_settings(ctx.obj.get("config") if ctx.obj else None)
    return PrinterConnectionManager(settings=settings)


@app.command("scan")
def scan(ctx: typer.Context) -> None:
    """List paired Bluetooth devices."""
    try:
        manager = _build_manager(ctx)
        devices = manager.discover()
        if not devices:
            typer.echo("No paired Bluetooth devices found")
            return
        for device in devices:
            typer.echo(f"{device.address} {device.name}")
    except BtPrinterError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("check")
def check(ctx: typer.Context) -> None:
    """Show which Bluetooth capabilities this process has."""
    try:
        manager = _build_manager(ctx)
        state = manager.permission_gate.check()
    except BtPrinterError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(f"bluetooth_connect: {'granted' if state.bluetooth_connect else 'missing'}")
    typer.echo(f"bluetooth_scan: {'granted' if state.bluetooth_scan else 'missing'}")
    if not state.granted:
        raise typer.Exit(code=1)


@app.command("print-text")
def print_text(ctx: typer.Context, address: str, text: str) -> None:
    """Connect to ADDRESS, print TEXT as one line, then disconnect."""
    try:
        with _build_manager(ctx) as manager:
            _connect_or_exit(manager, address)
            manager.print_text(text)
            typer.echo(f"Sent text to {manager.connected_address}")
    except BtPrinterError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("print-file")
def print_file(
    ctx: typer.Context,
    address: str,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
) -> None:
    """Connect to ADDRESS and send the raw bytes of PATH."""
    try:
        payload = path.read_bytes()
        with _build_manager(ctx) as manager:
            _connect_or_exit(manager, address)
            if not manager.print_bytes(payload):
                typer.echo(f"Error: sending {path} to {address} failed", err=True)
                raise typer.Exit(code=1)
            typer.echo(f"Sent {len(payload)} bytes to {manager.connected_address}")
    except BtPrinterError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("serve")
def serve(ctx: typer.Context) -> None:
    """Answer JSON method calls, one per stdin line, with one JSON line each.

    Requests look like {"method": "printBytes", "arguments": {"bytes": "<base64>"}}.
    The connection is kept open between calls and closed at end of input.
    """
    try:
        manager = _build_manager(ctx)
    except BtPrinterError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    channel = PrinterChannel(manager)
    with manager:
        for line in sys.stdin:
            if not line.strip():
                continue
            typer.echo(json.dumps(_handle_request(channel, line)))


def _handle_request(channel: PrinterChannel, line: str) -> dict[str, Any]:
    try:
        request = json.loads(line)
    except json.JSONDecodeError as exc:
        return _error_response(None, "BAD_REQUEST", f"Invalid JSON: {exc}")
    if not isinstance(request, dict) or not isinstance(request.get("method"), str):
        return _error_response(None, "BAD_REQUEST", "Request must be an object with a 'method'")

    request_id = request.get("id")
    arguments = request.get("arguments") or {}
    if not isinstance(arguments, dict):
        return _error_response(request_id, "BAD_REQUEST", "'arguments' must be an object")

    if isinstance(arguments.get("bytes"), str):
        try:
            arguments["bytes"] = base64.b64decode(arguments["bytes"], validate=True)
        except binascii.Error as exc:
            return _error_response(request_id, "BAD_REQUEST", f"Invalid base64 bytes: {exc}")

    try:
        result = channel.handle(request["method"], arguments)
    except ChannelError as exc:
        return _error_response(request_id, exc.code, exc.message)

    response: dict[str, Any] = {"result": result}
    if request_id is not None:
        response["id"] = request_id
    return response


def _error_response(request_id: Any, code: str, message: str) -> dict[str, Any]:
    response: dict[str, Any] = {"error": {"code": code, "message": message}}
    if request_id is not None:
        response["id"] = request_id
    return response


def _connect_or_exit(manager: PrinterConnectionManager, address: str) -> None:
    outcome = manager.try_connect(address)
    if not outcome.ok:
        typer.echo(f"Error: could not connect to {address} ({outcome.kind.value}): {outcome.detail}", err=True)
        raise typer.Exit(code=1)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
