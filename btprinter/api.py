"""Stable public API for driving a Bluetooth printer from another process or UI.

`PrinterChannel` is the method-call surface: four named methods taking a
mapping of arguments. Transport trouble never raises here; only missing
caller-supplied arguments and unknown methods do.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from btprinter.core.config import PrinterSettings, load_settings
from btprinter.core.errors import (
    BtPrinterError,
    ChannelError,
    ConfigLoadError,
    ConfigValidationError,
    InvalidAddressError,
    MethodNotImplementedError,
    MissingArgumentError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from btprinter.core.manager import PrinterConnectionManager
from btprinter.core.model import DeviceDescriptor, Outcome, OutcomeKind, PermissionState
from btprinter.core.permissions import PermissionGate, SystemPermissionSource

__all__ = [
    "BtPrinterError",
    "ChannelError",
    "ConfigLoadError",
    "ConfigValidationError",
    "InvalidAddressError",
    "MethodNotImplementedError",
    "MissingArgumentError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "DeviceDescriptor",
    "Outcome",
    "OutcomeKind",
    "PermissionState",
    "PermissionGate",
    "SystemPermissionSource",
    "PrinterSettings",
    "PrinterConnectionManager",
    "PrinterChannel",
    "CHANNEL_NAME",
    "load_settings",
]

CHANNEL_NAME = "printer_channel"


class PrinterChannel:
    """Dispatches named method calls onto a `PrinterConnectionManager`."""

    def __init__(self, manager: PrinterConnectionManager | None = None) -> None:
        self.manager = manager or PrinterConnectionManager()
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "scanPrinters": self._scan_printers,
            "connectPrinter": self._connect_printer,
            "printText": self._print_text,
            "printBytes": self._print_bytes,
        }

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def handle(self, method: str, arguments: Mapping[str, Any] | None = None) -> Any:
        handler = self._handlers.get(method)
        if handler is None:
            raise MethodNotImplementedError(f"Method '{method}' is not implemented")
        return handler(arguments or {})

    def _scan_printers(self, arguments: Mapping[str, Any]) -> list[dict[str, str]]:
        return [device.as_dict() for device in self.manager.discover()]

    def _connect_printer(self, arguments: Mapping[str, Any]) -> bool:
        address = arguments.get("address")
        if not isinstance(address, str):
            return False
        return self.manager.connect(address)

    def _print_text(self, arguments: Mapping[str, Any]) -> None:
        text = arguments.get("text")
        if text is None:
            raise MissingArgumentError("Text is null", code="NO_TEXT")
        self.manager.print_text(str(text))

    def _print_bytes(self, arguments: Mapping[str, Any]) -> bool:
        payload = arguments.get("bytes")
        if payload is None:
            raise MissingArgumentError("Bytes are null", code="NO_BYTES")
        if isinstance(payload, str) or not isinstance(payload, (bytes, bytearray, memoryview, list, tuple)):
            raise MissingArgumentError("Bytes must be a byte buffer", code="NO_BYTES")
        try:
            data = bytes(payload)
        except (TypeError, ValueError) as exc:
            raise MissingArgumentError(f"Bytes are not a byte buffer: {exc}", code="NO_BYTES") from exc
        return self.manager.print_bytes(data)
