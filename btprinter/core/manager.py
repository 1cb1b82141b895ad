"""Connection manager for a single Bluetooth serial printer."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from btprinter.core.config import PrinterSettings
from btprinter.core.errors import AdapterError, InvalidAddressError, TransportError
from btprinter.core.model import (
    DeviceDescriptor,
    Outcome,
    OutcomeKind,
    is_valid_address,
    normalize_address,
)
from btprinter.core.permissions import PermissionGate
from btprinter.transports.base import Adapter, Link
from btprinter.transports.rfcomm import BlueZAdapter

LOGGER = logging.getLogger(__name__)


@dataclass
class Connection:
    address: str
    link: Link


class PrinterConnectionManager:
    """Owns device discovery and at most one live RFCOMM connection.

    Every public method blocks on radio I/O; callers that must stay responsive
    should run them on a worker thread. The connection's create/use/destroy
    steps are serialised by a per-instance lock, so a write never reaches a
    stream that a concurrent ``connect`` or ``disconnect`` is closing.

    Transport problems never raise out of this class. ``connect`` and
    ``print_bytes`` report them as ``False``; ``print_text`` swallows them,
    including the case where nothing is connected, while ``print_bytes``
    returns ``False`` there. That difference is kept for compatibility with
    existing callers.
    """

    def __init__(
        self,
        *,
        adapter: Adapter | None = None,
        permission_gate: PermissionGate | None = None,
        settings: PrinterSettings | None = None,
    ) -> None:
        self.settings = settings or PrinterSettings()
        self.adapter = adapter or BlueZAdapter(self.settings)
        self.permission_gate = permission_gate or PermissionGate.from_settings(self.settings)
        self._lock = threading.RLock()
        self._connection: Connection | None = None

    def __enter__(self) -> PrinterConnectionManager:
        return self

    def __exit__(self, *exc: object) -> None:
        self.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def connected_address(self) -> str | None:
        connection = self._connection
        return connection.address if connection else None

    def discover(self) -> list[DeviceDescriptor]:
        """Return paired devices, or an empty list if none can be listed."""
        if not self.permission_gate.ensure_granted():
            LOGGER.info("Discovery skipped: Bluetooth permissions not granted")
            return []

        try:
            bonded = self.adapter.bonded_devices()
        except (AdapterError, OSError) as exc:
            LOGGER.warning("Could not list paired devices: %s", exc)
            return []

        seen: set[str] = set()
        devices: list[DeviceDescriptor] = []
        for device in bonded:
            address = device.address.strip().upper()
            if not is_valid_address(address):
                LOGGER.debug("Skipping paired device with malformed address %r", device.address)
                continue
            if address in seen:
                continue
            seen.add(address)
            devices.append(
                DeviceDescriptor(name=device.name or self.settings.unknown_name, address=address)
            )
        return devices

    def connect(self, address: str) -> bool:
        return self.try_connect(address).ok

    def try_connect(self, address: str) -> Outcome:
        with self._lock:
            # The previous stream must not outlive the start of a new attempt.
            self._close_connection()

            try:
                normalized = normalize_address(address)
            except InvalidAddressError as exc:
                LOGGER.warning("Connect rejected: %s", exc)
                return Outcome(OutcomeKind.INVALID_INPUT, str(exc))

            if not self.permission_gate.ensure_granted():
                LOGGER.info("Connect to %s refused: Bluetooth permissions not granted", normalized)
                return Outcome(OutcomeKind.PERMISSION_DENIED, "Bluetooth permissions not granted")

            try:
                link = self.adapter.open_link(
                    normalized,
                    service_uuid=self.settings.service_uuid,
                    timeout_s=self.settings.connect_timeout_s,
                )
            except (TransportError, OSError) as exc:
                LOGGER.warning("Connect to %s failed: %s", normalized, exc)
                return Outcome(OutcomeKind.TRANSPORT_ERROR, str(exc))

            self._connection = Connection(address=normalized, link=link)
            LOGGER.info("Connected to printer %s", normalized)
            return Outcome.success(normalized)

    def print_text(self, text: str) -> None:
        """Send ``text`` plus a newline. Failures are logged and otherwise ignored."""
        try:
            payload = (text + "\n").encode(self.settings.text_encoding)
        except LookupError as exc:
            LOGGER.warning("Text not encodable as %s: %s", self.settings.text_encoding, exc)
            return
        outcome = self.try_send(payload)
        if outcome.kind is OutcomeKind.NO_CONNECTION:
            LOGGER.debug("print_text ignored: no printer connected")

    def print_bytes(self, payload: bytes) -> bool:
        return self.try_send(payload).ok

    def try_send(self, payload: bytes) -> Outcome:
        with self._lock:
            connection = self._connection
            if connection is None:
                return Outcome(OutcomeKind.NO_CONNECTION, "No printer connected")
            try:
                connection.link.write(bytes(payload))
                connection.link.flush()
            except (TransportError, OSError) as exc:
                LOGGER.warning("Write to %s failed: %s", connection.address, exc)
                return Outcome(OutcomeKind.TRANSPORT_ERROR, str(exc))
            LOGGER.debug("Sent %d bytes to %s", len(payload), connection.address)
            return Outcome.success()

    def disconnect(self) -> None:
        with self._lock:
            self._close_connection()

    def _close_connection(self) -> None:
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        try:
            connection.link.close()
        except (TransportError, OSError) as exc:
            LOGGER.warning("Error while closing connection to %s: %s", connection.address, exc)
        LOGGER.info("Disconnected from printer %s", connection.address)
