"""RFCOMM transport implementation using BlueZ tools and Python sockets."""

from __future__ import annotations

import logging
import re
import socket
import subprocess
from collections.abc import Sequence

from btprinter.core.config import PrinterSettings
from btprinter.core.errors import (
    AdapterError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from btprinter.core.model import BondedDevice

_DEVICE_LINE_RE = re.compile(r"^Device\s+([0-9A-F:]{17})(?:\s+(.*))?$", re.IGNORECASE)
_CHANNEL_RE = re.compile(r"^\s*Channel:\s*(\d+)\s*$", re.MULTILINE)
_BASE_UUID_SUFFIX = "-0000-1000-8000-00805F9B34FB"
LOGGER = logging.getLogger(__name__)


class SocketLink:
    """Connected RFCOMM socket used as an unbuffered output stream.

    Each ``write`` is a single ``sendall``, so bytes from a failed write are
    never retained and replayed ahead of a later payload.
    """

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def write(self, data: bytes) -> None:
        try:
            self._sock.sendall(data)
        except OSError as exc:
            raise TransportSendError(f"RFCOMM write failed: {exc}") from exc

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self._sock.close()


class BlueZAdapter:
    def __init__(self, settings: PrinterSettings | None = None) -> None:
        self.settings = settings or PrinterSettings()

    def bonded_devices(self) -> list[BondedDevice]:
        commands = [
            ["bluetoothctl", "devices", "Paired"],
            ["bluetoothctl", "paired-devices"],
        ]
        command_errors: list[str] = []

        for cmd in commands:
            result = _run_command(cmd)
            if result is None:
                raise AdapterError("bluetoothctl not found. Install the BlueZ utilities.")
            if result.returncode != 0:
                stderr = (result.stderr or "").strip()
                command_errors.append(f"{' '.join(cmd)} -> {stderr or result.returncode}")
                continue
            return _parse_device_lines(result.stdout)

        joined = " | ".join(command_errors)
        raise AdapterError(f"Listing paired devices failed. Details: {joined}")

    def resolve_channel(self, address: str, service_uuid: str) -> int | None:
        """Look up the RFCOMM channel advertising ``service_uuid`` via SDP."""
        cmd = ["sdptool", "search", "--bdaddr", address, _sdp_service_arg(service_uuid)]
        try:
            result = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.settings.sdp_timeout_s,
            )
        except FileNotFoundError:
            LOGGER.debug("sdptool not available; skipping SDP channel lookup")
            return None
        except subprocess.TimeoutExpired:
            LOGGER.warning("sdptool search on %s timed out", address)
            return None

        match = _CHANNEL_RE.search(result.stdout or "")
        if result.returncode != 0 or not match:
            LOGGER.debug("SDP lookup for %s on %s found no channel", service_uuid, address)
            return None
        return int(match.group(1))

    def open_link(self, address: str, *, service_uuid: str, timeout_s: float) -> SocketLink:
        try:
            af_bluetooth = socket.AF_BLUETOOTH
            btproto_rfcomm = socket.BTPROTO_RFCOMM
        except AttributeError as exc:
            raise TransportConnectError(
                "This Python build does not expose Bluetooth socket APIs (AF_BLUETOOTH/BTPROTO_RFCOMM)."
            ) from exc

        channel = self.resolve_channel(address, service_uuid) or self.settings.default_channel

        try:
            bt_socket = socket.socket(
                af_bluetooth,
                socket.SOCK_STREAM,
                btproto_rfcomm,
            )
        except OSError as exc:
            raise TransportConnectError(f"Could not create RFCOMM socket: {exc}") from exc

        bt_socket.settimeout(timeout_s)
        try:
            bt_socket.connect((address, channel))
        except TimeoutError as exc:
            bt_socket.close()
            raise TransportTimeoutError(
                f"RFCOMM connect timed out for {address} on channel {channel}"
            ) from exc
        except OSError as exc:
            bt_socket.close()
            raise TransportConnectError(
                f"RFCOMM connect failed for {address} on channel {channel}: {exc}"
            ) from exc

        bt_socket.settimeout(self.settings.write_timeout_s)
        LOGGER.debug("RFCOMM socket open to %s on channel %d", address, channel)
        return SocketLink(bt_socket)


def _parse_device_lines(output: str) -> list[BondedDevice]:
    devices: list[BondedDevice] = []
    for line in output.splitlines():
        match = _DEVICE_LINE_RE.match(line.strip())
        if not match:
            continue
        address = match.group(1).upper()
        name = (match.group(2) or "").strip()
        # bluetoothctl prints the dashed address when a device has no name.
        if not name or name.upper() == address.replace(":", "-"):
            devices.append(BondedDevice(address=address, name=None))
        else:
            devices.append(BondedDevice(address=address, name=name))
    return devices


def _sdp_service_arg(service_uuid: str) -> str:
    upper = service_uuid.upper()
    if upper.startswith("0000") and upper.endswith(_BASE_UUID_SUFFIX):
        return "0x" + upper[4:8]
    return upper


def _run_command(cmd: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return None
