"""Core data models used across the manager, transports, and CLI."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from btprinter.core.errors import InvalidAddressError

SPP_UUID = "00001101-0000-1000-8000-00805F9B34FB"
BLUETOOTH_CONNECT = "bluetooth_connect"
BLUETOOTH_SCAN = "bluetooth_scan"

_ADDRESS_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$")


def normalize_address(address: str) -> str:
    """Return ``address`` upper-cased, or raise if it is not ``XX:XX:XX:XX:XX:XX``."""
    normalized = address.strip().upper()
    if not _ADDRESS_RE.match(normalized):
        raise InvalidAddressError(f"'{address}' is not a Bluetooth hardware address")
    return normalized


def is_valid_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match(address))


@dataclass(frozen=True)
class BondedDevice:
    address: str
    name: str | None


@dataclass(frozen=True)
class DeviceDescriptor:
    name: str
    address: str

    def as_dict(self) -> dict[str, str]:
        return {"name": self.name, "address": self.address}


@dataclass(frozen=True)
class PermissionState:
    bluetooth_connect: bool
    bluetooth_scan: bool

    @property
    def missing(self) -> tuple[str, ...]:
        missing: list[str] = []
        if not self.bluetooth_connect:
            missing.append(BLUETOOTH_CONNECT)
        if not self.bluetooth_scan:
            missing.append(BLUETOOTH_SCAN)
        return tuple(missing)

    @property
    def granted(self) -> bool:
        return not self.missing


class OutcomeKind(enum.Enum):
    SUCCESS = "success"
    PERMISSION_DENIED = "permission_denied"
    TRANSPORT_ERROR = "transport_error"
    INVALID_INPUT = "invalid_input"
    NO_CONNECTION = "no_connection"


@dataclass(frozen=True)
class Outcome:
    """Result of a manager operation before it is reduced to a boolean."""

    kind: OutcomeKind
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @classmethod
    def success(cls, detail: str = "") -> Outcome:
        return cls(OutcomeKind.SUCCESS, detail)
