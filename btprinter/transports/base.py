"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from btprinter.core.model import BondedDevice


class Link(Protocol):
    def write(self, data: bytes) -> None:
        """Write data to the outbound byte stream."""

    def flush(self) -> None:
        """Push buffered bytes to the remote device."""

    def close(self) -> None:
        """Release the stream and the underlying socket."""


class Adapter(Protocol):
    def bonded_devices(self) -> list[BondedDevice]:
        """Return devices already paired with the host, in adapter order."""

    def open_link(self, address: str, *, service_uuid: str, timeout_s: float) -> Link:
        """Connect to ``service_uuid`` on ``address`` and return its stream."""
