"""Bluetooth capability checks gating discovery and connection."""

from __future__ import annotations

import logging
import shutil
import socket
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from btprinter.core.config import PrinterSettings
from btprinter.core.model import PermissionState

_RFKILL_ROOT = Path("/sys/class/rfkill")
LOGGER = logging.getLogger(__name__)


class PermissionSource(Protocol):
    def check(self) -> PermissionState:
        """Read the currently granted capabilities."""

    def request(self, missing: Sequence[str]) -> None:
        """Ask for ``missing`` capabilities without waiting for the answer."""


class SystemPermissionSource:
    """Capabilities of the running process on a BlueZ host."""

    def __init__(
        self,
        request_command: Sequence[str] | None = ("rfkill", "unblock", "bluetooth"),
        *,
        rfkill_root: Path = _RFKILL_ROOT,
    ) -> None:
        self.request_command = tuple(request_command) if request_command else None
        self.rfkill_root = rfkill_root

    def check(self) -> PermissionState:
        return PermissionState(
            bluetooth_connect=_has_rfcomm_sockets() and not _rfkill_blocked(self.rfkill_root),
            bluetooth_scan=shutil.which("bluetoothctl") is not None,
        )

    def request(self, missing: Sequence[str]) -> None:
        LOGGER.warning("Bluetooth capabilities not granted: %s", ", ".join(missing))
        if self.request_command is None:
            return
        try:
            subprocess.Popen(
                self.request_command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            LOGGER.warning("Could not run %s: %s", " ".join(self.request_command), exc)


class PermissionGate:
    """Combines a read-only capability check with a fire-and-forget request.

    ``ensure_granted`` is conservative: when anything is missing it issues the
    request and reports ``False`` for the current call. The caller retries once
    the user has resolved it.
    """

    def __init__(self, source: PermissionSource, *, enforce: bool = True) -> None:
        self.source = source
        self.enforce = enforce

    @classmethod
    def from_settings(cls, settings: PrinterSettings) -> PermissionGate:
        return cls(
            SystemPermissionSource(settings.permission_request_command),
            enforce=settings.enforce_permissions,
        )

    def check(self) -> PermissionState:
        if not self.enforce:
            return PermissionState(bluetooth_connect=True, bluetooth_scan=True)
        return self.source.check()

    def request(self, missing: Sequence[str]) -> None:
        if missing:
            self.source.request(tuple(missing))

    def ensure_granted(self) -> bool:
        if not self.enforce:
            return True
        state = self.source.check()
        if state.granted:
            return True
        self.request(state.missing)
        return False


def _has_rfcomm_sockets() -> bool:
    return hasattr(socket, "AF_BLUETOOTH") and hasattr(socket, "BTPROTO_RFCOMM")


def _rfkill_blocked(root: Path) -> bool:
    if not root.is_dir():
        return False
    for entry in root.iterdir():
        try:
            if (entry / "type").read_text(encoding="utf-8").strip() != "bluetooth":
                continue
            soft = (entry / "soft").read_text(encoding="utf-8").strip()
            hard = (entry / "hard").read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if soft == "1" or hard == "1":
            return True
    return False
