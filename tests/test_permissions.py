from __future__ import annotations

import shutil
import socket
import subprocess
from pathlib import Path

import pytest

from btprinter.core.config import PrinterSettings
from btprinter.core.model import PermissionState
from btprinter.core.permissions import PermissionGate, SystemPermissionSource


class FakePermissionSource:
    def __init__(self, state: PermissionState) -> None:
        self.state = state
        self.checks = 0
        self.requests: list[tuple[str, ...]] = []

    def check(self) -> PermissionState:
        self.checks += 1
        return self.state

    def request(self, missing) -> None:
        self.requests.append(tuple(missing))


def _rfkill(root: Path, name: str, kind: str, soft: str = "0", hard: str = "0") -> None:
    entry = root / name
    entry.mkdir(parents=True)
    (entry / "type").write_text(f"{kind}\n", encoding="utf-8")
    (entry / "soft").write_text(f"{soft}\n", encoding="utf-8")
    (entry / "hard").write_text(f"{hard}\n", encoding="utf-8")


@pytest.fixture
def bluetooth_runtime(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(socket, "AF_BLUETOOTH", 31, raising=False)
    monkeypatch.setattr(socket, "BTPROTO_RFCOMM", 3, raising=False)
    monkeypatch.setattr(shutil, "which", lambda name: f"/usr/bin/{name}")


def test_granted_state_issues_no_request() -> None:
    source = FakePermissionSource(PermissionState(bluetooth_connect=True, bluetooth_scan=True))
    gate = PermissionGate(source)

    assert gate.ensure_granted() is True
    assert source.requests == []


def test_missing_capability_requests_only_missing_subset() -> None:
    source = FakePermissionSource(PermissionState(bluetooth_connect=True, bluetooth_scan=False))
    gate = PermissionGate(source)

    assert gate.ensure_granted() is False
    assert gate.ensure_granted() is False
    assert source.requests == [("bluetooth_scan",), ("bluetooth_scan",)]


def test_check_is_read_only() -> None:
    source = FakePermissionSource(PermissionState(bluetooth_connect=False, bluetooth_scan=False))
    gate = PermissionGate(source)

    state = gate.check()
    assert state.missing == ("bluetooth_connect", "bluetooth_scan")
    assert not state.granted
    assert source.requests == []


def test_unenforced_gate_grants_without_checking() -> None:
    source = FakePermissionSource(PermissionState(bluetooth_connect=False, bluetooth_scan=False))
    gate = PermissionGate(source, enforce=False)

    assert gate.ensure_granted() is True
    assert gate.check().granted
    assert source.checks == 0


def test_gate_from_settings() -> None:
    gate = PermissionGate.from_settings(
        PrinterSettings(enforce_permissions=False, permission_request_command=None)
    )
    assert gate.enforce is False
    assert isinstance(gate.source, SystemPermissionSource)
    assert gate.source.request_command is None


def test_system_source_all_granted(bluetooth_runtime, tmp_path: Path) -> None:
    _rfkill(tmp_path, "rfkill0", "wlan", soft="1")
    _rfkill(tmp_path, "rfkill1", "bluetooth")

    state = SystemPermissionSource(rfkill_root=tmp_path).check()
    assert state == PermissionState(bluetooth_connect=True, bluetooth_scan=True)


def test_system_source_rfkill_block_denies_connect(bluetooth_runtime, tmp_path: Path) -> None:
    _rfkill(tmp_path, "rfkill1", "bluetooth", soft="1")

    state = SystemPermissionSource(rfkill_root=tmp_path).check()
    assert state.bluetooth_connect is False
    assert state.bluetooth_scan is True


def test_system_source_missing_socket_support(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delattr(socket, "AF_BLUETOOTH", raising=False)
    monkeypatch.setattr(shutil, "which", lambda name: None)

    state = SystemPermissionSource(rfkill_root=tmp_path / "absent").check()
    assert state.missing == ("bluetooth_connect", "bluetooth_scan")


def test_request_spawns_command_without_waiting(monkeypatch: pytest.MonkeyPatch) -> None:
    spawned: list[tuple[str, ...]] = []

    class FakePopen:
        def __init__(self, cmd, **kwargs) -> None:
            spawned.append(tuple(cmd))

        def wait(self) -> None:
            raise AssertionError("request must not wait for the command")

    monkeypatch.setattr(subprocess, "Popen", FakePopen)

    SystemPermissionSource().request(("bluetooth_connect",))
    assert spawned == [("rfkill", "unblock", "bluetooth")]


def test_request_tolerates_missing_command(monkeypatch: pytest.MonkeyPatch, caplog) -> None:
    def missing(cmd, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", cmd[0])

    monkeypatch.setattr(subprocess, "Popen", missing)

    SystemPermissionSource(("rfkill", "unblock", "bluetooth")).request(("bluetooth_connect",))
    assert "Could not run rfkill unblock bluetooth" in caplog.text
