"""Shared test fixtures."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List, Set

import pytest

from bootcheck.constants import DEFAULT_RESOURCES_DIR
from bootcheck.exceptions import CommandError
from bootcheck.models import GuestNetworkConfig, HarnessConfig


class CommandRecorder:
    """Stand-in for ``utils.run`` that records commands and tracks tap devices."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.taps: Set[str] = set()
        self.failures: Dict[str, int] = {}

    def fail(self, fragment: str, returncode: int = 1) -> None:
        """Make any command whose text contains ``fragment`` exit non-zero."""
        self.failures[fragment] = returncode

    def __call__(self, cmd, check=True, **kwargs):
        cmd = list(cmd)
        self.calls.append(cmd)
        base = cmd[1:] if cmd[0] == "sudo" else cmd
        text = " ".join(cmd)
        for fragment, returncode in self.failures.items():
            if fragment in text:
                if check:
                    raise CommandError(cmd, returncode, "", "simulated failure")
                return subprocess.CompletedProcess(cmd, returncode, "", "simulated failure")
        if base[:3] == ["ip", "link", "show"]:
            returncode = 0 if base[4] in self.taps else 1
            return subprocess.CompletedProcess(cmd, returncode, "", "")
        if base[:3] == ["ip", "tuntap", "add"]:
            self.taps.add(base[4])
        elif base[:3] == ["ip", "tuntap", "del"]:
            self.taps.discard(base[4])
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def commands(self, program: str) -> List[List[str]]:
        return [c for c in self.calls if program in c[:2]]


@pytest.fixture
def recorder(monkeypatch) -> CommandRecorder:
    """Replace external command execution in network and cloud_init."""
    rec = CommandRecorder()
    monkeypatch.setattr("bootcheck.network.run", rec)
    monkeypatch.setattr("bootcheck.cloud_init.run", rec)
    return rec


@pytest.fixture
def guest_net() -> GuestNetworkConfig:
    return GuestNetworkConfig(
        guest_mac="2e:01:02:03:04:05",
        host_ip="192.168.6.1",
        guest_ip="192.168.6.2",
        tap_name="fwtap6",
    )


@pytest.fixture
def harness_config(tmp_path) -> HarnessConfig:
    """Return a HarnessConfig whose workloads dir holds a small fake image."""
    workloads = tmp_path / "workloads"
    workloads.mkdir()
    (workloads / "bionic-server-cloudimg-amd64-raw.img").write_bytes(b"\x00" * 512)
    firmware = tmp_path / "hypervisor-fw"
    firmware.write_bytes(b"fw")
    return HarnessConfig(
        workloads_dir=workloads,
        firmware_path=firmware,
        cloud_hypervisor_bin="./cloud-hypervisor",
        qemu_bin="qemu-system-x86_64",
        qemu_memory="1G",
        resources_dir=Path(DEFAULT_RESOURCES_DIR),
        boot_settle_secs=0,
        ssh_retries=6,
        ssh_timeout=10,
        ssh_connect_timeout=10,
        ssh_user="cloud",
        ssh_password="cloud123",
        ssh_port=22,
        counter_start=6,
        use_sudo=True,
        tmp_prefix="rhfw",
    )


@pytest.fixture
def mock_env(monkeypatch):
    """Helper to set environment variables for tests."""

    def _set(**kwargs):
        for key, value in kwargs.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, str(value))

    return _set


# All environment variables that parse_env() reads
_PARSE_ENV_VARS = [
    "WORKLOADS_DIR",
    "WORKLOADS_CONFIG",
    "FIRMWARE_PATH",
    "CLOUD_HYPERVISOR_BIN",
    "QEMU_BIN",
    "QEMU_MEMORY",
    "RESOURCES_DIR",
    "BOOT_SETTLE_SECS",
    "SSH_RETRIES",
    "SSH_TIMEOUT",
    "SSH_CONNECT_TIMEOUT",
    "SSH_USER",
    "SSH_PASSWORD",
    "SSH_PORT",
    "COUNTER_START",
    "USE_SUDO",
    "TMP_PREFIX",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all environment variables that parse_env() reads."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
