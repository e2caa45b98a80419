"""Data models for bootcheck."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass(frozen=True)
class GuestNetworkConfig:
    guest_mac: str
    host_ip: str
    guest_ip: str
    tap_name: str


@dataclass
class Workload:
    key: str
    name: str
    image: str
    cloud_init: str
    hypervisors: List[str] = field(default_factory=list)


@dataclass
class HarnessConfig:
    workloads_dir: Path
    firmware_path: Path
    cloud_hypervisor_bin: str
    qemu_bin: str
    qemu_memory: str
    resources_dir: Path
    boot_settle_secs: int
    ssh_retries: int
    ssh_timeout: int
    ssh_connect_timeout: int
    ssh_user: str
    ssh_password: str
    ssh_port: int
    counter_start: int
    use_sudo: bool
    tmp_prefix: str = "rhfw"
