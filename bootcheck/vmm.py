"""VMM launch adapters for bootcheck."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Type

from bootcheck.exceptions import HarnessError, VmmLaunchError
from bootcheck.models import GuestNetworkConfig, HarnessConfig
from bootcheck.utils import log


class VmmProcess:
    """A running VMM together with the artifacts it was launched with."""

    def __init__(
        self,
        proc: subprocess.Popen,
        os_disk: Path,
        seed_image: Path,
        net: GuestNetworkConfig,
    ) -> None:
        self.proc = proc
        self.os_disk = os_disk
        self.seed_image = seed_image
        self.net = net

    @property
    def pid(self) -> int:
        return self.proc.pid

    def terminate(self) -> None:
        """Kill the VMM; a process that already exited is fine."""
        try:
            self.proc.kill()
        except ProcessLookupError:
            log("DEBUG", f"VMM process {self.pid} already exited")

    def await_exit(self) -> int:
        return self.proc.wait()

    def __enter__(self) -> "VmmProcess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.terminate()
        returncode = self.await_exit()
        log("INFO", f"VMM process {self.pid} exited ({returncode})")


class Hypervisor:
    name = ""

    def __init__(self, binary: str, firmware_path: Path) -> None:
        self.binary = binary
        self.firmware_path = firmware_path

    def build_command(self, os_disk: Path, seed_image: Path, net: GuestNetworkConfig) -> List[str]:
        raise NotImplementedError

    def spawn(self, os_disk: Path, seed_image: Path, net: GuestNetworkConfig) -> VmmProcess:
        cmd = self.build_command(os_disk, seed_image, net)
        log("INFO", f"Spawning: {' '.join(cmd)}")
        try:
            proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL)
        except OSError as exc:
            raise VmmLaunchError(f"Failed to launch {self.name} ({cmd[0]}): {exc}") from exc
        return VmmProcess(proc, os_disk, seed_image, net)


class CloudHypervisor(Hypervisor):
    name = "cloud-hypervisor"

    def build_command(self, os_disk: Path, seed_image: Path, net: GuestNetworkConfig) -> List[str]:
        return [
            self.binary,
            "--console",
            "off",
            "--serial",
            "tty",
            "--kernel",
            str(self.firmware_path),
            "--disk",
            f"path={os_disk}",
            f"path={seed_image}",
            "--net",
            f"tap={net.tap_name},mac={net.guest_mac}",
        ]


class Qemu(Hypervisor):
    name = "qemu"

    def __init__(self, binary: str, firmware_path: Path, memory: str = "1G") -> None:
        super().__init__(binary, firmware_path)
        self.memory = memory

    def build_command(self, os_disk: Path, seed_image: Path, net: GuestNetworkConfig) -> List[str]:
        return [
            self.binary,
            "-machine",
            "q35,accel=kvm",
            "-cpu",
            "host,-vmx",
            "-kernel",
            str(self.firmware_path),
            "-display",
            "none",
            "-nodefaults",
            "-serial",
            "stdio",
            "-drive",
            f"id=os,file={os_disk},if=none",
            "-device",
            "virtio-blk-pci,drive=os,disable-legacy=on",
            "-drive",
            f"id=ci,file={seed_image},if=none,format=raw",
            "-device",
            "virtio-blk-pci,drive=ci,disable-legacy=on",
            "-m",
            self.memory,
            "-netdev",
            f"tap,id=net0,ifname={net.tap_name},script=no,downscript=no",
            "-device",
            f"virtio-net-pci,netdev=net0,mac={net.guest_mac}",
        ]


HYPERVISORS: Dict[str, Type[Hypervisor]] = {
    CloudHypervisor.name: CloudHypervisor,
    Qemu.name: Qemu,
}


def get_hypervisor(name: str, cfg: HarnessConfig) -> Hypervisor:
    if name == CloudHypervisor.name:
        return CloudHypervisor(cfg.cloud_hypervisor_bin, cfg.firmware_path)
    if name == Qemu.name:
        return Qemu(cfg.qemu_bin, cfg.firmware_path, cfg.qemu_memory)
    supported = ", ".join(sorted(HYPERVISORS))
    raise HarnessError(f"Unknown hypervisor '{name}'. Supported: {supported}")


def binary_for(name: str, cfg: HarnessConfig) -> Optional[str]:
    return {CloudHypervisor.name: cfg.cloud_hypervisor_bin, Qemu.name: cfg.qemu_bin}.get(name)
