"""Boot test orchestration for bootcheck."""

from __future__ import annotations

import enum
import shutil
import tempfile
import time
from contextlib import ExitStack
from pathlib import Path
from typing import List, Optional

from bootcheck.cloud_init import CloudInit, get_cloud_init
from bootcheck.constants import SHUTDOWN_COMMAND
from bootcheck.exceptions import BootError, HarnessError, SSHCommandError
from bootcheck.models import GuestNetworkConfig, HarnessConfig
from bootcheck.network import IdentitySequence, TapDevice
from bootcheck.ssh import ssh_command
from bootcheck.utils import log
from bootcheck.vmm import Hypervisor, VmmProcess, get_hypervisor


class BootState(enum.Enum):
    CREATED = "created"
    NETWORK_PREPARED = "network_prepared"
    IMAGE_SEEDED = "image_seeded"
    OS_DISK_STAGED = "os_disk_staged"
    INTERFACE_UP = "interface_up"
    VMM_RUNNING = "vmm_running"
    SHUTDOWN_ISSUED = "shutdown_issued"
    SHUTDOWN_FAILED = "shutdown_failed"
    TORN_DOWN = "torn_down"


def prepare_os_disk(tmp_dir: Path, workloads_dir: Path, image_name: str) -> Path:
    """Copy the reference image so the VMM never writes to the golden copy."""
    source = workloads_dir / image_name
    destination = tmp_dir / image_name
    log("INFO", f"Copying OS disk {source} to {destination}")
    try:
        shutil.copyfile(source, destination)
    except OSError as exc:
        raise HarnessError(f"Failed to copy OS disk {source}: {exc}") from exc
    return destination


class BootTest:
    """One boot case: a reference image booted by one VMM with one seed layout.

    Every resource is registered for release the moment it exists, so the VMM
    is killed, the tap device removed and the temporary directory deleted
    however the case ends.
    """

    def __init__(
        self,
        image_name: str,
        cloud_init: CloudInit,
        hypervisor: Hypervisor,
        cfg: HarnessConfig,
        sequence: IdentitySequence,
        command: str = SHUTDOWN_COMMAND,
    ) -> None:
        self.image_name = image_name
        self.cloud_init = cloud_init
        self.hypervisor = hypervisor
        self.cfg = cfg
        self.sequence = sequence
        self.command = command
        self.state = BootState.CREATED
        self.stage = BootState.CREATED
        self.net: Optional[GuestNetworkConfig] = None
        self.vmm: Optional[VmmProcess] = None
        self._teardown_errors: List[Exception] = []

    @property
    def label(self) -> str:
        return f"{self.image_name}/{self.hypervisor.name}"

    def _attempt(self, stage: BootState) -> None:
        self.stage = stage

    def _advance(self, state: BootState) -> None:
        self.state = state
        log("INFO", f"[{self.label}] {state.value}")

    def _enter(self, stack: ExitStack, cm, what: str):
        resource = cm.__enter__()
        stack.callback(self._release, cm, what)
        return resource

    def _release(self, cm, what: str) -> None:
        try:
            cm.__exit__(None, None, None)
        except (HarnessError, OSError) as exc:
            log("WARN", f"[{self.label}] failed to release {what}: {exc}")
            self._teardown_errors.append(exc)

    def run(self) -> str:
        """Run the case and return the output of the remote command.

        On failure the BootError names the stage that was being attempted.
        """
        try:
            with ExitStack() as stack:
                self._attempt(BootState.NETWORK_PREPARED)
                self.net = self.sequence.new_network()
                self._advance(BootState.NETWORK_PREPARED)

                self._attempt(BootState.IMAGE_SEEDED)
                tmp_dir = Path(
                    self._enter(stack, tempfile.TemporaryDirectory(prefix=self.cfg.tmp_prefix), "temporary directory")
                )
                seed_image = self.cloud_init.prepare(tmp_dir, self.net)
                self._advance(BootState.IMAGE_SEEDED)

                self._attempt(BootState.OS_DISK_STAGED)
                os_disk = prepare_os_disk(tmp_dir, self.cfg.workloads_dir, self.image_name)
                self._advance(BootState.OS_DISK_STAGED)

                self._attempt(BootState.INTERFACE_UP)
                self._enter(stack, TapDevice(self.net, self.cfg.use_sudo), f"tap device {self.net.tap_name}")
                self._advance(BootState.INTERFACE_UP)

                self._attempt(BootState.VMM_RUNNING)
                self.vmm = self._enter(stack, self.hypervisor.spawn(os_disk, seed_image, self.net), "VMM process")
                self._advance(BootState.VMM_RUNNING)

                log("INFO", f"[{self.label}] waiting {self.cfg.boot_settle_secs}s for the guest to boot")
                time.sleep(self.cfg.boot_settle_secs)

                self._attempt(BootState.SHUTDOWN_ISSUED)
                try:
                    output = ssh_command(
                        self.net.guest_ip,
                        self.command,
                        username=self.cfg.ssh_user,
                        password=self.cfg.ssh_password,
                        retries=self.cfg.ssh_retries,
                        timeout=self.cfg.ssh_timeout,
                        port=self.cfg.ssh_port,
                        connect_timeout=self.cfg.ssh_connect_timeout,
                    )
                except SSHCommandError:
                    self._attempt(BootState.SHUTDOWN_FAILED)
                    self._advance(BootState.SHUTDOWN_FAILED)
                    raise
                self._advance(BootState.SHUTDOWN_ISSUED)
        except HarnessError as exc:
            raise BootError(self.stage, exc) from exc

        if self._teardown_errors:
            raise BootError(BootState.TORN_DOWN, self._teardown_errors[0])
        self._advance(BootState.TORN_DOWN)
        return output


def run_boot_test(
    image_name: str,
    cloud_init: str,
    hypervisor: str,
    cfg: HarnessConfig,
    sequence: Optional[IdentitySequence] = None,
    command: str = SHUTDOWN_COMMAND,
) -> str:
    """Boot ``image_name`` under ``hypervisor`` and run ``command`` in the guest."""
    if sequence is None:
        sequence = IdentitySequence(cfg.counter_start)
    test = BootTest(
        image_name,
        get_cloud_init(cloud_init, cfg.resources_dir),
        get_hypervisor(hypervisor, cfg),
        cfg,
        sequence,
        command=command,
    )
    return test.run()
