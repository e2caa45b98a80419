"""Configuration loading and environment variable parsing for bootcheck."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from bootcheck.cloud_init import CLOUD_INITS
from bootcheck.constants import (
    DEFAULT_BOOT_SETTLE_SECS,
    DEFAULT_CONFIG_PATH,
    DEFAULT_COUNTER_START,
    DEFAULT_FIRMWARE_PATH,
    DEFAULT_RESOURCES_DIR,
    DEFAULT_SSH_RETRIES,
    DEFAULT_SSH_TIMEOUT,
    DEFAULT_WORKLOADS_DIR,
    MAX_COUNTER,
)
from bootcheck.exceptions import HarnessError
from bootcheck.models import HarnessConfig, Workload
from bootcheck.utils import get_env, get_env_bool, parse_int_env
from bootcheck.vmm import HYPERVISORS


def _path_env(name: str, default: Path) -> Path:
    raw = (get_env(name) or "").strip()
    return Path(raw).expanduser() if raw else default


def workloads_config_path() -> Path:
    return _path_env("WORKLOADS_CONFIG", DEFAULT_CONFIG_PATH)


def load_workloads(config_path: Optional[Path] = None) -> Dict[str, Workload]:
    """Read the workload catalog, validating variants and hypervisors."""
    if config_path is None:
        config_path = workloads_config_path()
    if not config_path.exists():
        raise HarnessError(f"Workload config missing: {config_path}")
    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise HarnessError(f"Workload config {config_path} contains invalid YAML: {exc}")

    workloads: Dict[str, Workload] = {}
    for key, info in (data.get("workloads") or {}).items():
        if "image" not in info:
            raise HarnessError(f"Workload '{key}' is missing 'image'")
        cloud_init = info.get("cloud_init", "ubuntu")
        if cloud_init not in CLOUD_INITS:
            supported = ", ".join(sorted(CLOUD_INITS))
            raise HarnessError(f"Workload '{key}' uses unknown cloud_init '{cloud_init}'. Supported: {supported}")
        hypervisors = list(info.get("hypervisors") or sorted(HYPERVISORS))
        for name in hypervisors:
            if name not in HYPERVISORS:
                supported = ", ".join(sorted(HYPERVISORS))
                raise HarnessError(f"Workload '{key}' lists unknown hypervisor '{name}'. Supported: {supported}")
        workloads[key] = Workload(
            key=key,
            name=info.get("name", key),
            image=info["image"],
            cloud_init=cloud_init,
            hypervisors=hypervisors,
        )
    return workloads


def load_workload(key: str, config_path: Optional[Path] = None) -> Workload:
    workloads = load_workloads(config_path)
    if key not in workloads:
        available = "\n    ".join(sorted(workloads))
        raise HarnessError(
            f"Unknown workload '{key}'.\n"
            f"  Available workloads:\n"
            f"    {available}\n"
            f"  Use --list to see details."
        )
    return workloads[key]


def parse_env() -> HarnessConfig:
    ssh_retries = parse_int_env("SSH_RETRIES", str(DEFAULT_SSH_RETRIES))
    ssh_timeout = parse_int_env("SSH_TIMEOUT", str(DEFAULT_SSH_TIMEOUT), min_val=0)
    ssh_connect_timeout = parse_int_env("SSH_CONNECT_TIMEOUT", "10")
    ssh_port = parse_int_env("SSH_PORT", "22", min_val=1, max_val=65535)
    boot_settle_secs = parse_int_env("BOOT_SETTLE_SECS", str(DEFAULT_BOOT_SETTLE_SECS), min_val=0)
    counter_start = parse_int_env("COUNTER_START", str(DEFAULT_COUNTER_START), min_val=0, max_val=MAX_COUNTER)

    ssh_user = (get_env("SSH_USER") or "cloud").strip()
    if not ssh_user:
        raise HarnessError("SSH_USER must not be empty")

    qemu_memory = (get_env("QEMU_MEMORY") or "1G").strip() or "1G"

    return HarnessConfig(
        workloads_dir=_path_env("WORKLOADS_DIR", DEFAULT_WORKLOADS_DIR),
        firmware_path=_path_env("FIRMWARE_PATH", DEFAULT_FIRMWARE_PATH),
        cloud_hypervisor_bin=(get_env("CLOUD_HYPERVISOR_BIN") or "./cloud-hypervisor").strip(),
        qemu_bin=(get_env("QEMU_BIN") or "qemu-system-x86_64").strip(),
        qemu_memory=qemu_memory,
        resources_dir=_path_env("RESOURCES_DIR", DEFAULT_RESOURCES_DIR),
        boot_settle_secs=boot_settle_secs,
        ssh_retries=ssh_retries,
        ssh_timeout=ssh_timeout,
        ssh_connect_timeout=ssh_connect_timeout,
        ssh_user=ssh_user,
        ssh_password=get_env("SSH_PASSWORD", "cloud123") or "",
        ssh_port=ssh_port,
        counter_start=counter_start,
        use_sudo=get_env_bool("USE_SUDO", True),
        tmp_prefix=(get_env("TMP_PREFIX") or "rhfw").strip() or "rhfw",
    )
