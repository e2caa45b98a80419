"""CLI entry points for bootcheck."""

from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path
from typing import List, Optional, Tuple

from bootcheck.boot import BootTest
from bootcheck.cloud_init import get_cloud_init
from bootcheck.config import load_workload, load_workloads, parse_env
from bootcheck.constants import _SENSITIVE_FIELDS, HOST_TOOLS, SHUTDOWN_COMMAND
from bootcheck.exceptions import BootError, HarnessError
from bootcheck.models import HarnessConfig, Workload
from bootcheck.network import IdentitySequence
from bootcheck.utils import kvm_available, log, missing_tools
from bootcheck.vmm import binary_for, get_hypervisor


def list_workloads(config_path: Optional[Path] = None) -> int:
    """Print the workload/hypervisor matrix."""
    try:
        workloads = load_workloads(config_path)
    except HarnessError as exc:
        log("ERROR", str(exc))
        return 1
    if not workloads:
        log("WARN", "No workloads found")
        return 0
    max_key = max(len(k) for k in workloads)
    for key in sorted(workloads):
        workload = workloads[key]
        hypervisors = ", ".join(workload.hypervisors)
        print(f"  {key:<{max_key}}  {workload.name}  (image={workload.image}, cloud_init={workload.cloud_init}, hypervisors={hypervisors})")
    return 0


def show_config(cfg: HarnessConfig) -> None:
    """Print the resolved harness configuration."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if field.name in _SENSITIVE_FIELDS:
            print(f"  {field.name}: ********")
        else:
            print(f"  {field.name}: {value}")


def select_cases(workload: Workload, hypervisor: Optional[str]) -> List[str]:
    if hypervisor is None:
        return list(workload.hypervisors)
    if hypervisor not in workload.hypervisors:
        supported = ", ".join(workload.hypervisors)
        raise HarnessError(f"Workload '{workload.key}' is not booted with '{hypervisor}'. Supported: {supported}")
    return [hypervisor]


def preflight(cfg: HarnessConfig, workload: Optional[Workload], hypervisors: List[str]) -> bool:
    """Report host readiness; return False when a boot would certainly fail."""
    ok = True
    if kvm_available():
        log("SUCCESS", "KVM:         available (/dev/kvm)")
    else:
        log("ERROR", "KVM:         NOT available")
        ok = False

    missing = missing_tools(HOST_TOOLS)
    if missing:
        log("ERROR", f"Host tools:  missing {', '.join(missing)}")
        ok = False
    else:
        log("SUCCESS", f"Host tools:  {', '.join(HOST_TOOLS)}")

    for name in hypervisors:
        binary = binary_for(name, cfg) or ""
        if missing_tools([binary]):
            log("ERROR", f"VMM:         {name} ({binary}) NOT FOUND")
            ok = False
        else:
            log("SUCCESS", f"VMM:         {name} ({binary})")

    if cfg.firmware_path.exists():
        log("SUCCESS", f"Firmware:    {cfg.firmware_path} (found)")
    else:
        log("ERROR", f"Firmware:    {cfg.firmware_path} (NOT FOUND)")
        ok = False

    if workload is not None:
        image = cfg.workloads_dir / workload.image
        if image.exists():
            log("SUCCESS", f"OS image:    {image} (found)")
        else:
            log("ERROR", f"OS image:    {image} (NOT FOUND)")
            ok = False
    return ok


def run_cases(
    cfg: HarnessConfig,
    workload: Workload,
    hypervisors: List[str],
    command: str,
) -> List[Tuple[str, Optional[BootError]]]:
    sequence = IdentitySequence(cfg.counter_start)
    results: List[Tuple[str, Optional[BootError]]] = []
    for name in hypervisors:
        test = BootTest(
            workload.image,
            get_cloud_init(workload.cloud_init, cfg.resources_dir),
            get_hypervisor(name, cfg),
            cfg,
            sequence,
            command=command,
        )
        try:
            test.run()
        except BootError as exc:
            detail = f" [{exc.kind.value}]" if exc.kind is not None else ""
            log("ERROR", f"{workload.key}/{name}: failed during {exc.state.value}{detail}: {exc.cause}")
            results.append((name, exc))
        else:
            log("SUCCESS", f"{workload.key}/{name}: booted and accepted '{command}'")
            results.append((name, None))
    return results


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Boot-verification harness for VMM firmware")
    parser.add_argument("--list", action="store_true", help="List the workload/hypervisor matrix and exit")
    parser.add_argument("--show-config", action="store_true", help="Show resolved harness configuration and exit")
    parser.add_argument("--dry-run", action="store_true", help="Validate config and host prerequisites, then exit")
    parser.add_argument("--workload", metavar="KEY", help="Workload to boot (see --list)")
    parser.add_argument("--hypervisor", metavar="NAME", help="Boot with a single VMM instead of every listed one")
    parser.add_argument("--command", default=SHUTDOWN_COMMAND, help="Command to run in the guest once it is up")
    args = parser.parse_args(argv)

    if args.list:
        return list_workloads()

    try:
        cfg = parse_env()
    except HarnessError as exc:
        log("ERROR", str(exc))
        return 1

    if args.show_config:
        show_config(cfg)
        return 0

    workload: Optional[Workload] = None
    hypervisors: List[str] = []
    try:
        if args.workload:
            workload = load_workload(args.workload)
            hypervisors = select_cases(workload, args.hypervisor)
        elif args.hypervisor:
            get_hypervisor(args.hypervisor, cfg)
            hypervisors = [args.hypervisor]
    except HarnessError as exc:
        log("ERROR", str(exc))
        return 1

    if args.dry_run:
        log("INFO", "=== Configuration ===")
        show_config(cfg)
        log("INFO", "=== Environment Checks ===")
        ok = preflight(cfg, workload, hypervisors)
        log("INFO", "=== Dry-run complete (no VM started) ===")
        return 0 if ok else 1

    if workload is None:
        log("ERROR", "--workload is required to run a boot test (use --list to see workloads)")
        return 1

    results = run_cases(cfg, workload, hypervisors, args.command)
    failed = [name for name, error in results if error is not None]
    if failed:
        log("ERROR", f"{len(failed)}/{len(results)} boot case(s) failed: {', '.join(failed)}")
        return 1
    log("SUCCESS", f"All {len(results)} boot case(s) passed")
    return 0
