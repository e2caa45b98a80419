"""Guest network identities and host tap devices for bootcheck."""

from __future__ import annotations

import random
import threading
from typing import List, Optional

from bootcheck.constants import DEFAULT_COUNTER_START, MAX_COUNTER, SUBNET_PREFIX_LEN, TAP_PREFIX
from bootcheck.exceptions import HarnessError
from bootcheck.models import GuestNetworkConfig
from bootcheck.utils import log, random_mac, run


def new_guest_network(counter: int, rng: Optional[random.Random] = None) -> GuestNetworkConfig:
    """Build the MAC, /24 address pair and tap name owned by one test case."""
    return GuestNetworkConfig(
        guest_mac=random_mac(rng),
        host_ip=f"192.168.{counter}.1",
        guest_ip=f"192.168.{counter}.2",
        tap_name=f"{TAP_PREFIX}{counter}",
    )


class IdentitySequence:
    """Thread-safe source of monotonically increasing identity counters."""

    def __init__(self, start: int = DEFAULT_COUNTER_START) -> None:
        self._next = start
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            value = self._next
            if value > MAX_COUNTER:
                raise HarnessError(f"Identity counter exhausted (next value {value} > {MAX_COUNTER})")
            self._next += 1
            return value

    def new_network(self, rng: Optional[random.Random] = None) -> GuestNetworkConfig:
        return new_guest_network(self.allocate(), rng)


def _privileged(cmd: List[str], use_sudo: bool) -> List[str]:
    return (["sudo"] if use_sudo else []) + cmd


def tap_exists(tap_name: str) -> bool:
    return run(["ip", "link", "show", "dev", tap_name], check=False).returncode == 0


def prepare_tap(net: GuestNetworkConfig, use_sudo: bool = True) -> None:
    """Create the tap device, assign the host address and bring it up."""
    steps = [
        ["ip", "tuntap", "add", "name", net.tap_name, "mode", "tap"],
        ["ip", "addr", "add", f"{net.host_ip}/{SUBNET_PREFIX_LEN}", "dev", net.tap_name],
        ["ip", "link", "set", "dev", net.tap_name, "up"],
    ]
    log("INFO", f"Creating tap device {net.tap_name} ({net.host_ip}/{SUBNET_PREFIX_LEN})")
    try:
        for step in steps:
            run(_privileged(step, use_sudo))
    except HarnessError:
        try:
            cleanup_tap(net, use_sudo)
        except HarnessError as exc:
            log("WARN", f"Failed to remove partially configured {net.tap_name}: {exc}")
        raise


def cleanup_tap(net: GuestNetworkConfig, use_sudo: bool = True) -> None:
    """Delete the tap device; a device that is already gone is left alone."""
    if not tap_exists(net.tap_name):
        log("DEBUG", f"Tap device {net.tap_name} not present; nothing to remove")
        return
    log("INFO", f"Removing tap device {net.tap_name}")
    run(_privileged(["ip", "tuntap", "del", "name", net.tap_name, "mode", "tap"], use_sudo))


class TapDevice:
    """Context manager owning one host tap device for the lifetime of a case."""

    def __init__(self, net: GuestNetworkConfig, use_sudo: bool = True) -> None:
        self.net = net
        self.use_sudo = use_sudo

    def __enter__(self) -> "TapDevice":
        prepare_tap(self.net, self.use_sudo)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        cleanup_tap(self.net, self.use_sudo)
