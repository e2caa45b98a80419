"""Global constants and path configuration for bootcheck."""

from __future__ import annotations

import os
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_RESOURCES_DIR = PACKAGE_DIR / "resources"
DEFAULT_CONFIG_PATH = DEFAULT_RESOURCES_DIR / "workloads.yaml"
DEFAULT_WORKLOADS_DIR = Path.home() / "workloads"
DEFAULT_FIRMWARE_PATH = Path("target/target/release/hypervisor-fw")

TRUTHY = {"1", "true", "yes", "on"}

# Sample values baked into the cloud-init templates
PLACEHOLDER_HOST_IP = "192.168.2.1"
PLACEHOLDER_GUEST_IP = "192.168.2.2"
PLACEHOLDER_GUEST_MAC = "12:34:56:78:90:ab"

# Locally administered, unicast
MAC_FIRST_OCTET = 0x2E

TAP_PREFIX = "fwtap"
SUBNET_PREFIX_LEN = 24
MAX_COUNTER = 255

SEED_IMAGE_NAME = "cloudinit"
SEED_IMAGE_SECTORS = 8192

DEFAULT_SSH_RETRIES = 6
DEFAULT_SSH_TIMEOUT = 10
DEFAULT_BOOT_SETTLE_SECS = 20
DEFAULT_COUNTER_START = 6
SHUTDOWN_COMMAND = "sudo shutdown -h now"

HOST_TOOLS = ("mkdosfs", "mcopy", "ip")

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

_SENSITIVE_FIELDS = {"ssh_password"}
