"""Cloud-init seed image generation for bootcheck.

Each guest family reads first-boot metadata from a different layout, so every
variant stages the template files from ``resources/cloud-init/<name>`` into the
test's temporary directory, substitutes the sample network values for the
case's real ones and packs the result into a small FAT volume.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, Optional, Type

from bootcheck.constants import (
    DEFAULT_RESOURCES_DIR,
    PLACEHOLDER_GUEST_IP,
    PLACEHOLDER_GUEST_MAC,
    PLACEHOLDER_HOST_IP,
    SEED_IMAGE_NAME,
    SEED_IMAGE_SECTORS,
)
from bootcheck.exceptions import HarnessError
from bootcheck.models import GuestNetworkConfig
from bootcheck.utils import ensure_directory, log, run


def substitute_placeholders(text: str, net: GuestNetworkConfig) -> str:
    """Replace the template's sample addresses with the case's network identity."""
    text = text.replace(PLACEHOLDER_HOST_IP, net.host_ip)
    text = text.replace(PLACEHOLDER_GUEST_IP, net.guest_ip)
    return text.replace(PLACEHOLDER_GUEST_MAC, net.guest_mac)


def copy_file(source: Path, destination: Path) -> None:
    try:
        shutil.copyfile(source, destination)
    except OSError as exc:
        raise HarnessError(f"Failed to copy {source} to {destination}: {exc}") from exc


def render_template(source: Path, destination: Path, net: GuestNetworkConfig) -> None:
    try:
        content = source.read_text(encoding="utf-8")
        destination.write_text(substitute_placeholders(content, net), encoding="utf-8")
    except OSError as exc:
        raise HarnessError(f"Failed to render {source} to {destination}: {exc}") from exc


def make_fat_image(image: Path, label: str) -> None:
    run(["mkdosfs", "-n", label, "-C", str(image), str(SEED_IMAGE_SECTORS)])


def copy_into_image(image: Path, source: Path) -> None:
    run(["mcopy", "-o", "-i", str(image), "-s", str(source), "::"])


class CloudInit:
    """Base class for the seed image layouts understood by the guest images."""

    name = ""
    label = ""

    def __init__(self, resources_dir: Optional[Path] = None) -> None:
        self.resources_dir = Path(resources_dir or DEFAULT_RESOURCES_DIR)

    @property
    def source_dir(self) -> Path:
        return self.resources_dir / "cloud-init" / self.name

    def prepare(self, tmp_dir: Path, net: GuestNetworkConfig) -> Path:
        """Build the seed image inside ``tmp_dir`` and return its absolute path."""
        raise NotImplementedError


class ClearCloudInit(CloudInit):
    """OpenStack config-drive layout used by Clear Linux cloud guests."""

    name = "clear"
    label = "config-2"

    def prepare(self, tmp_dir: Path, net: GuestNetworkConfig) -> Path:
        image = tmp_dir / SEED_IMAGE_NAME
        openstack_dir = tmp_dir / "cloud-init" / self.name / "openstack"
        latest_dir = openstack_dir / "latest"
        ensure_directory(latest_dir)

        source = self.source_dir / "openstack" / "latest"
        copy_file(source / "meta_data.json", latest_dir / "meta_data.json")
        render_template(source / "user_data", latest_dir / "user_data", net)

        make_fat_image(image, self.label)
        copy_into_image(image, openstack_dir)
        log("INFO", f"Created {self.name} seed image {image}")
        return image.resolve()


class UbuntuCloudInit(CloudInit):
    """NoCloud layout used by Ubuntu cloud images."""

    name = "ubuntu"
    label = "cidata"
    static_files = ("meta-data", "user-data")
    network_file = "network-config"

    def prepare(self, tmp_dir: Path, net: GuestNetworkConfig) -> Path:
        image = tmp_dir / SEED_IMAGE_NAME
        staging = tmp_dir / "cloud-init" / self.name
        ensure_directory(staging)

        for filename in self.static_files:
            copy_file(self.source_dir / filename, staging / filename)
        render_template(self.source_dir / self.network_file, staging / self.network_file, net)

        make_fat_image(image, self.label)
        for filename in ("user-data", "meta-data", self.network_file):
            copy_into_image(image, staging / filename)
        log("INFO", f"Created {self.name} seed image {image}")
        return image.resolve()


CLOUD_INITS: Dict[str, Type[CloudInit]] = {
    ClearCloudInit.name: ClearCloudInit,
    UbuntuCloudInit.name: UbuntuCloudInit,
}


def get_cloud_init(name: str, resources_dir: Optional[Path] = None) -> CloudInit:
    try:
        variant = CLOUD_INITS[name]
    except KeyError:
        supported = ", ".join(sorted(CLOUD_INITS))
        raise HarnessError(f"Unknown cloud-init variant '{name}'. Supported: {supported}")
    return variant(resources_dir)
