"""Tests for bootcheck.cloud_init module."""

from __future__ import annotations

import json

import pytest

from bootcheck.cloud_init import (
    ClearCloudInit,
    UbuntuCloudInit,
    get_cloud_init,
    substitute_placeholders,
)
from bootcheck.constants import DEFAULT_RESOURCES_DIR, PLACEHOLDER_GUEST_IP, PLACEHOLDER_GUEST_MAC, PLACEHOLDER_HOST_IP
from bootcheck.exceptions import HarnessError


class TestSubstitutePlaceholders:
    def test_replaces_every_occurrence(self, guest_net):
        text = "gw 192.168.2.1 ip 192.168.2.2 mac 12:34:56:78:90:ab gw 192.168.2.1"
        out = substitute_placeholders(text, guest_net)
        assert out == "gw 192.168.6.1 ip 192.168.6.2 mac 2e:01:02:03:04:05 gw 192.168.6.1"

    def test_is_idempotent(self, guest_net):
        text = "192.168.2.1 192.168.2.2 12:34:56:78:90:ab"
        once = substitute_placeholders(text, guest_net)
        assert substitute_placeholders(once, guest_net) == once

    def test_text_without_placeholders_is_unchanged(self, guest_net):
        assert substitute_placeholders("nothing here", guest_net) == "nothing here"


class TestShippedTemplates:
    @pytest.mark.parametrize(
        "relative",
        ["clear/openstack/latest/user_data", "ubuntu/network-config"],
    )
    def test_templated_files_carry_placeholders(self, relative):
        content = (DEFAULT_RESOURCES_DIR / "cloud-init" / relative).read_text()
        for placeholder in (PLACEHOLDER_HOST_IP, PLACEHOLDER_GUEST_IP, PLACEHOLDER_GUEST_MAC):
            assert placeholder in content

    def test_clear_metadata_is_json(self):
        path = DEFAULT_RESOURCES_DIR / "cloud-init" / "clear" / "openstack" / "latest" / "meta_data.json"
        assert "uuid" in json.loads(path.read_text())

    @pytest.mark.parametrize("relative", ["clear/openstack/latest/user_data", "ubuntu/user-data"])
    def test_user_data_creates_test_user(self, relative):
        content = (DEFAULT_RESOURCES_DIR / "cloud-init" / relative).read_text()
        assert content.startswith("#cloud-config")
        assert "name: cloud" in content
        assert "cloud123" in content


class TestClearCloudInit:
    def test_prepare_builds_config_drive(self, recorder, tmp_path, guest_net):
        image = ClearCloudInit().prepare(tmp_path, guest_net)

        assert image.is_absolute()
        assert image == (tmp_path / "cloudinit").resolve()
        openstack = tmp_path / "cloud-init" / "clear" / "openstack"
        assert recorder.calls == [
            ["mkdosfs", "-n", "config-2", "-C", str(tmp_path / "cloudinit"), "8192"],
            ["mcopy", "-o", "-i", str(tmp_path / "cloudinit"), "-s", str(openstack), "::"],
        ]

    def test_user_data_is_rendered(self, recorder, tmp_path, guest_net):
        ClearCloudInit().prepare(tmp_path, guest_net)
        user_data = (tmp_path / "cloud-init" / "clear" / "openstack" / "latest" / "user_data").read_text()
        assert "192.168.6.1" in user_data
        assert "192.168.6.2" in user_data
        assert "2e:01:02:03:04:05" in user_data
        assert PLACEHOLDER_GUEST_MAC not in user_data

    def test_meta_data_is_copied_verbatim(self, recorder, tmp_path, guest_net):
        ClearCloudInit().prepare(tmp_path, guest_net)
        source = DEFAULT_RESOURCES_DIR / "cloud-init" / "clear" / "openstack" / "latest" / "meta_data.json"
        staged = tmp_path / "cloud-init" / "clear" / "openstack" / "latest" / "meta_data.json"
        assert staged.read_bytes() == source.read_bytes()

    def test_mkdosfs_failure_propagates(self, recorder, tmp_path, guest_net):
        recorder.fail("mkdosfs")
        with pytest.raises(HarnessError):
            ClearCloudInit().prepare(tmp_path, guest_net)
        assert recorder.commands("mcopy") == []


class TestUbuntuCloudInit:
    def test_prepare_copies_each_file(self, recorder, tmp_path, guest_net):
        image = UbuntuCloudInit().prepare(tmp_path, guest_net)

        staging = tmp_path / "cloud-init" / "ubuntu"
        img = str(tmp_path / "cloudinit")
        assert image == (tmp_path / "cloudinit").resolve()
        assert recorder.calls == [
            ["mkdosfs", "-n", "cidata", "-C", img, "8192"],
            ["mcopy", "-o", "-i", img, "-s", str(staging / "user-data"), "::"],
            ["mcopy", "-o", "-i", img, "-s", str(staging / "meta-data"), "::"],
            ["mcopy", "-o", "-i", img, "-s", str(staging / "network-config"), "::"],
        ]

    def test_only_network_config_is_rendered(self, recorder, tmp_path, guest_net):
        UbuntuCloudInit().prepare(tmp_path, guest_net)
        staging = tmp_path / "cloud-init" / "ubuntu"
        source = DEFAULT_RESOURCES_DIR / "cloud-init" / "ubuntu"

        network = (staging / "network-config").read_text()
        assert "192.168.6.2/24" in network
        assert "2e:01:02:03:04:05" in network
        assert PLACEHOLDER_HOST_IP not in network
        for name in ("meta-data", "user-data"):
            assert (staging / name).read_bytes() == (source / name).read_bytes()

    def test_rendered_file_differs_only_in_placeholders(self, recorder, tmp_path, guest_net):
        UbuntuCloudInit().prepare(tmp_path, guest_net)
        template = (DEFAULT_RESOURCES_DIR / "cloud-init" / "ubuntu" / "network-config").read_text()
        expected = (
            template.replace(PLACEHOLDER_HOST_IP, guest_net.host_ip)
            .replace(PLACEHOLDER_GUEST_IP, guest_net.guest_ip)
            .replace(PLACEHOLDER_GUEST_MAC, guest_net.guest_mac)
        )
        assert (tmp_path / "cloud-init" / "ubuntu" / "network-config").read_text() == expected

    def test_missing_template_raises(self, recorder, tmp_path, guest_net):
        empty = tmp_path / "resources"
        work = tmp_path / "work"
        work.mkdir()
        with pytest.raises(HarnessError, match="Failed to copy"):
            UbuntuCloudInit(empty).prepare(work, guest_net)
        assert recorder.calls == []


class TestGetCloudInit:
    def test_known_variants(self, tmp_path):
        assert isinstance(get_cloud_init("clear"), ClearCloudInit)
        variant = get_cloud_init("ubuntu", tmp_path)
        assert isinstance(variant, UbuntuCloudInit)
        assert variant.source_dir == tmp_path / "cloud-init" / "ubuntu"

    def test_unknown_variant(self):
        with pytest.raises(HarnessError, match="Unknown cloud-init variant 'fedora'"):
            get_cloud_init("fedora")
