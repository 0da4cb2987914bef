"""Unit tests for DiskCollector.

Key Testing Patterns:
    - psutil.disk_usage / disk_partitions and os.statvfs are patched
    - Block device stat files live under the fake_root fixture

Example Run:
    pytest tests/unit/sysmon/collectors/test_disk_collector.py -v
"""

import os
from unittest.mock import MagicMock, patch

import pytest

from sysmon.collectors.disk import (
    DiskCollector,
    block_device_name,
    io_from_psutil,
    io_from_sysfs,
    is_device_backed,
    mounts_from_procfs,
)
from sysmon.core.capabilities import CapabilitySet
from sysmon.core.models import DiskSnapshot

GB = 1024 ** 3
MB = 1024 ** 2


def partition(device, mountpoint, fstype="ext4"):
    return MagicMock(device=device, mountpoint=mountpoint, fstype=fstype)


@pytest.fixture
def usage():
    """disk_usage(): / is 40 of 100 GB, everything else 10 of 50 GB."""

    def fake_usage(mount):
        if mount == "/":
            return MagicMock(total=100 * GB, used=40 * GB, free=60 * GB)
        return MagicMock(total=50 * GB, used=10 * GB, free=40 * GB)

    with patch("sysmon.collectors.disk.psutil.disk_usage", side_effect=fake_usage) as mock:
        yield mock


@pytest.fixture
def statvfs():
    with patch(
        "sysmon.collectors.disk.os.statvfs",
        return_value=MagicMock(f_files=1000, f_ffree=880),
    ) as mock:
        yield mock


class TestDeviceFilter:
    @pytest.mark.parametrize(
        "device,fstype,expected",
        [
            ("/dev/sda1", "ext4", True),
            ("/dev/nvme0n1p2", "btrfs", True),
            ("/dev/loop0", "squashfs", False),
            ("tmpfs", "tmpfs", False),
            ("/dev/sdb1", "tmpfs", False),
            ("overlay", "overlay", False),
        ],
    )
    def test_is_device_backed(self, device, fstype, expected):
        assert is_device_backed(device, fstype) is expected


class TestDiskCollector:
    """Test suite for DiskCollector.collect()."""

    @patch("sysmon.collectors.disk.psutil.disk_io_counters", return_value=None)
    @patch("sysmon.collectors.disk.psutil.disk_partitions")
    def test_root_usage(self, mock_partitions, mock_io, usage, statvfs, fake_root):
        root, _ = fake_root
        mock_partitions.return_value = [
            partition("/dev/sda2", "/home"),
            partition("/dev/sda1", "/"),
            partition("tmpfs", "/run", "tmpfs"),
            partition("/dev/loop3", "/snap/core/1", "squashfs"),
        ]

        snap = DiskCollector(root=root).collect(CapabilitySet({}))

        assert snap.total == 100.0
        assert snap.used == 40.0
        assert snap.available == 60.0
        assert snap.percent == 40
        assert snap.inodes_percent == 12
        assert [fs.mount for fs in snap.filesystems] == ["/", "/home"]
        assert snap.filesystems[1].percent == 20
        assert (snap.read, snap.written) == (0, 0)

    @patch("sysmon.collectors.disk.psutil.disk_partitions", side_effect=OSError("denied"))
    def test_procfs_fallback(self, mock_partitions, usage, statvfs, fake_root):
        root, write = fake_root
        write(
            "/proc/mounts",
            "proc /proc proc rw 0 0\n/dev/sda1 / ext4 rw,relatime 0 0\n",
        )

        snap = DiskCollector(root=root).collect(
            CapabilitySet({"procfs": True, "sysfs": True})
        )

        assert snap.percent == 40
        assert snap.filesystems[0].device == "/dev/sda1"

    @patch("sysmon.collectors.disk.psutil.disk_partitions", return_value=[])
    def test_unmeasurable_root_yields_sentinel_values(self, mock_partitions, fake_root):
        root, _ = fake_root
        with patch("sysmon.collectors.disk.psutil.disk_usage", side_effect=PermissionError("no")), \
                patch("sysmon.collectors.disk.psutil.disk_io_counters", return_value=None):
            snap = DiskCollector(root=root).collect(CapabilitySet({}))

        assert snap == DiskSnapshot()


class TestDiskIo:
    """Test suite for block I/O strategies."""

    def test_sysfs_whole_disk(self, make_ctx, fake_root):
        root, write = fake_root
        write("/sys/block/sdz/stat", "100 0 204800 10 50 0 102400 20 0 30 30\n")

        result = io_from_sysfs(make_ctx(root=root), device="/dev/sdz")

        assert result.value == (100, 50)

    def test_sysfs_partition_maps_to_parent(self, make_ctx, fake_root, tmp_path):
        root, write = fake_root
        write("/sys/devices/pci0000:00/block/sdz/sdz1/partition", "1\n")
        write("/sys/block/sdz/stat", "100 0 2048 10 50 0 4096 20 0 30 30\n")
        (tmp_path / "sys/class/block").mkdir(parents=True)
        os.symlink(
            tmp_path / "sys/devices/pci0000:00/block/sdz/sdz1",
            tmp_path / "sys/class/block/sdz1",
        )
        ctx = make_ctx(root=root)

        assert block_device_name("/dev/sdz1", ctx) == "sdz"
        assert io_from_sysfs(ctx, device="/dev/sdz1").value == (1, 2)

    def test_sysfs_unknown_device(self, make_ctx):
        assert not io_from_sysfs(make_ctx(), device="").ok

    def test_psutil_per_disk(self, make_ctx, fake_root):
        root, _ = fake_root
        per_disk = {"sdz": MagicMock(read_bytes=10 * MB, write_bytes=5 * MB)}

        def counters(perdisk=False):
            return per_disk if perdisk else None

        with patch("sysmon.collectors.disk.psutil.disk_io_counters", side_effect=counters):
            result = io_from_psutil(make_ctx(root=root), device="/dev/sdz")

        assert result.value == (10, 5)

    def test_psutil_total_when_device_unknown(self, make_ctx):
        totals = MagicMock(read_bytes=3 * MB, write_bytes=MB)

        with patch("sysmon.collectors.disk.psutil.disk_io_counters", return_value=totals):
            assert io_from_psutil(make_ctx(), device="").value == (3, 1)

    def test_mounts_from_procfs_missing(self, make_ctx, fake_root):
        root, _ = fake_root
        assert not mounts_from_procfs(make_ctx(root=root)).ok
