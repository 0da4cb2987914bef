"""Disk usage, inode usage and block I/O counters.

Mount enumeration chain:
    1. psutil     disk_partitions(all=False), device-backed only
    2. mounts     /proc/mounts, device-backed only

Every entry is sized with psutil.disk_usage() and os.statvfs() (inodes are
reported separately from bytes). Entries are ordered by mount path; virtual
and loop-backed filesystems are skipped.

I/O chain for the root filesystem's block device:
    1. sysfs      /sys/block/<dev>/stat sectors * 512
    2. psutil     disk_io_counters(perdisk=True)
"""

import logging
import os
from functools import partial
from typing import Dict, List, Optional, Tuple

import psutil

from sysmon.collectors.base import (
    CollectContext,
    DomainCollector,
    FallbackChain,
    FunctionStrategy,
)
from sysmon.collectors.parsers import parse_block_stat, parse_proc_mounts
from sysmon.core.models import DiskSnapshot, FilesystemEntry
from sysmon.core.result import Ok, Result, unavailable
from sysmon.utils.normalize import (
    BYTES_PER_MB,
    bytes_to_gb,
    percent_of,
    round_half_up,
    sectors_to_mb,
)

logger = logging.getLogger(__name__)

MOUNTS_PATH = "/proc/mounts"
ROOT_MOUNT = "/"

# Filesystems that never represent real storage
VIRTUAL_FSTYPES = frozenset(
    [
        "autofs", "binfmt_misc", "bpf", "cgroup", "cgroup2", "configfs", "debugfs",
        "devpts", "devtmpfs", "fusectl", "hugetlbfs", "mqueue", "nsfs", "overlay",
        "proc", "pstore", "ramfs", "securityfs", "squashfs", "sysfs", "tmpfs",
        "tracefs",
    ]
)


def is_device_backed(device: str, fstype: str) -> bool:
    if not device.startswith("/dev/") or device.startswith("/dev/loop"):
        return False
    return fstype not in VIRTUAL_FSTYPES


def measure_mount(device: str, mount: str, fstype: str) -> Optional[FilesystemEntry]:
    """Size one mount; None when it cannot be stat'ed (permission, stale)."""
    try:
        usage = psutil.disk_usage(mount)
    except (PermissionError, OSError) as e:
        logger.debug(f"Skipping inaccessible mount {mount}: {e}")
        return None

    inodes_total = inodes_used = 0
    try:
        stats = os.statvfs(mount)
        inodes_total = stats.f_files
        inodes_used = stats.f_files - stats.f_ffree
    except (OSError, AttributeError) as e:
        logger.debug(f"No inode counters for {mount}: {e}")

    return FilesystemEntry(
        mount=mount,
        device=device,
        fstype=fstype,
        total=bytes_to_gb(usage.total),
        used=bytes_to_gb(usage.used),
        available=bytes_to_gb(usage.free),
        percent=percent_of(usage.used, usage.total),
        inodes_total=inodes_total,
        inodes_used=inodes_used,
        inodes_percent=percent_of(inodes_used, inodes_total),
    )


def _entries(mounts: List[Tuple[str, str, str]], ctx: CollectContext) -> Result:
    seen: Dict[str, FilesystemEntry] = {}
    for device, mount, fstype in mounts:
        if ctx.cancelled or mount in seen or not is_device_backed(device, fstype):
            continue
        entry = measure_mount(device, mount, fstype)
        if entry is not None:
            seen[mount] = entry
    if not seen:
        return unavailable("no device-backed mounts")
    return Ok([seen[mount] for mount in sorted(seen)])


def mounts_from_psutil(ctx: CollectContext) -> Result:
    partitions = psutil.disk_partitions(all=False)
    return _entries([(p.device, p.mountpoint, p.fstype) for p in partitions], ctx)


def mounts_from_procfs(ctx: CollectContext) -> Result:
    result = ctx.read(MOUNTS_PATH)
    if not result.ok:
        return result
    return _entries(parse_proc_mounts(result.value), ctx)


def block_device_name(device: str, ctx: CollectContext) -> str:
    """Map a partition device to its whole-disk sysfs name.

    Example:
        /dev/nvme0n1p2 -> nvme0n1, /dev/sda1 -> sda, /dev/mapper/root -> dm-0
    """
    name = os.path.basename(os.path.realpath(device))
    node = ctx.path(f"/sys/class/block/{name}")
    if os.path.exists(os.path.join(node, "partition")):
        return os.path.basename(os.path.dirname(os.path.realpath(node)))
    return name


def io_from_sysfs(ctx: CollectContext, device: str) -> Result:
    if not device:
        return unavailable("root device unknown")
    name = block_device_name(device, ctx)
    result = ctx.read(f"/sys/block/{name}/stat")
    if not result.ok:
        return result
    sectors = parse_block_stat(result.value)
    if not sectors.ok:
        return sectors
    read_sectors, write_sectors = sectors.value
    return Ok((sectors_to_mb(read_sectors), sectors_to_mb(write_sectors)))


def io_from_psutil(ctx: CollectContext, device: str) -> Result:
    counters = None
    if device:
        per_disk = psutil.disk_io_counters(perdisk=True) or {}
        counters = per_disk.get(block_device_name(device, ctx))
    if counters is None:
        counters = psutil.disk_io_counters()
    if counters is None:
        return unavailable("psutil has no disk counters")
    return Ok(
        (
            int(round_half_up(counters.read_bytes / BYTES_PER_MB)),
            int(round_half_up(counters.write_bytes / BYTES_PER_MB)),
        )
    )


def io_chain(device: str) -> FallbackChain:
    return FallbackChain(
        "disk.io",
        [
            FunctionStrategy("sysfs", partial(io_from_sysfs, device=device), ("sysfs",)),
            FunctionStrategy("psutil", partial(io_from_psutil, device=device)),
        ],
    )


class DiskCollector(DomainCollector):
    """Collects disk usage for the root filesystem and every real mount.

    Example:
        >>> disk = DiskCollector()
        >>> snap = disk.collect(capabilities)
        >>> print(f"Disk: {snap.percent}% of {snap.total} GB")
    """

    domain = "disk"

    def __init__(self, root_mount: str = ROOT_MOUNT, **kwargs):
        super().__init__(**kwargs)
        self.root_mount = root_mount
        self.mount_chain = FallbackChain(
            "disk.mounts",
            [
                FunctionStrategy("psutil", mounts_from_psutil),
                FunctionStrategy("mounts", mounts_from_procfs, ("procfs",)),
            ],
        )

    def sentinel(self) -> DiskSnapshot:
        return DiskSnapshot()

    def _collect(self, ctx: CollectContext) -> DiskSnapshot:
        mounts = self.mount_chain.run(ctx)
        self._warn_exhausted(mounts)
        filesystems: List[FilesystemEntry] = mounts.value if mounts.ok else []

        root = next((fs for fs in filesystems if fs.mount == self.root_mount), None)
        if root is None:
            root = measure_mount("", self.root_mount, "")
        if root is None and filesystems:
            root = filesystems[0]
        if root is None:
            root = FilesystemEntry()

        device = root.device if root.device.startswith("/dev/") else ""
        io = io_chain(device).run(ctx)
        read_mb, written_mb = io.value if io.ok else (0, 0)

        return DiskSnapshot(
            total=root.total,
            used=root.used,
            available=root.available,
            percent=root.percent,
            read=read_mb,
            written=written_mb,
            inodes_percent=root.inodes_percent,
            filesystems=tuple(filesystems),
        )
