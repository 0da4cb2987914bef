"""Snapshot assembly and health classification.

The assembler owns one collector per domain, runs them against the session's
CapabilitySet, merges their results with host identity fields and derives the
health level. At most one assembly runs at a time; callers that queued behind
an in-flight assembly receive its snapshot instead of starting another.
"""

import logging
import platform as platform_module
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Optional

import psutil

from sysmon.collectors import (
    CPUCollector,
    DiskCollector,
    DomainCollector,
    GPUCollector,
    MemoryCollector,
    NetworkCollector,
    PowerCollector,
    ProcessCollector,
)
from sysmon.collectors.base import CollectContext
from sysmon.collectors.cpu import read_load_average
from sysmon.core.capabilities import CapabilityMatrix
from sysmon.core.models import DOMAIN_NAMES, NA, HealthLevel, Snapshot
from sysmon.utils.formatting import format_uptime
from sysmon.utils.normalize import safe_number
from sysmon.utils.platform import PlatformProbe, get_probe
from sysmon.utils.sources import DEFAULT_TOOL_TIMEOUT, is_cancelled

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
UPTIME_PATH = "/proc/uptime"


@dataclass(frozen=True)
class HealthThresholds:
    """Percent thresholds for the health classification (inclusive)."""

    cpu_warning: int = 80
    cpu_critical: int = 95
    memory_warning: int = 90
    disk_warning: int = 90


DEFAULT_THRESHOLDS = HealthThresholds()


def classify_health(
    snapshot: Snapshot, thresholds: HealthThresholds = DEFAULT_THRESHOLDS
) -> HealthLevel:
    """Derive the health level from CPU, memory and disk usage.

    Critical when CPU is at or above the critical threshold; Warning when CPU,
    memory or disk is at or above its warning threshold; Good otherwise.

    Example:
        >>> classify_health(Snapshot(cpu=CpuSnapshot(current=96)))
        <HealthLevel.CRITICAL: 'Critical'>
    """
    cpu = snapshot.cpu.current
    if cpu >= thresholds.cpu_critical:
        return HealthLevel.CRITICAL
    if (
        cpu >= thresholds.cpu_warning
        or snapshot.memory.percent >= thresholds.memory_warning
        or snapshot.disk.percent >= thresholds.disk_warning
    ):
        return HealthLevel.WARNING
    return HealthLevel.GOOD


def build_collectors(
    platform_probe: Optional[PlatformProbe] = None,
    timeout: float = DEFAULT_TOOL_TIMEOUT,
    root: str = "/",
) -> Dict[str, DomainCollector]:
    """One collector per domain, keyed by the snapshot field it fills."""
    probe = platform_probe or get_probe()
    return {
        "cpu": CPUCollector(platform_probe=probe, timeout=timeout, root=root),
        "memory": MemoryCollector(timeout=timeout, root=root),
        "disk": DiskCollector(timeout=timeout, root=root),
        "network": NetworkCollector(timeout=timeout, root=root),
        "gpu": GPUCollector(timeout=timeout, root=root),
        "processes": ProcessCollector(timeout=timeout, root=root),
        "power": PowerCollector(platform_probe=probe, timeout=timeout, root=root),
    }


class SnapshotAssembler:
    """Runs every domain collector and produces one immutable Snapshot.

    Attributes:
        matrix: Capability matrix for the session (re-probed only on refresh).
        collectors: Domain name to collector.
        thresholds: Health thresholds.
        parallel: Fan collectors out to a thread pool instead of running them
            one after another.

    Example:
        >>> assembler = SnapshotAssembler(CapabilityMatrix())
        >>> snapshot = assembler.assemble()
        >>> print(snapshot.health, snapshot.cpu.current)
    """

    def __init__(
        self,
        matrix: CapabilityMatrix,
        collectors: Optional[Dict[str, DomainCollector]] = None,
        thresholds: HealthThresholds = DEFAULT_THRESHOLDS,
        parallel: bool = False,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
        root: str = "/",
    ):
        self.matrix = matrix
        self.platform = matrix.platform
        self.root = root
        self.timeout = timeout
        if collectors is None:
            collectors = build_collectors(matrix.probe, timeout=timeout, root=root)
        self.collectors = collectors
        self.thresholds = thresholds
        self.parallel = parallel

        self._lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._completed = 0
        self._last: Optional[Snapshot] = None

    @property
    def last_snapshot(self) -> Optional[Snapshot]:
        return self._last

    def assemble(self, cancel: Optional[threading.Event] = None) -> Snapshot:
        """Collect every domain and return a complete Snapshot.

        Never raises. If the cancel event is set mid-assembly the remaining
        domains hold sentinels and the result is not shared with waiters.
        """
        with self._state_lock:
            ticket = self._completed

        with self._lock:
            with self._state_lock:
                if self._completed > ticket and self._last is not None:
                    logger.debug("Reusing snapshot assembled while waiting")
                    return self._last

            snapshot = self._assemble(cancel)

            if not is_cancelled(cancel):
                with self._state_lock:
                    self._last = snapshot
                    self._completed += 1
            return snapshot

    def _collect_domains(self, cancel: Optional[threading.Event]) -> Dict[str, object]:
        capabilities = self.matrix.capabilities
        results: Dict[str, object] = {}

        if self.parallel:
            with ThreadPoolExecutor(
                max_workers=len(self.collectors), thread_name_prefix="collector"
            ) as pool:
                futures = {
                    name: pool.submit(collector.collect, capabilities, cancel)
                    for name, collector in self.collectors.items()
                }
                for name, future in futures.items():
                    try:
                        results[name] = future.result()
                    except Exception as e:
                        logger.error(f"Collector '{name}' failed: {e}", exc_info=True)
                        results[name] = self.collectors[name].sentinel()
            return results

        for name, collector in self.collectors.items():
            if is_cancelled(cancel):
                results[name] = collector.sentinel()
                continue
            results[name] = collector.collect(capabilities, cancel)
        return results

    def _assemble(self, cancel: Optional[threading.Event]) -> Snapshot:
        started = time.monotonic()
        domains = self._collect_domains(cancel)
        ctx = CollectContext(
            capabilities=self.matrix.capabilities,
            cancel=cancel,
            timeout=self.timeout,
            root=self.root,
        )

        snapshot = Snapshot(
            timestamp=datetime.now().strftime(TIMESTAMP_FORMAT),
            hostname=self._hostname(),
            kernel=self.platform.kernel or NA,
            uptime=self._uptime(ctx),
            load_avg=self._load_average(ctx),
            **{name: domains[name] for name in DOMAIN_NAMES if name in domains},
        )
        health = classify_health(snapshot, self.thresholds)

        logger.debug(
            f"Assembled snapshot in {time.monotonic() - started:.2f}s (health={health.value})"
        )
        return replace(snapshot, health=health.value)

    @staticmethod
    def _hostname() -> str:
        try:
            return socket.gethostname() or NA
        except OSError as e:
            logger.debug(f"Could not resolve hostname: {e}")
            return platform_module.node() or NA

    @staticmethod
    def _uptime(ctx: CollectContext) -> str:
        try:
            return format_uptime(time.time() - psutil.boot_time())
        except Exception as e:
            logger.debug(f"psutil.boot_time failed: {e}")

        result = ctx.read(UPTIME_PATH)
        if not result.ok:
            return NA
        seconds = safe_number(result.value.split()[0])
        if seconds is None:
            logger.debug(f"Unparseable {UPTIME_PATH}: {result.value!r}")
            return NA
        return format_uptime(seconds)

    @staticmethod
    def _load_average(ctx: CollectContext) -> str:
        load = read_load_average(ctx)
        if not load.ok:
            return "0.00 0.00 0.00"
        return " ".join(f"{value:.2f}" for value in load.value)
