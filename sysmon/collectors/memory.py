"""Memory and swap usage.

Chain: /proc/meminfo → psutil.virtual_memory()/swap_memory().

Used memory is ``MemTotal - MemAvailable`` when the kernel exports
MemAvailable, otherwise ``MemTotal - MemFree - Buffers - Cached``.
"""

import logging
from typing import Dict

import psutil

from sysmon.collectors.base import (
    CollectContext,
    DomainCollector,
    FallbackChain,
    FunctionStrategy,
)
from sysmon.collectors.parsers import parse_meminfo
from sysmon.core.models import MemorySnapshot
from sysmon.core.result import Ok, Result
from sysmon.utils.normalize import kb_to_gb, kb_to_mb, percent_of

logger = logging.getLogger(__name__)

MEMINFO_PATH = "/proc/meminfo"


def memory_from_counters(counters: Dict[str, int]) -> MemorySnapshot:
    """Build a MemorySnapshot from meminfo-style kilobyte counters.

    Example:
        >>> snap = memory_from_counters({"MemTotal": 16777216, "MemAvailable": 8388608})
        >>> snap.total, snap.used, snap.percent
        (16.0, 8.0, 50)
    """
    total = counters.get("MemTotal", 0)
    cached = counters.get("Cached", 0)
    if "MemAvailable" in counters:
        available = counters["MemAvailable"]
        used = total - available
    else:
        free = counters.get("MemFree", 0)
        buffers = counters.get("Buffers", 0)
        used = total - free - buffers - cached
        available = total - used
    used = max(used, 0)

    swap_total = counters.get("SwapTotal", 0)
    swap_used = max(swap_total - counters.get("SwapFree", 0), 0)

    return MemorySnapshot(
        total=kb_to_gb(total),
        used=kb_to_gb(used),
        available=kb_to_gb(available),
        cached=kb_to_gb(cached),
        percent=percent_of(used, total),
        swap_used=kb_to_mb(swap_used),
        swap_total=kb_to_mb(swap_total),
    )


def counters_from_meminfo(ctx: CollectContext) -> Result:
    result = ctx.read(MEMINFO_PATH)
    if not result.ok:
        return result
    return parse_meminfo(result.value)


def counters_from_psutil(ctx: CollectContext) -> Result:
    virtual = psutil.virtual_memory()
    swap = psutil.swap_memory()
    return Ok(
        {
            "MemTotal": virtual.total // 1024,
            "MemAvailable": virtual.available // 1024,
            "Cached": getattr(virtual, "cached", 0) // 1024,
            "SwapTotal": swap.total // 1024,
            "SwapFree": swap.free // 1024,
        }
    )


class MemoryCollector(DomainCollector):
    """Collects memory metrics.

    Example:
        >>> mem = MemoryCollector()
        >>> snap = mem.collect(capabilities)
        >>> print(f"Memory: {snap.percent}% of {snap.total} GB")
    """

    domain = "memory"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.chain = FallbackChain(
            "memory",
            [
                FunctionStrategy("meminfo", counters_from_meminfo, ("procfs",)),
                FunctionStrategy("psutil", counters_from_psutil),
            ],
        )

    def sentinel(self) -> MemorySnapshot:
        return MemorySnapshot()

    def _collect(self, ctx: CollectContext) -> MemorySnapshot:
        result = self.chain.run(ctx)
        if not result.ok:
            self._warn_exhausted(result)
            return self.sentinel()
        return memory_from_counters(result.value)
