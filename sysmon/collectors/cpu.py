"""CPU usage, model, core count and temperature.

Usage chain:
    1. mpstat     per-core sampler, 100 - idle of the "all" row
    2. top        single batch snapshot, 100 - idle
    3. loadavg    1-minute load / cores * 100, clamped to [0, 100]

Temperature chain:
    1. sensors        lm-sensors line labelled CPU / Package / Tctl / Core 0
    2. psutil         coretemp / k10temp / zenpower / cpu_thermal entries
    3. thermal_zone   /sys/class/thermal zones with CPU-like types
    (sentinel "N/A")
"""

import glob
import logging
import os
import re
from typing import Optional

import psutil

from sysmon.collectors.base import (
    CollectContext,
    DomainCollector,
    FallbackChain,
    FunctionStrategy,
)
from sysmon.collectors.parsers import (
    parse_loadavg,
    parse_mpstat_idle,
    parse_sensors_cpu_temp,
    parse_top_idle,
)
from sysmon.core.models import NA, CpuSnapshot, Metric
from sysmon.core.result import FailureKind, Ok, Result, parse_failure, unavailable
from sysmon.utils.normalize import celsius_metric, percent_metric
from sysmon.utils.platform import PlatformProbe, get_probe

logger = logging.getLogger(__name__)

LOADAVG_PATH = "/proc/loadavg"
THERMAL_CLASS_PATH = "/sys/class/thermal"
THERMAL_ZONE_GLOB = f"{THERMAL_CLASS_PATH}/thermal_zone*"
CPU_ZONE_TYPES = re.compile(r"cpu|x86_pkg_temp|acpitz|soc|tsens", re.IGNORECASE)

# psutil sensor groups that describe the CPU package
PSUTIL_CPU_SENSORS = ["coretemp", "k10temp", "zenpower", "cpu_thermal"]


def get_core_count() -> int:
    """Logical core count, 0 when it cannot be determined."""
    try:
        cores = psutil.cpu_count(logical=True)
    except Exception as e:
        logger.debug(f"psutil.cpu_count failed: {e}")
        cores = None
    return cores or os.cpu_count() or 0


def measured(metric: Metric, source: str) -> Result:
    """Ok for a numeric Metric; a non-numeric one lets the chain move on."""
    if metric.available:
        return Ok(metric)
    return parse_failure(f"{source} gave no numeric reading")


def read_load_average(ctx: CollectContext) -> Result:
    """(1m, 5m, 15m) load from /proc/loadavg, else psutil.getloadavg()."""
    result = ctx.read(LOADAVG_PATH)
    if result.ok:
        parsed = parse_loadavg(result.value)
        if parsed.ok:
            return parsed
    try:
        return Ok(tuple(float(value) for value in psutil.getloadavg()))
    except (AttributeError, OSError) as e:
        return unavailable(f"no load average source: {e}")


# ----------------------------
# Usage strategies
# ----------------------------


def usage_from_mpstat(ctx: CollectContext) -> Result:
    result = ctx.run(["mpstat", "-P", "ALL", "1", "1"])
    if not result.ok:
        return result
    idle = parse_mpstat_idle(result.value)
    if not idle.ok:
        return idle
    return measured(percent_metric(100 - idle.value), "mpstat")


def usage_from_top(ctx: CollectContext) -> Result:
    result = ctx.run(["top", "-b", "-n", "1"])
    if not result.ok:
        return result
    idle = parse_top_idle(result.value)
    if not idle.ok:
        return idle
    return measured(percent_metric(100 - idle.value), "top")


def usage_from_loadavg(ctx: CollectContext) -> Result:
    load = read_load_average(ctx)
    if not load.ok:
        return load
    cores = max(get_core_count(), 1)
    return measured(percent_metric(load.value[0] / cores * 100), "load average")


# ----------------------------
# Temperature strategies
# ----------------------------


def temperature_from_sensors(ctx: CollectContext) -> Result:
    result = ctx.run(["sensors"])
    if not result.ok:
        return result
    parsed = parse_sensors_cpu_temp(result.value)
    if not parsed.ok:
        return parsed
    return measured(celsius_metric(parsed.value), "sensors")


def temperature_from_psutil(ctx: CollectContext) -> Result:
    temps = psutil.sensors_temperatures()
    for sensor_name in PSUTIL_CPU_SENSORS:
        entries = temps.get(sensor_name) or []
        for entry in entries:
            if entry.label and ("Package" in entry.label or "Tctl" in entry.label):
                return measured(celsius_metric(entry.current), sensor_name)
        if entries:
            return measured(celsius_metric(entries[0].current), sensor_name)
    return unavailable("no CPU sensor group in psutil")


def temperature_from_thermal_zones(ctx: CollectContext) -> Result:
    last: Result = unavailable("no CPU-like thermal zone")
    for zone in sorted(glob.glob(ctx.path(THERMAL_ZONE_GLOB))):
        zone_path = f"{THERMAL_CLASS_PATH}/{os.path.basename(zone)}"
        zone_type = ctx.read(f"{zone_path}/type")
        if zone_type.ok and not CPU_ZONE_TYPES.search(zone_type.value):
            continue
        raw = ctx.read(f"{zone_path}/temp") if zone_type.ok else zone_type
        if not raw.ok:
            if raw.kind is FailureKind.CANCELLED:
                return raw
            last = raw
            continue
        metric = celsius_metric(raw.value)
        if metric.available:
            return Ok(metric)
        last = parse_failure(f"{zone_path}/temp is not numeric")
    return last


class CPUCollector(DomainCollector):
    """Collects CPU metrics through ordered fallback chains.

    Attributes:
        platform: Platform probe used for the CPU model string.
        usage_chain: mpstat → top → load average.
        temperature_chain: sensors → psutil → thermal zones.

    Example:
        >>> cpu = CPUCollector()
        >>> snap = cpu.collect(capabilities)
        >>> print(f"CPU: {snap.model}, Usage: {snap.current}%")
    """

    domain = "cpu"

    def __init__(self, platform_probe: Optional[PlatformProbe] = None, **kwargs):
        super().__init__(**kwargs)
        self.platform = platform_probe or get_probe()
        self.usage_chain = FallbackChain(
            "cpu.usage",
            [
                FunctionStrategy("mpstat", usage_from_mpstat, ("mpstat",)),
                FunctionStrategy("top", usage_from_top, ("top",)),
                FunctionStrategy("loadavg", usage_from_loadavg),
            ],
        )
        self.temperature_chain = FallbackChain(
            "cpu.temperature",
            [
                FunctionStrategy("sensors", temperature_from_sensors, ("sensors_tool",)),
                FunctionStrategy("psutil", temperature_from_psutil, ("psutil_sensors",)),
                FunctionStrategy("thermal_zone", temperature_from_thermal_zones, ("thermal",)),
            ],
        )

    def sentinel(self) -> CpuSnapshot:
        return CpuSnapshot()

    def _collect(self, ctx: CollectContext) -> CpuSnapshot:
        usage = self.usage_chain.run(ctx)
        self._warn_exhausted(usage)
        current = usage.value.or_sentinel(0) if usage.ok else 0

        reading = self.temperature_chain.run(ctx)
        temperature = reading.value.or_sentinel() if reading.ok else NA

        return CpuSnapshot(
            current=current,
            avg=current,
            max=current,
            min=current,
            model=self.platform.get_cpu_model(),
            cores=get_core_count(),
            temperature=temperature,
            source=usage.source if usage.ok else NA,
        )
