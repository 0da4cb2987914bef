"""GPU discovery and live metrics.

Vendor chain:
    1. NvidiaSmiStrategy        nvidia-smi CSV query, full metric set
    2. GPUtilStrategy           GPUtil, bounded by the tool timeout and skipped
                                once nvidia-smi has timed out
    3. EmbeddedGpuStrategy      Adreno kgsl sysfs, clock and busy percent only
    4. GenericBusScanStrategy   lspci / DRM vendor ids, name only

Every strategy except the bus scan reports ``available=True``. Consumers check
``GpuSnapshot.available`` before reading utilization or memory fields; when it
is False those fields hold their sentinels.
"""

import glob
import logging
import os
import threading

from sysmon.collectors.base import CollectContext, DomainCollector, FallbackChain, Strategy
from sysmon.collectors.parsers import (
    NVIDIA_QUERY_FIELDS,
    parse_kgsl_busy,
    parse_lspci_gpu,
    parse_nvidia_smi_csv,
)
from sysmon.core.models import NA, GpuSnapshot, GpuVendor
from sysmon.core.result import Failure, FailureKind, Ok, Result, unavailable
from sysmon.utils.normalize import (
    clamp_percent,
    millidegrees_to_celsius,
    round_half_up,
    safe_number,
)

logger = logging.getLogger(__name__)

KGSL_PATH = "/sys/class/kgsl/kgsl-3d0"
DRM_CLASS_PATH = "/sys/class/drm"
DRM_CARD_GLOB = f"{DRM_CLASS_PATH}/card[0-9]*"

# PCI vendor ids seen under /sys/class/drm/card*/device/vendor
DRM_VENDORS = {
    "0x10de": "NVIDIA",
    "0x1002": "AMD",
    "0x8086": "Intel",
    "0x5143": "Qualcomm Adreno",
    "0x1af4": "Virtio",
    "0x15ad": "VMware",
}


def _whole(value, default=0) -> int:
    number = safe_number(value)
    if number is None:
        return default
    return int(round_half_up(number))


def _reading(value):
    """Whole-number reading or the "N/A" sentinel."""
    number = safe_number(value)
    if number is None:
        return NA
    return int(round_half_up(number))


def vendor_from_name(name: str) -> str:
    lowered = name.lower()
    if "nvidia" in lowered or "geforce" in lowered or "quadro" in lowered:
        return GpuVendor.NVIDIA.value
    if "adreno" in lowered:
        return GpuVendor.ADRENO.value
    return GpuVendor.NONE.value


class NvidiaSmiStrategy(Strategy):
    name = "nvidia-smi"
    requires = ("nvidia_smi",)

    def attempt(self, ctx: CollectContext) -> Result:
        result = ctx.run(
            [
                "nvidia-smi",
                f"--query-gpu={','.join(NVIDIA_QUERY_FIELDS)}",
                "--format=csv,noheader,nounits",
            ]
        )
        if not result.ok:
            return result
        parsed = parse_nvidia_smi_csv(result.value)
        if not parsed.ok:
            return parsed
        row = parsed.value

        pcie_link = NA
        if row["pcie.link.gen.current"] and row["pcie.link.width.current"]:
            pcie_link = f"Gen{row['pcie.link.gen.current']} x{row['pcie.link.width.current']}"

        return Ok(
            GpuSnapshot(
                available=True,
                name=row["name"] or NA,
                vendor=GpuVendor.NVIDIA.value,
                utilization=clamp_percent(safe_number(row["utilization.gpu"], 0)),
                temperature=_reading(row["temperature.gpu"]),
                memory_used=_whole(row["memory.used"]),
                memory_total=_whole(row["memory.total"]),
                fan=_reading(row["fan.speed"]),
                power=_reading(row["power.draw"]),
                clock_mhz=_whole(row["clocks.sm"]),
                pcie_link=pcie_link,
            )
        )


class GPUtilStrategy(Strategy):
    """GPUtil shells out to nvidia-smi itself, without a timeout.

    The call runs on a daemon worker bounded by the context timeout, and the
    strategy steps aside entirely once nvidia-smi has timed out in this chain.
    """

    name = "gputil"
    requires = ("gputil",)

    def blocked_by(self, failures) -> str:
        for failure in failures:
            if failure.source == NvidiaSmiStrategy.name and failure.kind is FailureKind.TIMEOUT:
                return "nvidia-smi timed out"
        return ""

    def attempt(self, ctx: CollectContext) -> Result:
        import GPUtil

        outcome = {}

        def query():
            try:
                outcome["gpus"] = GPUtil.getGPUs()
            except Exception as e:
                outcome["error"] = e

        worker = threading.Thread(target=query, name="gputil-query", daemon=True)
        worker.start()
        worker.join(ctx.timeout)
        if worker.is_alive():
            return Failure(FailureKind.TIMEOUT, f"GPUtil timed out after {ctx.timeout}s")
        if "error" in outcome:
            error = outcome["error"]
            return Failure(FailureKind.ERROR, f"{type(error).__name__}: {error}")

        gpus = outcome["gpus"]
        if not gpus:
            return unavailable("GPUtil found no GPUs")
        gpu = gpus[0]
        load = safe_number(gpu.load)
        return Ok(
            GpuSnapshot(
                available=True,
                name=gpu.name or NA,
                vendor=GpuVendor.NVIDIA.value,
                utilization=clamp_percent(load * 100 if load is not None else 0),
                temperature=_reading(gpu.temperature),
                memory_used=_whole(gpu.memoryUsed),
                memory_total=_whole(gpu.memoryTotal),
            )
        )


class EmbeddedGpuStrategy(Strategy):
    """Adreno GPUs on Android expose clock and busy counters through kgsl.

    Clock and busy percent are best-effort; memory, fan and power keep their
    sentinels.
    """

    name = "kgsl"
    requires = ("adreno",)

    def attempt(self, ctx: CollectContext) -> Result:
        clock = ctx.read_int(f"{KGSL_PATH}/gpuclk")
        busy = ctx.read(f"{KGSL_PATH}/gpubusy")
        if not clock.ok and not busy.ok:
            return clock

        model = ctx.read(f"{KGSL_PATH}/gpu_model")
        name = model.value.strip() if model.ok else "Adreno GPU"

        temperature = NA
        temp = ctx.read_int(f"{KGSL_PATH}/temp")
        if temp.ok:
            temperature = int(round_half_up(millidegrees_to_celsius(temp.value)))

        utilization = 0
        if busy.ok:
            percent = parse_kgsl_busy(busy.value)
            if percent.ok:
                utilization = clamp_percent(percent.value)

        return Ok(
            GpuSnapshot(
                available=True,
                name=name,
                vendor=GpuVendor.ADRENO.value,
                utilization=utilization,
                temperature=temperature,
                clock_mhz=int(round_half_up(clock.value / 1_000_000)) if clock.ok else 0,
            )
        )


class GenericBusScanStrategy(Strategy):
    """Name-only identification from lspci, else DRM card vendor ids."""

    name = "bus-scan"

    def attempt(self, ctx: CollectContext) -> Result:
        if ctx.capabilities.has("lspci"):
            result = ctx.run(["lspci"])
            if result.ok:
                named = parse_lspci_gpu(result.value)
                if named.ok:
                    return Ok(self._name_only(named.value))
        if ctx.capabilities.has("drm"):
            return self._from_drm(ctx)
        return unavailable("no bus scan source")

    def _from_drm(self, ctx: CollectContext) -> Result:
        for card in sorted(glob.glob(ctx.path(DRM_CARD_GLOB))):
            card_name = os.path.basename(card)
            if "-" in card_name:
                # connector nodes such as card0-HDMI-A-1
                continue
            vendor = ctx.read(f"{DRM_CLASS_PATH}/{card_name}/device/vendor")
            if not vendor.ok:
                continue
            vendor_id = vendor.value.strip().lower()
            vendor_name = DRM_VENDORS.get(vendor_id, f"Unknown vendor {vendor_id}")
            return Ok(self._name_only(f"{vendor_name} GPU"))
        return unavailable("no DRM cards with a vendor id")

    @staticmethod
    def _name_only(name: str) -> GpuSnapshot:
        return GpuSnapshot(available=False, name=name, vendor=vendor_from_name(name))


class GPUCollector(DomainCollector):
    """Collects GPU metrics through the vendor chain.

    Example:
        >>> gpu = GPUCollector()
        >>> snap = gpu.collect(capabilities)
        >>> if snap.available:
        ...     print(f"{snap.name}: {snap.utilization}% at {snap.temperature}C")
    """

    domain = "gpu"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.chain = FallbackChain(
            "gpu",
            [
                NvidiaSmiStrategy(),
                GPUtilStrategy(),
                EmbeddedGpuStrategy(),
                GenericBusScanStrategy(),
            ],
        )

    def sentinel(self) -> GpuSnapshot:
        return GpuSnapshot()

    def _collect(self, ctx: CollectContext) -> GpuSnapshot:
        result = self.chain.run(ctx)
        if not result.ok:
            logger.debug(f"No GPU detected: {result.detail}")
            return self.sentinel()
        snapshot = result.value
        if not snapshot.available:
            # Name-only results never carry live metrics
            return GpuSnapshot(available=False, name=snapshot.name, vendor=snapshot.vendor)
        return snapshot
