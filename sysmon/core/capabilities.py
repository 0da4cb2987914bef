"""Capability matrix: which optional data sources are usable on this host.

Built once per session from the detected platform plus a bounded set of cheap
probes (path existence and tool presence) and at most one live probe of the
Termux battery helper, which can be installed yet refuse to answer when the
Android permission was never granted.

Every probe result is a boolean. A probe that raises is recorded as False and
logged; it never fails the build. The resulting CapabilitySet is immutable and
safe to share between collector threads. Re-probing is an explicit call to
CapabilityMatrix.refresh().
"""

import glob
import importlib.util
import json
import logging
import os
import shutil
import threading
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Optional, Union

import psutil

from sysmon.core.models import GpuVendor, PlatformInfo
from sysmon.utils.platform import PlatformProbe, get_probe
from sysmon.utils.sources import DEFAULT_TOOL_TIMEOUT, run_tool

logger = logging.getLogger(__name__)

CapabilityValue = Union[bool, GpuVendor]

# Tool-presence capabilities: capability name -> executable
TOOL_CAPABILITIES: Dict[str, str] = {
    "sensors_tool": "sensors",
    "mpstat": "mpstat",
    "top": "top",
    "ps": "ps",
    "nvidia_smi": "nvidia-smi",
    "lspci": "lspci",
    "ip_tool": "ip",
    "termux_api": "termux-battery-status",
}

# Path-existence capabilities: capability name -> path
PATH_CAPABILITIES: Dict[str, str] = {
    "procfs": "/proc/stat",
    "sysfs": "/sys/class",
    "drm": "/sys/class/drm",
    "adreno": "/sys/class/kgsl/kgsl-3d0",
}

THERMAL_ZONE_GLOB = "/sys/class/thermal/thermal_zone*"
POWER_SUPPLY_GLOB = "/sys/class/power_supply/*"
NVIDIA_DRIVER_PATH = "/proc/driver/nvidia/version"

CAPABILITY_NAMES = tuple(
    sorted(
        list(TOOL_CAPABILITIES)
        + list(PATH_CAPABILITIES)
        + ["thermal", "battery", "gputil", "mobile_api", "psutil_sensors", "gpu_vendor"]
    )
)


class CapabilitySet(Mapping):
    """Read-only mapping of capability name to bool (or GpuVendor).

    Unknown names read as False rather than raising, so collectors can ask
    about any source without guarding.

    Example:
        >>> caps = CapabilitySet({"procfs": True, "gpu_vendor": GpuVendor.NONE})
        >>> caps.has("procfs"), caps.has("mpstat")
        (True, False)
    """

    def __init__(self, values: Mapping[str, CapabilityValue]):
        merged: Dict[str, CapabilityValue] = {name: False for name in CAPABILITY_NAMES}
        merged["gpu_vendor"] = GpuVendor.NONE
        merged.update(values)
        self._values = MappingProxyType(merged)

    def __getitem__(self, name: str) -> CapabilityValue:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def has(self, name: str) -> bool:
        value = self._values.get(name, False)
        if isinstance(value, GpuVendor):
            return value is not GpuVendor.NONE
        return bool(value)

    @property
    def gpu_vendor(self) -> GpuVendor:
        return self._values["gpu_vendor"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            name: value.value if isinstance(value, GpuVendor) else value
            for name, value in self._values.items()
        }

    @classmethod
    def all_available(cls) -> "CapabilitySet":
        """Every boolean capability on; handy for exercising full chains."""
        values: Dict[str, CapabilityValue] = {name: True for name in CAPABILITY_NAMES}
        values["gpu_vendor"] = GpuVendor.NVIDIA
        return cls(values)

    @classmethod
    def none_available(cls) -> "CapabilitySet":
        return cls({})

    def __repr__(self) -> str:
        enabled = sorted(name for name in self._values if self.has(name))
        return f"CapabilitySet({', '.join(enabled)})"


def _safe_probe(name: str, probe: Callable[[], bool]) -> bool:
    try:
        return bool(probe())
    except Exception as e:
        logger.debug(f"Capability probe '{name}' failed: {e}")
        return False


def _rooted(root: str, path: str) -> str:
    if root in ("", "/"):
        return path
    return os.path.join(root, path.lstrip("/"))


def _has_battery_node(root: str) -> bool:
    for node in glob.glob(_rooted(root, POWER_SUPPLY_GLOB)):
        try:
            with open(os.path.join(node, "type"), encoding="utf-8") as f:
                if f.read().strip().lower() == "battery":
                    return True
        except OSError:
            continue
    return False


def _probe_mobile_api(timeout: float) -> bool:
    """Live probe: the Termux helper must answer with a JSON object."""
    result = run_tool(["termux-battery-status"], timeout=timeout)
    if not result.ok:
        return False
    try:
        return isinstance(json.loads(result.value), dict)
    except ValueError:
        return False


def build_capabilities(
    platform: PlatformInfo,
    root: str = "/",
    probe_live: bool = True,
    tool_timeout: float = DEFAULT_TOOL_TIMEOUT,
) -> CapabilitySet:
    """Probe the host and build its CapabilitySet.

    Args:
        platform: Detected platform info.
        root: Filesystem root for path probes.
        probe_live: Whether to run the one live mobile telemetry probe.
        tool_timeout: Timeout for the live probe.

    Returns:
        CapabilitySet with every name in CAPABILITY_NAMES defined.
    """
    values: Dict[str, CapabilityValue] = {}

    for name, path in PATH_CAPABILITIES.items():
        full = _rooted(root, path)
        values[name] = _safe_probe(name, lambda full=full: os.path.exists(full))

    for name, tool in TOOL_CAPABILITIES.items():
        values[name] = _safe_probe(name, lambda tool=tool: shutil.which(tool) is not None)

    values["thermal"] = _safe_probe(
        "thermal", lambda: bool(glob.glob(_rooted(root, THERMAL_ZONE_GLOB)))
    )
    values["battery"] = _safe_probe("battery", lambda: _has_battery_node(root))
    values["gputil"] = _safe_probe(
        "gputil", lambda: importlib.util.find_spec("GPUtil") is not None
    )
    values["psutil_sensors"] = _safe_probe(
        "psutil_sensors", lambda: hasattr(psutil, "sensors_temperatures")
    )

    if probe_live and platform.is_mobile and values["termux_api"]:
        values["mobile_api"] = _safe_probe(
            "mobile_api", lambda: _probe_mobile_api(tool_timeout)
        )
    else:
        values["mobile_api"] = False

    nvidia_driver = _safe_probe(
        "nvidia_driver", lambda: os.path.exists(_rooted(root, NVIDIA_DRIVER_PATH))
    )
    if values["nvidia_smi"] or nvidia_driver:
        values["gpu_vendor"] = GpuVendor.NVIDIA
    elif values["adreno"]:
        values["gpu_vendor"] = GpuVendor.ADRENO
    else:
        values["gpu_vendor"] = GpuVendor.NONE

    capabilities = CapabilitySet(values)
    logger.info(f"Capabilities for {platform.platform_class.value}: {capabilities!r}")
    return capabilities


class CapabilityMatrix:
    """Holds the session's CapabilitySet and re-probes on request.

    Example:
        >>> matrix = CapabilityMatrix()
        >>> matrix.capabilities.has("procfs")
        True
        >>> matrix.refresh()  # user asked to re-detect tools
    """

    def __init__(
        self,
        probe: Optional[PlatformProbe] = None,
        root: str = "/",
        probe_live: bool = True,
        tool_timeout: float = DEFAULT_TOOL_TIMEOUT,
    ):
        self.probe = probe or get_probe()
        self.platform = self.probe.detect()
        self.root = root
        self.probe_live = probe_live
        self.tool_timeout = tool_timeout
        self._lock = threading.Lock()
        self._capabilities = build_capabilities(
            self.platform, root=root, probe_live=probe_live, tool_timeout=tool_timeout
        )

    @property
    def capabilities(self) -> CapabilitySet:
        return self._capabilities

    def refresh(self) -> CapabilitySet:
        """Re-run every probe and swap in the new set atomically."""
        with self._lock:
            logger.info("Refreshing capabilities")
            self._capabilities = build_capabilities(
                self.platform,
                root=self.root,
                probe_live=self.probe_live,
                tool_timeout=self.tool_timeout,
            )
            return self._capabilities
