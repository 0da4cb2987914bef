"""Execution environment detection.

This module centralizes the question "what kind of Linux are we on?" so the
capability matrix and collectors never sniff the environment themselves.

Detection rules are mutually exclusive and evaluated in a fixed order, the
first match wins:

    1. Termux      TERMUX_VERSION set, PREFIX under com.termux, or the
                   Termux data directory exists
    2. Android     ANDROID_ROOT / ANDROID_DATA set, or /system/build.prop
    3. WSL         kernel release mentions "microsoft" or "wsl"
    4. Linux       everything else
"""

import logging
import os
import platform
import threading
from pathlib import Path
from typing import Mapping, Optional

from sysmon.core.models import PlatformClass, PlatformInfo

logger = logging.getLogger(__name__)

TERMUX_DATA_DIR = "/data/data/com.termux"
ANDROID_BUILD_PROP = "/system/build.prop"
CPUINFO_PATH = "/proc/cpuinfo"
OS_RELEASE_PATH = "/etc/os-release"

# cpuinfo keys carrying a model string; ARM kernels use Hardware/Processor
CPU_MODEL_KEYS = ("model name", "Hardware", "Processor", "cpu model")


class PlatformProbe:
    """Detects the platform class once and caches the answer.

    Attributes:
        root: Filesystem root used for marker lookups (tests point it at tmp_path).

    Example:
        >>> probe = PlatformProbe()
        >>> info = probe.detect()
        >>> info.platform_class
        <PlatformClass.STANDARD_LINUX: 'linux'>
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        root: str = "/",
        kernel: Optional[str] = None,
        architecture: Optional[str] = None,
    ):
        self._environ = environ if environ is not None else os.environ
        self.root = Path(root)
        self._kernel = kernel
        self._architecture = architecture
        self._info: Optional[PlatformInfo] = None
        self._os_version: Optional[str] = None
        self._cpu_model: Optional[str] = None

    def _path(self, absolute: str) -> Path:
        return self.root / absolute.lstrip("/")

    def _exists(self, absolute: str) -> bool:
        try:
            return self._path(absolute).exists()
        except OSError:
            return False

    def _is_termux(self) -> bool:
        if self._environ.get("TERMUX_VERSION"):
            return True
        if "com.termux" in self._environ.get("PREFIX", ""):
            return True
        return self._exists(TERMUX_DATA_DIR)

    def _is_android(self) -> bool:
        if self._environ.get("ANDROID_ROOT") or self._environ.get("ANDROID_DATA"):
            return True
        return self._exists(ANDROID_BUILD_PROP)

    @staticmethod
    def _is_wsl(kernel: str) -> bool:
        lowered = kernel.lower()
        return "microsoft" in lowered or "wsl" in lowered

    def detect(self) -> PlatformInfo:
        """Detect and cache the platform.

        Returns:
            PlatformInfo for this process. Subsequent calls return the same object.
        """
        if self._info is not None:
            return self._info

        kernel = self._kernel if self._kernel is not None else platform.release()
        architecture = (
            self._architecture if self._architecture is not None else platform.machine()
        )

        if self._is_termux():
            platform_class = PlatformClass.TERMUX
        elif self._is_android():
            platform_class = PlatformClass.ANDROID
        elif self._is_wsl(kernel):
            platform_class = PlatformClass.WSL
        else:
            platform_class = PlatformClass.STANDARD_LINUX

        self._info = PlatformInfo(
            platform_class=platform_class,
            kernel=kernel or "Unknown",
            architecture=architecture or "Unknown",
        )
        logger.info(
            f"Detected platform: {platform_class.value} "
            f"(kernel {self._info.kernel}, {self._info.architecture})"
        )
        return self._info

    def get_os_version(self) -> str:
        """Human-readable OS name, from os-release PRETTY_NAME when present."""
        if self._os_version is not None:
            return self._os_version

        info = self.detect()
        if info.platform_class is PlatformClass.TERMUX:
            self._os_version = f"Termux {self._environ.get('TERMUX_VERSION', '')}".strip()
            return self._os_version

        try:
            data = {}
            with self._path(OS_RELEASE_PATH).open(encoding="utf-8") as f:
                for line in f:
                    if "=" in line:
                        key, value = line.strip().split("=", 1)
                        data[key] = value.strip('"')
            if "PRETTY_NAME" in data:
                self._os_version = data["PRETTY_NAME"]
            else:
                self._os_version = (
                    f"{data.get('NAME', 'Linux')} {data.get('VERSION_ID', '')}".strip()
                )
        except (IOError, OSError, ValueError) as e:
            logger.debug(f"Could not read os-release: {e}")
            self._os_version = f"Linux {info.kernel}"

        return self._os_version

    def get_cpu_model(self) -> str:
        """CPU model string from cpuinfo, else platform.processor().

        Returns:
            Model string, or "N/A" when nothing identifies the CPU.
        """
        if self._cpu_model is not None:
            return self._cpu_model

        try:
            with self._path(CPUINFO_PATH).open(encoding="utf-8") as f:
                found = {}
                for line in f:
                    if ":" not in line:
                        continue
                    key, value = line.split(":", 1)
                    key = key.strip()
                    if key in CPU_MODEL_KEYS and value.strip() and key not in found:
                        found[key] = value.strip()
                for key in CPU_MODEL_KEYS:
                    if key in found:
                        self._cpu_model = found[key]
                        return self._cpu_model
        except (IOError, OSError) as e:
            logger.debug(f"Could not read cpuinfo: {e}")

        self._cpu_model = platform.processor() or "N/A"
        return self._cpu_model


# ----------------------------
# Process-wide cache
# ----------------------------

_default_probe: Optional[PlatformProbe] = None
_probe_lock = threading.Lock()


def get_probe() -> PlatformProbe:
    """Return the process-wide probe, creating it on first use."""
    global _default_probe
    with _probe_lock:
        if _default_probe is None:
            _default_probe = PlatformProbe()
        return _default_probe


def detect_platform() -> PlatformInfo:
    return get_probe().detect()
