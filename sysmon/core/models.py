"""Data model for host health snapshots.

Every record here is a frozen dataclass with a fixed shape. Fields that could
not be collected hold a sentinel (``0``, ``"N/A"``, ``[]`` or ``False``)
instead of ``None`` so that every consumer can rely on one schema.

Hierarchy:
    Snapshot
    ├── CpuSnapshot
    ├── MemorySnapshot
    ├── DiskSnapshot ── FilesystemEntry[]
    ├── NetworkSnapshot ── InterfaceStats[]
    ├── GpuSnapshot
    ├── ProcessSnapshot ── ProcessEntry[]
    └── PowerSnapshot
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Tuple, Union

# Sentinel values
NA = "N/A"

Number = Union[int, float]
Reading = Union[int, float, str]


class PlatformClass(Enum):
    """Execution environment class, most specific first."""

    TERMUX = "termux"
    ANDROID = "android"
    WSL = "wsl"
    STANDARD_LINUX = "linux"


class GpuVendor(Enum):
    NVIDIA = "nvidia"
    ADRENO = "adreno"
    NONE = "none"


class HealthLevel(Enum):
    """Coarse health classification of a single snapshot."""

    GOOD = "Good"
    WARNING = "Warning"
    CRITICAL = "Critical"


@dataclass(frozen=True)
class PlatformInfo:
    platform_class: PlatformClass
    kernel: str
    architecture: str

    @property
    def is_mobile(self) -> bool:
        return self.platform_class in (PlatformClass.TERMUX, PlatformClass.ANDROID)


class _Unavailable:
    """Singleton marker for a metric with no value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNAVAILABLE"

    def __bool__(self) -> bool:
        return False


UNAVAILABLE = _Unavailable()


@dataclass(frozen=True)
class Metric:
    """A normalized value with its unit, or the UNAVAILABLE marker."""

    value: Any
    unit: str = ""

    @property
    def available(self) -> bool:
        return self.value is not UNAVAILABLE

    def or_sentinel(self, sentinel: Any = NA) -> Any:
        """Plain value for a snapshot field, the sentinel when unavailable."""
        return self.value if self.available else sentinel


@dataclass(frozen=True)
class RawReading:
    """Unparsed output captured from one source. Never persisted."""

    domain: str
    strategy: str
    raw: Union[str, Number]
    captured_at: float


class _Record:
    """Mixin giving frozen dataclasses a symmetric dict form."""

    _nested: Dict[str, type] = {}

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (list, tuple)):
                data[f.name] = [
                    item.to_dict() if isinstance(item, _Record) else item
                    for item in value
                ]
            elif isinstance(value, _Record):
                data[f.name] = value.to_dict()
            elif isinstance(value, Enum):
                data[f.name] = value.value
            else:
                data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        defaults = cls.sentinel().to_dict()
        kwargs = {}
        for f in fields(cls):
            value = data.get(f.name, defaults[f.name])
            nested = cls._nested.get(f.name)
            if nested is not None:
                value = tuple(nested.from_dict(item) for item in value)
            elif isinstance(value, list):
                value = tuple(value)
            kwargs[f.name] = value
        return cls(**kwargs)

    @classmethod
    def sentinel(cls):
        return cls()


@dataclass(frozen=True)
class CpuSnapshot(_Record):
    current: int = 0
    avg: Number = 0
    max: int = 0
    min: int = 0
    model: str = NA
    cores: int = 0
    temperature: Reading = NA
    history: Tuple[int, ...] = ()
    timestamps: Tuple[str, ...] = ()
    source: str = NA


@dataclass(frozen=True)
class MemorySnapshot(_Record):
    """Memory in GB (one decimal), swap in MB."""

    total: float = 0
    used: float = 0
    available: float = 0
    cached: float = 0
    percent: int = 0
    swap_used: int = 0
    swap_total: int = 0


@dataclass(frozen=True)
class FilesystemEntry(_Record):
    mount: str = NA
    device: str = NA
    fstype: str = NA
    total: float = 0
    used: float = 0
    available: float = 0
    percent: int = 0
    inodes_total: int = 0
    inodes_used: int = 0
    inodes_percent: int = 0


@dataclass(frozen=True)
class DiskSnapshot(_Record):
    """Root filesystem usage in GB, I/O counters in MB."""

    total: float = 0
    used: float = 0
    available: float = 0
    percent: int = 0
    read: int = 0
    written: int = 0
    inodes_percent: int = 0
    filesystems: Tuple[FilesystemEntry, ...] = ()

    _nested = {"filesystems": FilesystemEntry}


@dataclass(frozen=True)
class InterfaceStats(_Record):
    name: str = NA
    status: str = "unknown"
    ipv4: str = NA
    rx_bytes: int = 0
    tx_bytes: int = 0
    rx_packets: int = 0
    tx_packets: int = 0
    rx_errors: int = 0
    tx_errors: int = 0
    rx_dropped: int = 0
    tx_dropped: int = 0


@dataclass(frozen=True)
class NetworkSnapshot(_Record):
    """Totals in MB, rates in KB/s."""

    rx_total: float = 0
    tx_total: float = 0
    rx_rate: float = 0
    tx_rate: float = 0
    interfaces: Tuple[InterfaceStats, ...] = ()

    _nested = {"interfaces": InterfaceStats}


@dataclass(frozen=True)
class GpuSnapshot(_Record):
    """GPU metrics. Check ``available`` before reading live fields."""

    available: bool = False
    name: str = NA
    vendor: str = GpuVendor.NONE.value
    utilization: int = 0
    temperature: Reading = NA
    memory_used: int = 0
    memory_total: int = 0
    fan: Reading = NA
    power: Reading = NA
    clock_mhz: int = 0
    pcie_link: str = NA


@dataclass(frozen=True)
class ProcessEntry(_Record):
    """One row of the top-processes table, percentages to one decimal."""

    pid: int = 0
    user: str = NA
    cpu_percent: float = 0
    mem_percent: float = 0
    command: str = NA


@dataclass(frozen=True)
class ProcessSnapshot(_Record):
    """Process counts plus the busiest processes by CPU, busiest first."""

    total: int = 0
    running: int = 0
    top: Tuple[ProcessEntry, ...] = ()

    _nested = {"top": ProcessEntry}


@dataclass(frozen=True)
class PowerSnapshot(_Record):
    available: bool = False
    percent: int = 0
    status: str = NA
    health: str = NA
    temperature: Reading = NA
    plugged: str = NA
    hint: str = ""


@dataclass(frozen=True)
class Snapshot(_Record):
    """One immutable, schema-complete description of the host at a point in time."""

    timestamp: str = NA
    hostname: str = NA
    kernel: str = NA
    uptime: str = NA
    load_avg: str = "0.00 0.00 0.00"
    health: str = HealthLevel.GOOD.value
    cpu: CpuSnapshot = field(default_factory=CpuSnapshot)
    memory: MemorySnapshot = field(default_factory=MemorySnapshot)
    disk: DiskSnapshot = field(default_factory=DiskSnapshot)
    network: NetworkSnapshot = field(default_factory=NetworkSnapshot)
    gpu: GpuSnapshot = field(default_factory=GpuSnapshot)
    processes: ProcessSnapshot = field(default_factory=ProcessSnapshot)
    power: PowerSnapshot = field(default_factory=PowerSnapshot)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        domains = {
            "cpu": CpuSnapshot,
            "memory": MemorySnapshot,
            "disk": DiskSnapshot,
            "network": NetworkSnapshot,
            "gpu": GpuSnapshot,
            "processes": ProcessSnapshot,
            "power": PowerSnapshot,
        }
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name in domains:
                kwargs[f.name] = domains[f.name].from_dict(data.get(f.name, {}))
            elif f.name in data:
                kwargs[f.name] = data[f.name]
        return cls(**kwargs)

    @property
    def health_level(self) -> HealthLevel:
        return HealthLevel(self.health)


DOMAIN_NAMES: List[str] = ["cpu", "memory", "disk", "network", "gpu", "processes", "power"]
