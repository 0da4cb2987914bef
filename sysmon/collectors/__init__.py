"""Per-domain data collectors.

Each collector owns one or more fallback chains of acquisition strategies and
returns a fixed-shape domain snapshot. Collectors only collect: rendering,
persistence and publishing live in the sinks, so the same collectors serve
the poll loop, the REST API and the one-shot CLI modes.

Modules:
    base: CollectContext, Strategy, FallbackChain, DomainCollector
    parsers: Text parsers for tool and pseudo-file output
    cpu: Usage, model, cores, temperature
    memory: Memory and swap
    disk: Root usage, mounts, inodes, block I/O
    network: Interface counters, addresses, rates
    gpu: NVIDIA / GPUtil / Adreno / bus-scan vendor chain
    power: Battery state
    processes: Process counts
"""

from .base import CollectContext, DomainCollector, FallbackChain, FunctionStrategy, Strategy
from .cpu import CPUCollector
from .disk import DiskCollector
from .gpu import GPUCollector
from .memory import MemoryCollector
from .network import NetworkCollector
from .power import PowerCollector
from .processes import ProcessCollector

__all__ = [
    "CollectContext",
    "DomainCollector",
    "FallbackChain",
    "FunctionStrategy",
    "Strategy",
    "CPUCollector",
    "MemoryCollector",
    "DiskCollector",
    "NetworkCollector",
    "GPUCollector",
    "PowerCollector",
    "ProcessCollector",
]
