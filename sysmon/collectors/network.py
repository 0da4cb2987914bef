"""Network interface counters, link state and IPv4 addresses.

Interface chain (loopback always excluded):
    1. sysfs      /sys/class/net/<iface>/statistics/* and operstate
    2. psutil     net_io_counters(pernic=True) + net_if_stats()

Address chain:
    1. psutil     net_if_addrs() AF_INET entries
    2. ip         ``ip -4 -o addr show``
    (unresolved interfaces keep "N/A")

Totals are summed across interfaces and reported in MB. Rates are derived
from the previous sample held by the collector and reported in KB/s; the
first sample of a session reports 0.
"""

import logging
import os
import socket
import threading
import time
from typing import Dict, List, Optional, Tuple

import psutil

from sysmon.collectors.base import (
    CollectContext,
    DomainCollector,
    FallbackChain,
    FunctionStrategy,
)
from sysmon.collectors.parsers import parse_ip_addr
from sysmon.core.models import NA, InterfaceStats, NetworkSnapshot
from sysmon.core.result import Failure, FailureKind, Ok, Result, unavailable
from sysmon.utils.normalize import bytes_to_mb, fixed

logger = logging.getLogger(__name__)

NET_CLASS_PATH = "/sys/class/net"
LOOPBACK = "lo"

COUNTER_FIELDS = (
    "rx_bytes",
    "tx_bytes",
    "rx_packets",
    "tx_packets",
    "rx_errors",
    "tx_errors",
    "rx_dropped",
    "tx_dropped",
)

# psutil snetio attribute for each counter field
PSUTIL_COUNTERS = {
    "rx_bytes": "bytes_recv",
    "tx_bytes": "bytes_sent",
    "rx_packets": "packets_recv",
    "tx_packets": "packets_sent",
    "rx_errors": "errin",
    "tx_errors": "errout",
    "rx_dropped": "dropin",
    "tx_dropped": "dropout",
}


def _is_loopback(name: str) -> bool:
    return name == LOOPBACK or name.startswith("lo:")


# ----------------------------
# Interface strategies
# ----------------------------


def interfaces_from_sysfs(ctx: CollectContext) -> Result:
    base = ctx.path(NET_CLASS_PATH)
    try:
        names = sorted(os.listdir(base))
    except OSError as e:
        return unavailable(f"{NET_CLASS_PATH}: {e}")

    interfaces = []
    for name in names:
        if _is_loopback(name):
            continue
        if ctx.cancelled:
            return Failure(FailureKind.CANCELLED, "interface scan cancelled")
        counters = {}
        for counter in COUNTER_FIELDS:
            value = ctx.read_int(f"{NET_CLASS_PATH}/{name}/statistics/{counter}")
            counters[counter] = value.value if value.ok else 0
        state = ctx.read(f"{NET_CLASS_PATH}/{name}/operstate")
        counters["status"] = state.value.strip() if state.ok else "unknown"
        interfaces.append((name, counters))

    if not interfaces:
        return unavailable("no non-loopback interfaces in sysfs")
    return Ok(interfaces)


def interfaces_from_psutil(ctx: CollectContext) -> Result:
    io = psutil.net_io_counters(pernic=True) or {}
    try:
        stats = psutil.net_if_stats()
    except OSError as e:
        logger.debug(f"net_if_stats failed: {e}")
        stats = {}

    interfaces = []
    for name in sorted(io):
        if _is_loopback(name):
            continue
        nic = io[name]
        counters = {field: getattr(nic, attr, 0) for field, attr in PSUTIL_COUNTERS.items()}
        link = stats.get(name)
        if link is None:
            counters["status"] = "unknown"
        else:
            counters["status"] = "up" if link.isup else "down"
        interfaces.append((name, counters))

    if not interfaces:
        return unavailable("psutil reported no non-loopback interfaces")
    return Ok(interfaces)


# ----------------------------
# Address strategies
# ----------------------------


def addresses_from_psutil(ctx: CollectContext) -> Result:
    addresses = {}
    for name, entries in (psutil.net_if_addrs() or {}).items():
        for entry in entries:
            if entry.family == socket.AF_INET:
                addresses[name] = entry.address
                break
    if not addresses:
        return unavailable("no IPv4 addresses from psutil")
    return Ok(addresses)


def addresses_from_ip(ctx: CollectContext) -> Result:
    result = ctx.run(["ip", "-4", "-o", "addr", "show"])
    if not result.ok:
        return result
    addresses = parse_ip_addr(result.value)
    if not addresses:
        return Failure(FailureKind.PARSE, "no inet lines in ip output")
    return Ok(addresses)


class NetworkCollector(DomainCollector):
    """Collects per-interface counters and aggregate throughput.

    The collector remembers the previous byte totals so consecutive calls can
    report receive/transmit rates.

    Example:
        >>> net = NetworkCollector()
        >>> net.collect(capabilities)  # first call, rates are 0
        >>> snap = net.collect(capabilities)
        >>> print(f"RX {snap.rx_rate} KB/s, TX {snap.tx_rate} KB/s")
    """

    domain = "network"

    def __init__(self, clock=time.monotonic, **kwargs):
        super().__init__(**kwargs)
        self.clock = clock
        self._previous: Optional[Tuple[float, int, int]] = None
        self._lock = threading.Lock()
        self.interface_chain = FallbackChain(
            "network.interfaces",
            [
                FunctionStrategy("sysfs", interfaces_from_sysfs, ("sysfs",)),
                FunctionStrategy("psutil", interfaces_from_psutil),
            ],
        )
        self.address_chain = FallbackChain(
            "network.addresses",
            [
                FunctionStrategy("psutil", addresses_from_psutil),
                FunctionStrategy("ip", addresses_from_ip, ("ip_tool",)),
            ],
        )

    def sentinel(self) -> NetworkSnapshot:
        return NetworkSnapshot()

    def _rates(self, rx_bytes: int, tx_bytes: int) -> Tuple[float, float]:
        now = self.clock()
        with self._lock:
            previous = self._previous
            self._previous = (now, rx_bytes, tx_bytes)

        if previous is None:
            return 0, 0
        elapsed = now - previous[0]
        if elapsed <= 0:
            return 0, 0
        # Counter resets (interface re-created) would give negative deltas
        rx_delta = max(rx_bytes - previous[1], 0)
        tx_delta = max(tx_bytes - previous[2], 0)
        return fixed(rx_delta / 1024 / elapsed, 1), fixed(tx_delta / 1024 / elapsed, 1)

    def _collect(self, ctx: CollectContext) -> NetworkSnapshot:
        result = self.interface_chain.run(ctx)
        if not result.ok:
            self._warn_exhausted(result)
            return self.sentinel()

        addresses: Dict[str, str] = {}
        resolved = self.address_chain.run(ctx)
        if resolved.ok:
            addresses = resolved.value

        interfaces: List[InterfaceStats] = []
        for name, counters in result.value:
            interfaces.append(
                InterfaceStats(
                    name=name,
                    status=counters["status"],
                    ipv4=addresses.get(name, NA),
                    **{field: int(counters.get(field, 0)) for field in COUNTER_FIELDS},
                )
            )

        rx_bytes = sum(iface.rx_bytes for iface in interfaces)
        tx_bytes = sum(iface.tx_bytes for iface in interfaces)
        rx_rate, tx_rate = self._rates(rx_bytes, tx_bytes)

        return NetworkSnapshot(
            rx_total=bytes_to_mb(rx_bytes),
            tx_total=bytes_to_mb(tx_bytes),
            rx_rate=rx_rate,
            tx_rate=tx_rate,
            interfaces=tuple(interfaces),
        )
