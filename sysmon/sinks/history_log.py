"""Text rendering of snapshots and the append-only history log.

The same renderer feeds the terminal (``--once``) and the history log that
the offline report parses. The report locates values by literal line
prefixes, so these labels are part of the log format and must not change:

    TIMESTAMP: <YYYY-mm-dd HH:MM:SS>
    Overall CPU usage:
    [<bar>]  <n>%
    Memory usage:
    Disk usage:
    |  <fan>%   <temp>C ...        (GPU line, only when a GPU is available)

Presentation choices (bar width, glyphs, colors) live in an immutable
RenderTheme passed in by the caller.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from sysmon.core.models import NA, HealthLevel, ProcessEntry, Snapshot
from sysmon.utils.formatting import format_temperature, usage_bar

logger = logging.getLogger(__name__)

# Load-bearing prefixes shared with sysmon.report
TIMESTAMP_LABEL = "TIMESTAMP: "
CPU_LABEL = "Overall CPU usage:"
MEMORY_LABEL = "Memory usage:"
DISK_LABEL = "Disk usage:"
SEPARATOR = "=" * 60

ANSI_RESET = "\033[0m"

TOP_HEADER = f"  {'PID':>7} {'USER':<12} {'%CPU':>5} {'%MEM':>5}  COMMAND"
COMMAND_WIDTH = 60


@dataclass(frozen=True)
class RenderTheme:
    """Immutable presentation settings for the text renderer.

    Attributes:
        bar_width: Characters between the brackets of a usage bar.
        fill: Glyph for the used part of a bar.
        empty: Glyph for the free part of a bar.
        color: Wrap health words in ANSI colors.
        good / warning / critical: ANSI color codes per health level.
    """

    bar_width: int = 40
    fill: str = "#"
    empty: str = "-"
    color: bool = False
    good: str = "\033[32m"
    warning: str = "\033[33m"
    critical: str = "\033[31m"

    def paint(self, text: str, level: HealthLevel) -> str:
        if not self.color:
            return text
        code = {
            HealthLevel.GOOD: self.good,
            HealthLevel.WARNING: self.warning,
            HealthLevel.CRITICAL: self.critical,
        }[level]
        return f"{code}{text}{ANSI_RESET}"


PLAIN_THEME = RenderTheme()
TERMINAL_THEME = RenderTheme(color=True)


def render_bar(percent: int, theme: RenderTheme = PLAIN_THEME) -> str:
    """``[<bar>]  <n>%`` as written under a usage label.

    Example:
        >>> render_bar(25, RenderTheme(bar_width=8))
        '[##------]  25%'
    """
    bar = usage_bar(percent, theme.bar_width, theme.fill, theme.empty)
    return f"[{bar}]  {percent}%"


def render_gpu_line(snapshot: Snapshot) -> str:
    """nvidia-smi style row: ``|  <fan>%   <temp>C   <util>%   <used>MiB / <total>MiB |``."""
    gpu = snapshot.gpu
    return (
        f"|  {gpu.fan}%   {gpu.temperature}C   {gpu.utilization}%   "
        f"{gpu.memory_used}MiB / {gpu.memory_total}MiB |"
    )


def render_process_row(entry: ProcessEntry) -> str:
    """One top-processes row, indented so no report pattern matches it."""
    command = entry.command
    if len(command) > COMMAND_WIDTH:
        command = command[: COMMAND_WIDTH - 3] + "..."
    return (
        f"  {entry.pid:>7} {entry.user:<12} {entry.cpu_percent:>5.1f} "
        f"{entry.mem_percent:>5.1f}  {command}"
    )


def render_snapshot(snapshot: Snapshot, theme: RenderTheme = PLAIN_THEME) -> str:
    """Render one snapshot as a labeled text block."""
    cpu, memory, disk = snapshot.cpu, snapshot.memory, snapshot.disk
    network, gpu, power = snapshot.network, snapshot.gpu, snapshot.power

    lines: List[str] = [
        SEPARATOR,
        f"{TIMESTAMP_LABEL}{snapshot.timestamp}",
        f"Host: {snapshot.hostname}   Kernel: {snapshot.kernel}",
        f"Uptime: {snapshot.uptime}   Load average: {snapshot.load_avg}",
        f"Health: {theme.paint(snapshot.health, snapshot.health_level)}",
        "",
        CPU_LABEL,
        render_bar(cpu.current, theme),
        f"Model: {cpu.model}   Cores: {cpu.cores}   "
        f"Temperature: {format_temperature(cpu.temperature)}   Source: {cpu.source}",
        "",
        MEMORY_LABEL,
        render_bar(memory.percent, theme),
        f"Used: {memory.used} GB / {memory.total} GB   Available: {memory.available} GB   "
        f"Cached: {memory.cached} GB   Swap: {memory.swap_used} MB / {memory.swap_total} MB",
        "",
        DISK_LABEL,
        render_bar(disk.percent, theme),
        f"Used: {disk.used} GB / {disk.total} GB   Inodes: {disk.inodes_percent}%   "
        f"Read: {disk.read} MB   Written: {disk.written} MB",
    ]
    for fs in disk.filesystems:
        lines.append(
            f"  {fs.mount:<20} {fs.device:<20} {fs.used:>8} / {fs.total:<8} GB  {fs.percent:>3}%"
        )

    lines += [
        "",
        f"Network: RX {network.rx_total} MB ({network.rx_rate} KB/s)   "
        f"TX {network.tx_total} MB ({network.tx_rate} KB/s)",
    ]
    for iface in network.interfaces:
        lines.append(f"  {iface.name:<12} {iface.status:<8} {iface.ipv4}")

    lines += ["", f"Processes: {snapshot.processes.total} total, {snapshot.processes.running} running"]
    if snapshot.processes.top:
        lines.append(TOP_HEADER)
        lines += [render_process_row(entry) for entry in snapshot.processes.top]


    if gpu.available:
        lines += ["", f"GPU: {gpu.name}", render_gpu_line(snapshot)]
    elif gpu.name != NA:
        lines += ["", f"GPU: {gpu.name} (no live metrics)"]

    if power.available:
        lines.append(
            f"Battery: {power.percent}% {power.status}   Plugged: {power.plugged}   "
            f"Temperature: {format_temperature(power.temperature)}"
        )
    elif power.hint:
        lines.append(f"Battery: not available ({power.hint})")

    lines.append("")
    return "\n".join(lines)


class HistoryLogSink:
    """Appends each snapshot's text block to the history log.

    Example:
        >>> sink = HistoryLogSink(Path("data/monitor.log"))
        >>> sink.write(snapshot)
    """

    def __init__(self, path: Union[str, Path], theme: RenderTheme = PLAIN_THEME):
        self.path = Path(path)
        self.theme = theme
        self._lock = threading.Lock()

    def write(self, snapshot: Snapshot) -> Path:
        block = render_snapshot(snapshot, self.theme)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(block + "\n")
        logger.debug(f"Appended snapshot to {self.path}")
        return self.path

    def close(self) -> None:
        pass
