"""Offline HTML report built from the history log.

The log is located by literal line prefixes (see sysmon.sinks.history_log),
so the report also works on logs written by older releases that used the
short ``CPU usage: N%`` / ``Timestamp:`` lines.

Example:
    >>> from sysmon.report import generate_report
    >>> generate_report(Path("data/monitor.log"), Path("data/system_report.html"))
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from sysmon.core.models import NA
from sysmon.sinks.history_log import CPU_LABEL

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
TEMPLATE_NAME = "report.html"

MAX_SAMPLES = 100
# The labeled format wins only when it has more samples than this
MIN_FULL_SAMPLES = 5

BAR_VALUE = re.compile(r"\]\s+(\d+)")
SIMPLE_CPU = re.compile(r"^CPU usage:\s*(\d+)%?")
TIMESTAMP_FULL = re.compile(r"^TIMESTAMP:\s+(\S+)\s+(\S+)")
TIMESTAMP_SIMPLE = re.compile(r"^Timestamp:\s+(\S+)\s+(\S+)")
GPU_TEMPERATURE = re.compile(r"^\|\s+(?:\d+|N/A)%\s+(\d+)C")

HIGH_LOAD = 80
MODERATE_LOAD = 60


@dataclass(frozen=True)
class LogSamples:
    """Series pulled out of one history log, capped at MAX_SAMPLES each."""

    cpu: List[int] = field(default_factory=list)
    timestamps: List[str] = field(default_factory=list)
    gpu_temperatures: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class ReportStats:
    cpu_avg: Union[float, int] = 0
    cpu_max: int = 0
    cpu_min: int = 0
    badge: str = "No Data"
    badge_class: str = "badge-warning"
    gpu_avg: Union[float, str] = NA
    gpu_max: Union[int, str] = NA
    duration: str = "Single snapshot"
    samples: int = 0


def _prefer(full: List, simple: List) -> List:
    if len(full) > MIN_FULL_SAMPLES:
        return full
    if simple:
        return simple
    return []


def parse_log(lines: Iterable[str]) -> LogSamples:
    """Extract CPU, timestamp and GPU temperature series from log lines.

    The value of a labeled CPU reading sits on the line after
    ``Overall CPU usage:``; GPU temperatures come from nvidia-smi style rows.
    """
    cpu_full: List[int] = []
    cpu_simple: List[int] = []
    stamps_full: List[str] = []
    stamps_simple: List[str] = []
    gpu: List[int] = []

    after_cpu_label = False
    for raw in lines:
        line = raw.rstrip("\n")

        if after_cpu_label:
            after_cpu_label = False
            match = BAR_VALUE.search(line)
            if match:
                cpu_full.append(int(match.group(1)))
        if line.startswith(CPU_LABEL):
            after_cpu_label = True
            continue

        match = SIMPLE_CPU.match(line)
        if match:
            cpu_simple.append(int(match.group(1)))
            continue

        match = TIMESTAMP_FULL.match(line) or TIMESTAMP_SIMPLE.match(line)
        if match:
            stamp = f"{match.group(1)} {match.group(2)}"
            if line.startswith("TIMESTAMP:"):
                stamps_full.append(stamp)
            else:
                stamps_simple.append(stamp)
            continue

        match = GPU_TEMPERATURE.match(line)
        if match:
            gpu.append(int(match.group(1)))

    return LogSamples(
        cpu=_prefer(cpu_full, cpu_simple)[:MAX_SAMPLES],
        timestamps=_prefer(stamps_full, stamps_simple)[:MAX_SAMPLES],
        gpu_temperatures=gpu[:MAX_SAMPLES],
    )


def read_log(log_path: Union[str, Path]) -> LogSamples:
    """Parse a history log file.

    Raises:
        FileNotFoundError: If the log does not exist.
    """
    path = Path(log_path)
    if not path.is_file():
        raise FileNotFoundError(f"Log file not found: {path}")
    with path.open("r", encoding="utf-8", errors="replace") as f:
        return parse_log(f)


def health_badge(cpu_avg: Optional[float]) -> Tuple[str, str]:
    """Return ``(label, css class)`` for an average CPU load.

    Example:
        >>> health_badge(85.0)
        ('High', 'badge-danger')
        >>> health_badge(None)
        ('No Data', 'badge-warning')
    """
    if cpu_avg is None:
        return "No Data", "badge-warning"
    load = int(cpu_avg)
    if load >= HIGH_LOAD:
        return "High", "badge-danger"
    if load >= MODERATE_LOAD:
        return "Moderate", "badge-warning"
    return "Good", "badge-success"


def compute_stats(samples: LogSamples) -> ReportStats:
    if samples.cpu:
        cpu_avg = round(sum(samples.cpu) / len(samples.cpu), 1)
        badge, badge_class = health_badge(cpu_avg)
        cpu_max, cpu_min = max(samples.cpu), min(samples.cpu)
    else:
        cpu_avg, cpu_max, cpu_min = 0, 0, 0
        badge, badge_class = health_badge(None)

    if samples.gpu_temperatures:
        temps = samples.gpu_temperatures
        gpu_avg: Union[float, str] = round(sum(temps) / len(temps), 1)
        gpu_max: Union[int, str] = max(temps)
    else:
        gpu_avg, gpu_max = NA, NA

    duration = "Single snapshot"
    if samples.timestamps:
        first, last = samples.timestamps[0], samples.timestamps[-1]
        if first != last:
            duration = f"{first} to {last}"

    return ReportStats(
        cpu_avg=cpu_avg,
        cpu_max=cpu_max,
        cpu_min=cpu_min,
        badge=badge,
        badge_class=badge_class,
        gpu_avg=gpu_avg,
        gpu_max=gpu_max,
        duration=duration,
        samples=len(samples.cpu),
    )


def render_report(
    samples: LogSamples,
    source_name: str = "monitor.log",
    generated_at: Optional[datetime] = None,
) -> str:
    """Render the HTML report for already parsed samples."""
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )
    template = env.get_template(TEMPLATE_NAME)
    generated_at = generated_at or datetime.now()

    return template.render(
        generated=generated_at.strftime("%Y-%m-%d %H:%M:%S"),
        stats=compute_stats(samples),
        cpu_data=samples.cpu or [0],
        # Chart labels use the clock part only
        labels=[stamp.split(" ")[-1] for stamp in samples.timestamps] or ["No data"],
        gpu_temperatures=samples.gpu_temperatures,
        source_name=source_name,
    )


def generate_report(
    log_path: Union[str, Path], output_path: Union[str, Path]
) -> ReportStats:
    """Parse ``log_path`` and write the HTML report to ``output_path``.

    Returns:
        The statistics shown in the report.

    Raises:
        FileNotFoundError: If the log does not exist.
    """
    log_path, output_path = Path(log_path), Path(output_path)
    logger.info(f"Parsing log file: {log_path}")
    samples = read_log(log_path)

    html = render_report(samples, source_name=log_path.name)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(html, encoding="utf-8")

    stats = compute_stats(samples)
    logger.info(
        f"Report generated: {output_path} "
        f"({stats.samples} CPU points, {len(samples.gpu_temperatures)} GPU temperature points)"
    )
    return stats
