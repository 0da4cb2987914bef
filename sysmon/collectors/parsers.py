"""Parsers for the text formats emitted by host sources.

One small function per source format. Each takes the raw text captured by a
strategy and returns ``Ok(value)`` or ``Failure(PARSE)``; none of them touch
the filesystem or run tools, so they are tested directly against captured
output samples.
"""

import json
import re
from typing import Dict, List, Optional, Tuple

from sysmon.core.result import Ok, Result, parse_failure
from sysmon.utils.normalize import safe_number

# ----------------------------
# CPU
# ----------------------------

_NUMBER = r"(\d+(?:[.,]\d+)?)"
_TOP_IDLE = re.compile(_NUMBER + r"\s*%?\s*id(?:le)?\b", re.IGNORECASE)
_TOP_TOTAL = re.compile(r"(\d+)%cpu", re.IGNORECASE)
_SENSORS_CPU_LINE = re.compile(r"cpu|package|tctl|tccd|core 0", re.IGNORECASE)
_SENSORS_TEMP = re.compile(r"[+-]?(\d+(?:\.\d+)?)\s*°?\s*C\b")


def _to_float(text: str) -> Optional[float]:
    return safe_number(text.replace(",", "."))


def parse_mpstat_idle(text: str) -> Result:
    """Idle percentage of the aggregate ``all`` row of ``mpstat -P ALL``.

    The ``Average:`` row is preferred when present. The ``%idle`` column is
    located from the header so locales with extra columns still parse.

    Example:
        >>> parse_mpstat_idle(sample).value
        87.5
    """
    idle_index = None
    found = None
    for line in text.splitlines():
        columns = line.split()
        if "%idle" in columns:
            idle_index = columns.index("%idle") - len(columns)
            continue
        if idle_index is None or "all" not in columns:
            continue
        value = _to_float(columns[idle_index])
        if value is None:
            continue
        if line.startswith("Average"):
            return Ok(value)
        if found is None:
            found = value
    if found is None:
        return parse_failure("no 'all' row with %idle in mpstat output")
    return Ok(found)


def parse_top_idle(text: str) -> Result:
    """Idle percentage from a batch-mode ``top`` header.

    Handles procps (``92.0 id``), busybox (``92% idle``) and Android toybox
    (``800%cpu ... 768%idle``, scaled by the total).
    """
    for line in text.splitlines():
        if "cpu" not in line.lower():
            continue
        match = _TOP_IDLE.search(line)
        if not match:
            continue
        idle = _to_float(match.group(1))
        if idle is None:
            continue
        total = _TOP_TOTAL.search(line)
        if total and int(total.group(1)) > 0:
            idle = idle / int(total.group(1)) * 100
        return Ok(idle)
    return parse_failure("no idle figure in top output")


def parse_loadavg(text: str) -> Result:
    """``/proc/loadavg`` → (1m, 5m, 15m)."""
    numbers = []
    for token in text.replace(",", " ").split():
        value = safe_number(token)
        if value is None:
            if numbers:
                break
            continue
        numbers.append(value)
        if len(numbers) == 3:
            return Ok(tuple(numbers))
    return parse_failure("load average needs three numbers")


def parse_sensors_cpu_temp(text: str) -> Result:
    """First CPU-labelled temperature in ``sensors`` output, in degrees."""
    for line in text.splitlines():
        if ":" not in line:
            continue
        label, reading = line.split(":", 1)
        if not _SENSORS_CPU_LINE.search(label):
            continue
        match = _SENSORS_TEMP.search(reading)
        if match:
            return Ok(float(match.group(1)))
    return parse_failure("no CPU temperature line in sensors output")


# ----------------------------
# Memory / disk
# ----------------------------


def parse_meminfo(text: str) -> Result:
    """``/proc/meminfo`` → {counter: kilobytes}. MemTotal is required."""
    counters: Dict[str, int] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        key, rest = line.split(":", 1)
        parts = rest.split()
        if parts and parts[0].isdigit():
            counters[key.strip()] = int(parts[0])
    if not counters.get("MemTotal"):
        return parse_failure("MemTotal missing from meminfo")
    return Ok(counters)


def parse_block_stat(text: str) -> Result:
    """``/sys/block/<dev>/stat`` → (sectors read, sectors written)."""
    fields = text.split()
    if len(fields) < 7 or not (fields[2].isdigit() and fields[6].isdigit()):
        return parse_failure("unexpected block stat layout")
    return Ok((int(fields[2]), int(fields[6])))


def parse_proc_mounts(text: str) -> List[Tuple[str, str, str]]:
    """``/proc/mounts`` → [(device, mountpoint, fstype)], octal escapes decoded."""
    mounts = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        mount = re.sub(r"\\(\d{3})", lambda m: chr(int(m.group(1), 8)), parts[1])
        mounts.append((parts[0], mount, parts[2]))
    return mounts


# ----------------------------
# Network
# ----------------------------

_IP_ADDR_LINE = re.compile(r"^\d+:\s+(\S+)\s+inet\s+(\d+\.\d+\.\d+\.\d+)")


def parse_ip_addr(text: str) -> Dict[str, str]:
    """``ip -4 -o addr show`` → {interface: first IPv4 address}."""
    addresses: Dict[str, str] = {}
    for line in text.splitlines():
        match = _IP_ADDR_LINE.match(line.strip())
        if match:
            addresses.setdefault(match.group(1).split("@")[0], match.group(2))
    return addresses


# ----------------------------
# GPU
# ----------------------------

NVIDIA_QUERY_FIELDS = (
    "name",
    "utilization.gpu",
    "temperature.gpu",
    "memory.used",
    "memory.total",
    "fan.speed",
    "power.draw",
    "clocks.sm",
    "pcie.link.gen.current",
    "pcie.link.width.current",
)


def parse_nvidia_smi_csv(text: str) -> Result:
    """First GPU row of ``nvidia-smi --query-gpu=... --format=csv,noheader,nounits``.

    ``[N/A]`` / ``[Not Supported]`` cells become None.
    """
    for line in text.splitlines():
        cells = [cell.strip() for cell in line.split(",")]
        if len(cells) != len(NVIDIA_QUERY_FIELDS) or not cells[0]:
            continue
        row: Dict[str, Optional[str]] = {}
        for key, cell in zip(NVIDIA_QUERY_FIELDS, cells):
            row[key] = None if cell.startswith("[") or cell == "N/A" else cell
        return Ok(row)
    return parse_failure("no GPU row in nvidia-smi output")


_LSPCI_GPU = re.compile(r"\b(VGA compatible controller|3D controller|Display controller)\b")


def parse_lspci_gpu(text: str) -> Result:
    """Name of the first VGA/3D/Display device in ``lspci`` output."""
    for line in text.splitlines():
        if _LSPCI_GPU.search(line):
            name = line.split(": ", 1)[-1].strip()
            if name:
                return Ok(name)
    return parse_failure("no GPU-class device in lspci output")


def parse_kgsl_busy(text: str) -> Result:
    """``gpubusy`` node: "<busy> <total>" cycle counts → busy percent."""
    fields = text.split()
    if len(fields) < 2:
        return parse_failure("gpubusy needs two counters")
    busy, total = safe_number(fields[0]), safe_number(fields[1])
    if busy is None or total is None:
        return parse_failure("gpubusy counters are not numeric")
    if total <= 0:
        return Ok(0.0)
    return Ok(busy / total * 100)


# ----------------------------
# Power
# ----------------------------

_TERMUX_FIELD = re.compile(r'"?(\w+)"?\s*[:=]\s*"?([^",}\n]+)"?')


def parse_termux_battery_json(text: str) -> Result:
    """Structured decode of ``termux-battery-status``."""
    try:
        data = json.loads(text)
    except ValueError as e:
        return parse_failure(f"battery status is not JSON: {e}")
    if not isinstance(data, dict) or "percentage" not in data:
        return parse_failure("battery status lacks percentage")
    return Ok(data)


def parse_termux_battery_text(text: str) -> Result:
    """Pattern decode of ``termux-battery-status`` for malformed/partial JSON."""
    data: Dict[str, object] = {}
    for key, value in _TERMUX_FIELD.findall(text):
        value = value.strip()
        number = safe_number(value)
        data[key] = number if number is not None else value
    if "percentage" not in data:
        return parse_failure("no percentage field in battery status text")
    return Ok(data)


def parse_uevent(text: str) -> Dict[str, str]:
    """``power_supply/*/uevent`` → {FIELD: value} with the POWER_SUPPLY_ prefix stripped."""
    values = {}
    for line in text.splitlines():
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.replace("POWER_SUPPLY_", "", 1)] = value.strip()
    return values


# ----------------------------
# Processes
# ----------------------------


def parse_ps_states(text: str) -> Result:
    """``ps -e -o stat=`` → (total, running). Running means state code R."""
    states = [line.strip() for line in text.splitlines() if line.strip()]
    if not states:
        return parse_failure("ps listed no processes")
    running = sum(1 for state in states if state.startswith("R"))
    return Ok((len(states), running))


def parse_proc_pid_state(text: str) -> Optional[str]:
    """State letter from ``/proc/<pid>/stat``; the comm field may contain spaces."""
    _, _, rest = text.rpartition(")")
    fields = rest.split()
    return fields[0] if fields else None


def parse_ps_top(text: str, limit: int) -> Result:
    """``ps -eo pid=,user=,%cpu=,%mem=,args=`` rows → up to ``limit`` dicts.

    Rows are kept in the order ps printed them. The command column may hold
    spaces, so each row splits into at most five fields. Malformed rows are
    skipped.
    """
    rows = []
    for line in text.splitlines():
        fields = line.split(None, 4)
        if len(fields) < 5 or not fields[0].isdigit():
            continue
        cpu, mem = _to_float(fields[2]), _to_float(fields[3])
        if cpu is None or mem is None:
            continue
        rows.append(
            {
                "pid": int(fields[0]),
                "user": fields[1],
                "cpu_percent": cpu,
                "mem_percent": mem,
                "command": fields[4].strip(),
            }
        )
        if len(rows) >= limit:
            break
    if not rows:
        return parse_failure("ps listed no process rows")
    return Ok(rows)
