"""Process table counts and the busiest processes.

Count chain:
    1. ps        ``ps -e -o stat=``, one state code per line
    2. psutil    process_iter(["status"])
    3. procfs    /proc/<pid>/stat state letters

Top chain:
    1. ps        ``ps -eo pid=,user=,%cpu=,%mem=,args= --sort=-%cpu``
    2. psutil    process_iter, sorted by cpu_percent

"Running" means the R state (runnable or on a CPU), not merely existing.
The top table is optional: when its chain is exhausted the counts are still
reported and ``top`` stays empty.
"""

import glob
import logging
import os

import psutil

from sysmon.collectors.base import (
    CollectContext,
    DomainCollector,
    FallbackChain,
    FunctionStrategy,
)
from sysmon.collectors.parsers import parse_proc_pid_state, parse_ps_states, parse_ps_top
from sysmon.core.models import NA, ProcessEntry, ProcessSnapshot
from sysmon.core.result import FailureKind, Ok, Result, unavailable
from sysmon.utils.normalize import round_half_up

logger = logging.getLogger(__name__)

PROC_PID_GLOB = "/proc/[0-9]*"
TOP_PROCESS_COUNT = 14

TOP_ATTRS = ["pid", "username", "cpu_percent", "memory_percent", "name", "cmdline"]


def counts_from_ps(ctx: CollectContext) -> Result:
    result = ctx.run(["ps", "-e", "-o", "stat="])
    if not result.ok:
        return result
    return parse_ps_states(result.value)


def counts_from_psutil(ctx: CollectContext) -> Result:
    total = running = 0
    for proc in psutil.process_iter(["status"]):
        total += 1
        if proc.info.get("status") == psutil.STATUS_RUNNING:
            running += 1
    if total == 0:
        return unavailable("psutil listed no processes")
    return Ok((total, running))


def counts_from_procfs(ctx: CollectContext) -> Result:
    total = running = 0
    for pid_dir in glob.glob(ctx.path(PROC_PID_GLOB)):
        stat = ctx.read(f"/proc/{os.path.basename(pid_dir)}/stat")
        if not stat.ok:
            if stat.kind is FailureKind.CANCELLED:
                return stat
            # Process exited between listing and reading
            continue
        total += 1
        if parse_proc_pid_state(stat.value) == "R":
            running += 1
    if total == 0:
        return unavailable("no readable /proc/<pid>/stat entries")
    return Ok((total, running))


def _entry(pid, user, cpu_percent, mem_percent, command) -> ProcessEntry:
    return ProcessEntry(
        pid=int(pid),
        user=user or NA,
        cpu_percent=round_half_up(cpu_percent or 0, 1),
        mem_percent=round_half_up(mem_percent or 0, 1),
        command=command or NA,
    )


def top_from_ps(ctx: CollectContext) -> Result:
    result = ctx.run(
        ["ps", "-eo", "pid=,user=,%cpu=,%mem=,args=", "--sort=-%cpu"]
    )
    if not result.ok:
        return result
    rows = parse_ps_top(result.value, TOP_PROCESS_COUNT)
    if not rows.ok:
        return rows
    return Ok(tuple(_entry(**row) for row in rows.value))


def top_from_psutil(ctx: CollectContext) -> Result:
    """Busiest processes from psutil.

    psutil measures cpu_percent between two calls on the same Process, so the
    first poll of a session ranks every process at 0.0.
    """
    rows = []
    for proc in psutil.process_iter(attrs=TOP_ATTRS, ad_value=None):
        info = proc.info
        if info.get("pid") is None:
            continue
        cmdline = info.get("cmdline")
        rows.append(
            _entry(
                info["pid"],
                info.get("username"),
                info.get("cpu_percent"),
                info.get("memory_percent"),
                " ".join(cmdline) if cmdline else info.get("name"),
            )
        )
    if not rows:
        return unavailable("psutil listed no processes")
    rows.sort(key=lambda entry: entry.cpu_percent, reverse=True)
    return Ok(tuple(rows[:TOP_PROCESS_COUNT]))


class ProcessCollector(DomainCollector):
    """Counts all processes and those currently running, and lists the busiest."""

    domain = "processes"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.chain = FallbackChain(
            "processes",
            [
                FunctionStrategy("ps", counts_from_ps, ("ps",)),
                FunctionStrategy("psutil", counts_from_psutil),
                FunctionStrategy("procfs", counts_from_procfs, ("procfs",)),
            ],
        )
        self.top_chain = FallbackChain(
            "processes.top",
            [
                FunctionStrategy("ps", top_from_ps, ("ps",)),
                FunctionStrategy("psutil", top_from_psutil),
            ],
        )

    def sentinel(self) -> ProcessSnapshot:
        return ProcessSnapshot()

    def _collect(self, ctx: CollectContext) -> ProcessSnapshot:
        result = self.chain.run(ctx)
        if not result.ok:
            self._warn_exhausted(result)
            return self.sentinel()
        total, running = result.value

        top = self.top_chain.run(ctx)
        if not top.ok:
            logger.debug(f"No top-process table: {top.detail}")
        return ProcessSnapshot(
            total=total, running=running, top=top.value if top.ok else ()
        )
