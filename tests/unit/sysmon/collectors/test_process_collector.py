"""Unit tests for ProcessCollector.

Example Run:
    pytest tests/unit/sysmon/collectors/test_process_collector.py -v
"""

import threading
from unittest.mock import MagicMock, patch

import psutil

from sysmon.collectors.processes import (
    TOP_PROCESS_COUNT,
    ProcessCollector,
    counts_from_procfs,
    top_from_ps,
    top_from_psutil,
)
from sysmon.core.capabilities import CapabilitySet
from sysmon.core.models import NA, ProcessEntry, ProcessSnapshot
from sysmon.core.result import Failure, FailureKind, Ok

PS_TOP = (
    "  4242 alice     87.5  3.2 /usr/bin/python3 train.py --epochs 10\n"
    "   913 root      12.0  0.4 /usr/lib/xorg/Xorg :0\n"
    "     1 root       0.0  0.1 /sbin/init splash\n"
)


def proc(status):
    process = MagicMock()
    process.info = {"status": status}
    return process


def top_proc(pid, user, cpu, mem, name, cmdline):
    process = MagicMock()
    process.info = {
        "pid": pid,
        "username": user,
        "cpu_percent": cpu,
        "memory_percent": mem,
        "name": name,
        "cmdline": cmdline,
    }
    return process


def ps_output(args, **kwargs):
    if "stat=" in args:
        return Ok("Ss\nR+\nS\nI<\nR\n")
    return Ok(PS_TOP)


class TestProcessCollector:
    def test_ps(self, mock_run_tool):
        mock_run_tool.side_effect = ps_output

        snap = ProcessCollector().collect(CapabilitySet({"ps": True}))

        assert (snap.total, snap.running) == (5, 2)
        assert [entry.pid for entry in snap.top] == [4242, 913, 1]
        assert snap.top[0] == ProcessEntry(
            pid=4242,
            user="alice",
            cpu_percent=87.5,
            mem_percent=3.2,
            command="/usr/bin/python3 train.py --epochs 10",
        )

    @patch("sysmon.collectors.processes.psutil.process_iter")
    def test_psutil_fallback(self, mock_iter, mock_run_tool):
        mock_run_tool.return_value = Failure(FailureKind.UNAVAILABLE, "ps not found")
        mock_iter.return_value = [
            proc(psutil.STATUS_RUNNING),
            proc(psutil.STATUS_SLEEPING),
            proc(psutil.STATUS_SLEEPING),
        ]

        snap = ProcessCollector().collect(CapabilitySet({"ps": True}))

        assert (snap.total, snap.running) == (3, 1)

    @patch("sysmon.collectors.processes.psutil.process_iter", return_value=[])
    def test_procfs_fallback(self, mock_iter, fake_root):
        root, write = fake_root
        write("/proc/1/stat", "1 (systemd) S 0 1 1 0 -1\n")
        write("/proc/42/stat", "42 (my worker) R 1 42 42 0 -1\n")
        write("/proc/self/stat", "99 (cat) R 1 99 99 0 -1\n")

        snap = ProcessCollector(root=root).collect(CapabilitySet({"procfs": True}))

        assert (snap.total, snap.running) == (2, 1)
        assert snap.top == ()

    @patch("sysmon.collectors.processes.psutil.process_iter", return_value=[])
    def test_exhausted(self, mock_iter, fake_root):
        root, _ = fake_root

        assert ProcessCollector(root=root).collect(CapabilitySet({})) == ProcessSnapshot()

    def test_counts_survive_missing_top(self, mock_run_tool):
        mock_run_tool.side_effect = lambda args, **kwargs: (
            Ok("R\nS\n") if "stat=" in args else Failure(FailureKind.UNAVAILABLE, "no --sort")
        )

        with patch("sysmon.collectors.processes.psutil.process_iter", return_value=[]):
            snap = ProcessCollector().collect(CapabilitySet({"ps": True}))

        assert snap == ProcessSnapshot(total=2, running=1)


class TestProcfsCounts:
    def test_empty(self, make_ctx, fake_root):
        root, _ = fake_root
        assert counts_from_procfs(make_ctx(root=root)).kind is FailureKind.UNAVAILABLE

    def test_reads_are_traced(self, make_ctx, fake_root):
        root, write = fake_root
        write("/proc/7/stat", "7 (sshd) S 1 7 7 0 -1\n")
        trace = []

        assert counts_from_procfs(make_ctx(root=root, trace=trace)).value == (1, 0)
        assert [reading.strategy for reading in trace] == ["/proc/7/stat"]

    def test_cancelled_scan(self, make_ctx, fake_root):
        root, write = fake_root
        write("/proc/7/stat", "7 (sshd) S 1 7 7 0 -1\n")
        cancel = threading.Event()
        cancel.set()

        assert counts_from_procfs(make_ctx(root=root, cancel=cancel)).kind is FailureKind.CANCELLED


class TestTopProcesses:
    def test_ps_command(self, make_ctx, mock_run_tool):
        mock_run_tool.return_value = Ok(PS_TOP)

        result = top_from_ps(make_ctx())

        args = mock_run_tool.call_args[0][0]
        assert args[0] == "ps"
        assert "--sort=-%cpu" in args
        assert [entry.user for entry in result.value] == ["alice", "root", "root"]

    def test_ps_without_rows(self, make_ctx, mock_run_tool):
        mock_run_tool.return_value = Ok("garbage\n")
        assert top_from_ps(make_ctx()).kind is FailureKind.PARSE

    @patch("sysmon.collectors.processes.psutil.process_iter")
    def test_psutil_sorted_by_cpu(self, mock_iter, make_ctx):
        mock_iter.return_value = [
            top_proc(1, "root", 0.0, 0.1, "systemd", ["/sbin/init"]),
            top_proc(4242, "alice", 87.46, 3.21, "python3", ["python3", "train.py"]),
            top_proc(77, None, 5.0, None, "kworker/0:1", []),
        ]

        top = top_from_psutil(make_ctx()).value

        assert [entry.pid for entry in top] == [4242, 77, 1]
        assert top[0].cpu_percent == 87.5
        assert top[0].mem_percent == 3.2
        assert top[0].command == "python3 train.py"
        assert top[1] == ProcessEntry(
            pid=77, user=NA, cpu_percent=5.0, mem_percent=0.0, command="kworker/0:1"
        )

    @patch("sysmon.collectors.processes.psutil.process_iter")
    def test_psutil_limited(self, mock_iter, make_ctx):
        mock_iter.return_value = [
            top_proc(pid, "root", float(pid), 0.0, "worker", None) for pid in range(1, 40)
        ]

        top = top_from_psutil(make_ctx()).value

        assert len(top) == TOP_PROCESS_COUNT
        assert top[0].pid == 39

    @patch("sysmon.collectors.processes.psutil.process_iter", return_value=[])
    def test_psutil_empty(self, mock_iter, make_ctx):
        assert top_from_psutil(make_ctx()).kind is FailureKind.UNAVAILABLE
