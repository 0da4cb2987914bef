"""Unit tests for the text renderer and HistoryLogSink.

The report parses the history log by line prefix, so several tests render a
snapshot and feed it straight back through sysmon.report.parse_log.

Example Run:
    pytest tests/unit/sysmon/sinks/test_history_log.py -v
"""

from dataclasses import replace

from sysmon.core.models import NA, GpuSnapshot, PowerSnapshot, ProcessEntry, Snapshot
from sysmon.report import parse_log
from sysmon.sinks.history_log import (
    CPU_LABEL,
    TERMINAL_THEME,
    TIMESTAMP_LABEL,
    TOP_HEADER,
    HistoryLogSink,
    RenderTheme,
    render_bar,
    render_gpu_line,
    render_process_row,
    render_snapshot,
)


class TestRenderer:
    def test_render_bar(self):
        assert render_bar(25, RenderTheme(bar_width=8)) == "[##------]  25%"
        assert render_bar(0, RenderTheme(bar_width=4, empty=".")) == "[....]  0%"

    def test_labels_present(self, sample_snapshot):
        lines = render_snapshot(sample_snapshot).splitlines()

        assert f"{TIMESTAMP_LABEL}2024-01-15 10:30:00" in lines
        cpu_index = lines.index(CPU_LABEL)
        assert lines[cpu_index + 1].endswith("]  45%")
        assert "Memory usage:" in lines
        assert "Disk usage:" in lines

    def test_gpu_line(self, sample_snapshot):
        assert render_gpu_line(sample_snapshot) == "|  30%   36C   30%   1024MiB / 10240MiB |"
        assert render_gpu_line(sample_snapshot) in render_snapshot(sample_snapshot)

    def test_name_only_gpu(self, sample_snapshot):
        snapshot = replace(sample_snapshot, gpu=GpuSnapshot(name="Intel GPU"))
        text = render_snapshot(snapshot)

        assert "GPU: Intel GPU (no live metrics)" in text
        assert "MiB" not in text

    def test_no_gpu(self):
        assert "GPU:" not in render_snapshot(Snapshot())

    def test_power(self, sample_snapshot):
        battery = PowerSnapshot(available=True, percent=76, status="CHARGING", plugged="PLUGGED_AC", temperature=31.2)
        text = render_snapshot(replace(sample_snapshot, power=battery))

        assert "Battery: 76% CHARGING   Plugged: PLUGGED_AC   Temperature: 31.2°C" in text

    def test_power_hint(self, sample_snapshot):
        text = render_snapshot(replace(sample_snapshot, power=PowerSnapshot(hint="No battery detected")))
        assert "Battery: not available (No battery detected)" in text

    def test_plain_theme_has_no_ansi(self, sample_snapshot):
        assert "\033[" not in render_snapshot(sample_snapshot)

    def test_terminal_theme_colors_health(self, sample_snapshot):
        text = render_snapshot(replace(sample_snapshot, health="Critical"), TERMINAL_THEME)
        assert "Health: \033[31mCritical\033[0m" in text

    def test_sentinels_render(self):
        text = render_snapshot(Snapshot())

        assert f"Temperature: {NA}" in text
        assert "Processes: 0 total, 0 running" in text

    def test_top_processes(self, sample_snapshot):
        lines = render_snapshot(sample_snapshot).splitlines()

        header = lines.index(TOP_HEADER)
        assert lines[header - 1] == "Processes: 250 total, 3 running"
        assert lines[header + 1] == "     4242 alice         87.5   3.2  /usr/bin/python3 train.py"

    def test_long_command_truncated(self):
        row = render_process_row(ProcessEntry(pid=1, user="root", command="x" * 200))
        assert row.endswith("...")
        assert len(row) < 100

    def test_no_top_table_without_entries(self):
        assert TOP_HEADER not in render_snapshot(Snapshot())


class TestRenderedLogParses:

    """What the renderer writes, the report reads back."""

    def test_round_trip_through_report_parser(self, sample_snapshot):
        blocks = []
        for i, cpu in enumerate([10, 20, 30, 40, 50, 60]):
            snap = replace(
                sample_snapshot,
                timestamp=f"2024-01-15 10:30:0{i}",
                cpu=replace(sample_snapshot.cpu, current=cpu),
            )
            blocks.append(render_snapshot(snap))

        samples = parse_log("\n".join(blocks).splitlines(keepends=True))

        assert samples.cpu == [10, 20, 30, 40, 50, 60]
        assert samples.timestamps[0] == "2024-01-15 10:30:00"
        assert samples.gpu_temperatures == [36] * 6

    def test_unknown_fan_still_parses(self, sample_snapshot):
        snapshot = replace(sample_snapshot, gpu=replace(sample_snapshot.gpu, fan=NA))

        samples = parse_log(render_snapshot(snapshot).splitlines())

        assert samples.gpu_temperatures == [36]


class TestHistoryLogSink:
    def test_appends(self, tmp_path, sample_snapshot):
        path = tmp_path / "logs" / "monitor.log"
        sink = HistoryLogSink(path)

        sink.write(sample_snapshot)
        sink.write(sample_snapshot)

        assert path.read_text().count(TIMESTAMP_LABEL) == 2
        sink.close()
