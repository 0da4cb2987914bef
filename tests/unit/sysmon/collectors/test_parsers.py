"""Unit tests for source text parsers, driven by captured tool output.

Example Run:
    pytest tests/unit/sysmon/collectors/test_parsers.py -v
"""

import pytest

from sysmon.collectors.parsers import (
    parse_block_stat,
    parse_ip_addr,
    parse_kgsl_busy,
    parse_lspci_gpu,
    parse_loadavg,
    parse_meminfo,
    parse_mpstat_idle,
    parse_nvidia_smi_csv,
    parse_proc_mounts,
    parse_proc_pid_state,
    parse_ps_states,
    parse_ps_top,
    parse_sensors_cpu_temp,
    parse_termux_battery_json,
    parse_termux_battery_text,
    parse_top_idle,
    parse_uevent,
)
from sysmon.core.result import FailureKind

MPSTAT_HEADER = (
    "10:30:01 AM  CPU    %usr   %nice    %sys %iowait    %irq   %soft  %steal  %guest  %gnice   %idle\n"
)
MPSTAT_SAMPLE = (
    "Linux 6.1.0 (host) \t01/15/2024 \t_x86_64_\t(8 CPU)\n\n"
    + MPSTAT_HEADER
    + "10:30:02 AM  all    5.00    0.00    2.50    0.00    0.00    0.00    0.00    0.00    0.00   92.50\n"
    "10:30:02 AM    0    6.00    0.00    3.00    0.00    0.00    0.00    0.00    0.00    0.00   91.00\n"
)
MPSTAT_AVERAGE = (
    "\nAverage:     CPU    %usr   %nice    %sys %iowait    %irq   %soft  %steal  %guest  %gnice   %idle\n"
    "Average:     all    4.00    0.00    2.00    0.00    0.00    0.00    0.00    0.00    0.00   94.00\n"
)

SENSORS_INTEL = """coretemp-isa-0000
Adapter: ISA adapter
Package id 0:  +45.0°C  (high = +80.0°C, crit = +100.0°C)
Core 0:        +43.0°C  (high = +80.0°C, crit = +100.0°C)
"""

SENSORS_AMD = """k10temp-pci-00c3
Adapter: PCI adapter
Tctl:         +52.4°C
"""


class TestCpuParsers:
    def test_mpstat_all_row(self):
        assert parse_mpstat_idle(MPSTAT_SAMPLE).value == 92.5

    def test_mpstat_prefers_average(self):
        assert parse_mpstat_idle(MPSTAT_SAMPLE + MPSTAT_AVERAGE).value == 94.0

    def test_mpstat_decimal_comma(self):
        text = MPSTAT_HEADER + "10:30:02  all  5,00  0,00  2,50  0,00  0,00  0,00  0,00  0,00  0,00  92,50\n"
        assert parse_mpstat_idle(text).value == 92.5

    def test_mpstat_garbage(self):
        assert parse_mpstat_idle("mpstat: command failed").kind is FailureKind.PARSE

    @pytest.mark.parametrize(
        "line,idle",
        [
            ("%Cpu(s):  5.9 us,  2.0 sy,  0.0 ni, 91.5 id,  0.5 wa,  0.0 hi", 91.5),
            ("CPU:   3% usr   1% sys   0% nic  95% idle   0% io   0% irq", 95.0),
            ("800%cpu  12%user   0%nice  20%sys 768%idle   0%iow", 96.0),
        ],
    )
    def test_top_variants(self, line, idle):
        text = "top - 10:30:01 up 1 day\nTasks: 250 total\n" + line + "\n"
        assert parse_top_idle(text).value == pytest.approx(idle)

    def test_top_garbage(self):
        assert not parse_top_idle("Tasks: 250 total").ok

    def test_loadavg(self):
        assert parse_loadavg("0.50 0.40 0.30 1/200 1234\n").value == (0.5, 0.4, 0.3)

    def test_loadavg_short(self):
        assert parse_loadavg("0.50 0.40\n").kind is FailureKind.PARSE

    def test_sensors_intel(self):
        assert parse_sensors_cpu_temp(SENSORS_INTEL).value == 45.0

    def test_sensors_amd(self):
        assert parse_sensors_cpu_temp(SENSORS_AMD).value == 52.4

    def test_sensors_without_cpu(self):
        text = "acpitz-acpi-0\nAdapter: ACPI interface\ntemp1:        +27.8°C\n"
        assert not parse_sensors_cpu_temp(text).ok


class TestMemoryAndDiskParsers:
    def test_meminfo(self):
        text = "MemTotal:       16777216 kB\nMemFree:         1048576 kB\nMemAvailable:    8388608 kB\n"
        counters = parse_meminfo(text).value

        assert counters["MemTotal"] == 16777216
        assert counters["MemAvailable"] == 8388608

    def test_meminfo_without_total(self):
        assert parse_meminfo("MemFree: 100 kB\n").kind is FailureKind.PARSE

    def test_block_stat(self):
        text = "    1234        0    56789      100     4321        0    98765      200 0 300 300\n"
        assert parse_block_stat(text).value == (56789, 98765)

    def test_block_stat_short(self):
        assert not parse_block_stat("1 2 3").ok

    def test_proc_mounts(self):
        text = (
            "/dev/nvme0n1p2 / ext4 rw,relatime 0 0\n"
            "/dev/sda1 /mnt/my\\040disk ext4 rw 0 0\n"
            "broken\n"
        )
        assert parse_proc_mounts(text) == [
            ("/dev/nvme0n1p2", "/", "ext4"),
            ("/dev/sda1", "/mnt/my disk", "ext4"),
        ]


class TestNetworkParsers:
    def test_ip_addr(self):
        text = (
            "1: lo    inet 127.0.0.1/8 scope host lo\\       valid_lft forever\n"
            "2: eth0    inet 192.168.1.10/24 brd 192.168.1.255 scope global eth0\n"
            "2: eth0    inet 192.168.1.11/24 scope global secondary eth0\n"
            "5: veth0@if4    inet 10.0.0.1/24 scope global veth0\n"
        )
        assert parse_ip_addr(text) == {
            "lo": "127.0.0.1",
            "eth0": "192.168.1.10",
            "veth0": "10.0.0.1",
        }


class TestGpuParsers:
    def test_nvidia_smi(self):
        row = parse_nvidia_smi_csv(
            "NVIDIA GeForce RTX 3080, 30, 36, 1024, 10240, 30, 120.50, 1710, 4, 16\n"
        ).value

        assert row["name"] == "NVIDIA GeForce RTX 3080"
        assert row["temperature.gpu"] == "36"
        assert row["pcie.link.width.current"] == "16"

    def test_nvidia_smi_not_supported_cells(self):
        row = parse_nvidia_smi_csv(
            "Tesla T4, 0, 40, 0, 15360, [N/A], [Not Supported], 300, 3, 16\n"
        ).value

        assert row["fan.speed"] is None
        assert row["power.draw"] is None

    def test_nvidia_smi_error_text(self):
        text = "NVIDIA-SMI has failed because it couldn't communicate with the NVIDIA driver."
        assert parse_nvidia_smi_csv(text).kind is FailureKind.PARSE

    def test_lspci(self):
        text = (
            "00:1f.3 Audio device: Intel Corporation Device 7a50\n"
            "01:00.0 VGA compatible controller: NVIDIA Corporation GA102 [GeForce RTX 3080] (rev a1)\n"
        )
        assert parse_lspci_gpu(text).value == "NVIDIA Corporation GA102 [GeForce RTX 3080] (rev a1)"

    def test_lspci_no_gpu(self):
        assert not parse_lspci_gpu("00:1f.3 Audio device: Intel\n").ok

    def test_kgsl_busy(self):
        assert parse_kgsl_busy("250 1000\n").value == 25.0
        assert parse_kgsl_busy("0 0\n").value == 0.0
        assert not parse_kgsl_busy("idle\n").ok


class TestPowerParsers:
    def test_termux_json(self):
        text = (
            '{"health": "GOOD", "percentage": 85, "plugged": "PLUGGED_AC", '
            '"status": "CHARGING", "temperature": 31.2}'
        )
        data = parse_termux_battery_json(text).value

        assert data["percentage"] == 85
        assert data["status"] == "CHARGING"

    def test_termux_json_truncated(self):
        assert parse_termux_battery_json('{"health": "GOOD", "percentage": 85').kind is FailureKind.PARSE

    def test_termux_text_fallback(self):
        data = parse_termux_battery_text('{"health": "GOOD", "percentage": 85, "status": "CHARGING"').value

        assert data["percentage"] == 85
        assert data["health"] == "GOOD"
        assert data["status"] == "CHARGING"

    def test_termux_text_without_percentage(self):
        assert not parse_termux_battery_text("Permission denied").ok

    def test_uevent(self):
        text = "POWER_SUPPLY_NAME=BAT0\nPOWER_SUPPLY_CAPACITY=87\nPOWER_SUPPLY_STATUS=Discharging\n"
        assert parse_uevent(text) == {"NAME": "BAT0", "CAPACITY": "87", "STATUS": "Discharging"}


class TestProcessParsers:
    def test_ps_states(self):
        assert parse_ps_states("S\nR+\nSs\nR\n\n").value == (4, 2)

    def test_ps_empty(self):
        assert parse_ps_states("\n").kind is FailureKind.PARSE

    def test_pid_stat_with_spaces_in_comm(self):
        assert parse_proc_pid_state("1234 (my proc) R 1 1234 1234 0 -1") == "R"
        assert parse_proc_pid_state("") is None

    def test_ps_top_keeps_order_and_limit(self):
        text = (
            "  501 alice  40.0  1.5 /usr/bin/node server.js --port 3000\n"
            "bogus line\n"
            "    9 root    2,5  0.1 [kworker/u8:2]\n"
            "   12 root    0.0  0.0 /usr/sbin/cron -f\n"
        )
        rows = parse_ps_top(text, 2).value

        assert [row["pid"] for row in rows] == [501, 9]
        assert rows[0]["command"] == "/usr/bin/node server.js --port 3000"
        assert rows[1]["cpu_percent"] == 2.5

    def test_ps_top_empty(self):
        assert parse_ps_top("", 5).kind is FailureKind.PARSE
