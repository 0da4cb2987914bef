"""Pytest configuration and global fixtures.

This module provides fixtures and configuration that are available to all tests.
Fixtures defined here are automatically discovered by pytest and can be used
by any test function by including them as parameters.

Common Fixtures:
    - mock_mqtt_client: Mocked MQTT client for testing without broker
    - all_caps / no_caps: Capability sets with every / no source enabled
    - make_ctx: Factory for CollectContext objects
    - fake_root: Temporary filesystem root for procfs/sysfs fixtures
    - linux_probe / termux_probe: PlatformProbes with fixed answers
    - sample_snapshot: Fully populated Snapshot
    - temp_config_file: Temporary config.ini for testing
    - mock_run_tool: Patched sysmon.utils.sources.run_tool

Example:
    def test_something(make_ctx, all_caps):
        ctx = make_ctx(all_caps)
        assert ctx.capabilities.has("procfs")
"""

import configparser
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from sysmon.collectors.base import CollectContext
from sysmon.core.capabilities import CapabilitySet
from sysmon.core.models import (
    CpuSnapshot,
    DiskSnapshot,
    FilesystemEntry,
    GpuSnapshot,
    InterfaceStats,
    MemorySnapshot,
    NetworkSnapshot,
    PowerSnapshot,
    ProcessEntry,
    ProcessSnapshot,
    Snapshot,
)
from sysmon.utils.platform import PlatformProbe


@pytest.fixture
def mock_mqtt_client():
    """Provide a mocked MQTT client for testing.

    This fixture creates a fully mocked paho-mqtt client that can be used
    in tests without requiring an actual MQTT broker connection.

    Returns:
        MagicMock: Mocked MQTT client with common methods stubbed

    Example:
        def test_publish(mock_mqtt_client):
            broker = MessageBroker(mock_mqtt_client, "sysmon/test")
            broker.publish_availability("online")
            mock_mqtt_client.publish.assert_called_once()
    """
    client = MagicMock()
    # Configure return values for common methods
    client.connect.return_value = 0
    client.publish.return_value = MagicMock(rc=0)
    client.loop_start.return_value = None
    client.loop_stop.return_value = None
    client.disconnect.return_value = None
    return client


@pytest.fixture
def all_caps():
    """CapabilitySet with every source available."""
    return CapabilitySet.all_available()


@pytest.fixture
def no_caps():
    """CapabilitySet with nothing available (pure psutil fallbacks only)."""
    return CapabilitySet.none_available()


@pytest.fixture
def make_ctx():
    """Factory for CollectContext objects.

    Example:
        def test_read(make_ctx, no_caps, tmp_path):
            ctx = make_ctx(no_caps, root=str(tmp_path))
    """

    def factory(capabilities=None, cancel=None, root="/", timeout=1.0, trace=None):
        return CollectContext(
            capabilities=capabilities if capabilities is not None else CapabilitySet({}),
            cancel=cancel,
            timeout=timeout,
            root=root,
            domain="test",
            trace=trace,
        )

    return factory


@pytest.fixture
def fake_root(tmp_path):
    """Temporary filesystem root with a helper to write pseudo-files.

    Example:
        def test_meminfo(fake_root):
            root, write = fake_root
            write("/proc/meminfo", "MemTotal: 1024 kB\\n")
    """

    def write(absolute: str, content: str) -> Path:
        path = tmp_path / absolute.lstrip("/")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return str(tmp_path), write


@pytest.fixture
def linux_probe(tmp_path):
    """PlatformProbe that always answers standard Linux."""
    probe = PlatformProbe(
        environ={}, root=str(tmp_path), kernel="6.1.0-test", architecture="x86_64"
    )
    probe._cpu_model = "Test CPU @ 3.00GHz"
    return probe


@pytest.fixture
def termux_probe(tmp_path):
    """PlatformProbe that answers Termux."""
    probe = PlatformProbe(
        environ={"TERMUX_VERSION": "0.118"},
        root=str(tmp_path),
        kernel="4.19.0-android",
        architecture="aarch64",
    )
    probe._cpu_model = "Qualcomm"
    return probe


@pytest.fixture
def sample_snapshot():
    """Provide a fully populated snapshot for sink and API tests.

    Returns:
        Snapshot: Snapshot with every domain filled in
    """
    return Snapshot(
        timestamp="2024-01-15 10:30:00",
        hostname="test-hostname",
        kernel="6.1.0-test",
        uptime="up 1 day, 2 hours, 3 minutes",
        load_avg="0.50 0.40 0.30",
        health="Good",
        cpu=CpuSnapshot(
            current=45,
            avg=45,
            max=45,
            min=45,
            model="Intel Core i7-9700K",
            cores=8,
            temperature=55.0,
            source="mpstat",
        ),
        memory=MemorySnapshot(
            total=16.0, used=9.6, available=6.4, cached=2.0, percent=60,
            swap_used=128, swap_total=2048,
        ),
        disk=DiskSnapshot(
            total=500.0, used=375.0, available=125.0, percent=75, read=1200,
            written=800, inodes_percent=12,
            filesystems=(
                FilesystemEntry(
                    mount="/", device="/dev/nvme0n1p2", fstype="ext4", total=500.0,
                    used=375.0, available=125.0, percent=75, inodes_total=1000,
                    inodes_used=120, inodes_percent=12,
                ),
            ),
        ),
        network=NetworkSnapshot(
            rx_total=3200.0, tx_total=1500.0, rx_rate=12.5, tx_rate=3.2,
            interfaces=(
                InterfaceStats(
                    name="eth0", status="up", ipv4="192.168.1.10",
                    rx_bytes=3355443200, tx_bytes=1572864000,
                ),
            ),
        ),
        gpu=GpuSnapshot(
            available=True, name="NVIDIA GeForce RTX 3080", vendor="nvidia",
            utilization=30, temperature=36, memory_used=1024, memory_total=10240,
            fan=30, power=120, clock_mhz=1710, pcie_link="Gen4 x16",
        ),
        processes=ProcessSnapshot(
            total=250, running=3,
            top=(
                ProcessEntry(
                    pid=4242, user="alice", cpu_percent=87.5, mem_percent=3.2,
                    command="/usr/bin/python3 train.py",
                ),
            ),
        ),
        power=PowerSnapshot(),
    )


@pytest.fixture
def temp_config_file(tmp_path):
    """Create a temporary config.ini file for testing.

    Args:
        tmp_path: pytest fixture providing temporary directory

    Returns:
        Path: Path to temporary config file

    Example:
        def test_load_settings(temp_config_file):
            settings = load_settings(temp_config_file)
            assert settings.device_name == "Test Device"
    """
    config = configparser.ConfigParser()

    config["device"] = {"name": "Test Device", "interval": "5"}
    config["collection"] = {"tool_timeout": "2", "parallel": "true", "history_size": "10"}
    config["health"] = {"cpu_warning": "70", "cpu_critical": "90"}
    config["output"] = {"json_path": str(tmp_path / "out" / "system_data.json")}
    config["api"] = {"enabled": "true", "port": "5555", "auth_token": "test_api_token_123"}
    config["mqtt"] = {"enabled": "false", "broker": "test.broker.local", "port": "1883"}

    config_file = tmp_path / "config.ini"
    with open(config_file, "w") as f:
        config.write(f)

    return config_file


@pytest.fixture
def mock_run_tool():
    """Patch sysmon.utils.sources.run_tool; configure per test.

    Example:
        def test_tool(mock_run_tool):
            mock_run_tool.return_value = Ok("output")
    """
    with patch("sysmon.utils.sources.run_tool") as mock:
        yield mock


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Strip SM_* overrides from the environment for every test."""
    import os

    for name in list(os.environ):
        if name.startswith("SM_"):
            monkeypatch.delenv(name, raising=False)


# Pytest hooks for custom behavior


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add automatic markers.

    This hook runs after test collection and can be used to automatically
    add markers to tests based on their location or name.

    Args:
        config: pytest config object
        items: list of collected test items
    """
    for item in items:
        # Auto-mark all tests in tests/unit as unit tests
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Auto-mark integration tests
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
