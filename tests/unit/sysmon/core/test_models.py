"""Unit tests for the snapshot data model.

Example Run:
    pytest tests/unit/sysmon/core/test_models.py -v
"""

import json
from dataclasses import FrozenInstanceError, fields

import pytest

from sysmon.core.models import (
    NA,
    UNAVAILABLE,
    CpuSnapshot,
    DiskSnapshot,
    GpuSnapshot,
    HealthLevel,
    Metric,
    NetworkSnapshot,
    PlatformClass,
    PlatformInfo,
    PowerSnapshot,
    Snapshot,
)


class TestSentinels:
    """Every field has a value even when nothing was collected."""

    def test_snapshot_sentinel_has_every_field(self):
        data = Snapshot().to_dict()

        for name in ("cpu", "memory", "disk", "network", "gpu", "processes", "power"):
            assert name in data
        assert None not in data.values()
        assert data["load_avg"] == "0.00 0.00 0.00"
        assert data["health"] == "Good"

    def test_gpu_sentinel(self):
        gpu = GpuSnapshot.sentinel()

        assert gpu.available is False
        assert gpu.name == NA
        assert gpu.temperature == NA
        assert gpu.vendor == "none"

    def test_power_sentinel(self):
        power = PowerSnapshot()
        assert power.available is False
        assert power.status == NA
        assert power.hint == ""

    def test_no_none_in_any_domain(self):
        for record in (CpuSnapshot(), DiskSnapshot(), NetworkSnapshot(), PowerSnapshot()):
            for f in fields(record):
                assert getattr(record, f.name) is not None, f.name


class TestDictForm:
    """Test suite for to_dict()/from_dict()."""

    def test_round_trip_is_identity(self, sample_snapshot):
        data = sample_snapshot.to_dict()

        assert Snapshot.from_dict(data) == sample_snapshot
        assert Snapshot.from_dict(data).to_dict() == data

    def test_json_safe(self, sample_snapshot):
        text = json.dumps(sample_snapshot.to_dict())
        restored = Snapshot.from_dict(json.loads(text))

        assert restored.disk.filesystems[0].mount == "/"
        assert restored.network.interfaces[0].name == "eth0"
        assert restored.processes.top[0].command == "/usr/bin/python3 train.py"

    def test_missing_keys_fall_back_to_sentinels(self):
        snapshot = Snapshot.from_dict({"cpu": {"current": 12}})

        assert snapshot.cpu.current == 12
        assert snapshot.cpu.model == NA
        assert snapshot.gpu == GpuSnapshot()

    def test_lists_become_tuples(self):
        cpu = CpuSnapshot.from_dict({"history": [1, 2, 3]})
        assert cpu.history == (1, 2, 3)


class TestMisc:
    def test_frozen(self, sample_snapshot):
        with pytest.raises(FrozenInstanceError):
            sample_snapshot.health = "Critical"

    def test_health_level(self, sample_snapshot):
        assert sample_snapshot.health_level is HealthLevel.GOOD

    def test_platform_is_mobile(self):
        assert PlatformInfo(PlatformClass.TERMUX, "4.19", "aarch64").is_mobile
        assert PlatformInfo(PlatformClass.ANDROID, "4.19", "aarch64").is_mobile
        assert not PlatformInfo(PlatformClass.WSL, "5.15", "x86_64").is_mobile

    def test_metric(self):
        assert Metric(42, "%").available
        missing = Metric(UNAVAILABLE, "C")
        assert not missing.available
        assert missing.or_sentinel(0) == 0
        assert Metric(42, "%").or_sentinel() == 42
        assert not UNAVAILABLE
