#!/usr/bin/env python3
"""Unit tests for run configuration loading."""
import json
import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.devsync.api.exceptions import ConfigurationError
from src.devsync.config import (
    DEFAULT_MISSING_DEVICES_FILE,
    CompletedTarget,
    LabRoomTarget,
    SyncConfig,
    UnassignedTarget,
    load_config,
)

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "devsync.example.json"


@pytest.fixture
def minimal():
    return {"buildings": {"HS": "High School", "MS": "Middle School"}}


# ============================================
# SyncConfig.from_dict Tests
# ============================================

class TestFromDict:
    """Test building SyncConfig from parsed JSON."""

    def test_defaults(self, minimal):
        config = SyncConfig.from_dict(minimal, env={})

        assert config.lab_rooms == []
        assert config.unassigned is None
        assert config.completed is None
        assert config.primary_user_os_prefix == "10.0."
        assert config.retired_statuses == ["Retired", "Disposed"]
        assert config.computer_grace_period_days == 1
        assert config.probe_port == 445
        assert config.missing_devices_file == DEFAULT_MISSING_DEVICES_FILE
        assert config.audit_log_file is None

    @pytest.mark.parametrize("buildings", [None, {}, ["HS"]])
    def test_buildings_required(self, buildings):
        data = {} if buildings is None else {"buildings": buildings}

        with pytest.raises(ConfigurationError) as exc_info:
            SyncConfig.from_dict(data, env={})

        assert exc_info.value.details["missing_keys"] == ["buildings"]

    def test_targets_parsed(self, minimal):
        data = {
            **minimal,
            "lab_rooms": [{"group": "Lab-HS-101", "building": "HS", "room": 101}],
            "building_cohorts": [{"group": "Devices-MS", "building": "MS"}],
            "unassigned": {"group": "Devices-Unassigned", "statuses": ["In Storage"]},
            "completed": {"group": "Autopilot-Completed"},
        }

        config = SyncConfig.from_dict(data, env={})

        assert config.lab_rooms == [LabRoomTarget("Lab-HS-101", "HS", "101")]
        assert config.building_cohorts[0].building == "MS"
        assert config.unassigned == UnassignedTarget("Devices-Unassigned", ["In Storage"], [])
        assert config.completed == CompletedTarget("Autopilot-Completed", ["enrolled"])

    def test_malformed_target_raises(self, minimal):
        data = {**minimal, "lab_rooms": [{"building": "HS", "room": "101"}]}

        with pytest.raises(ConfigurationError) as exc_info:
            SyncConfig.from_dict(data, env={})

        assert "Malformed" in exc_info.value.message

    def test_unknown_building_warns(self, minimal, caplog):
        data = {**minimal, "building_cohorts": [{"group": "Devices-ZZ", "building": "ZZ"}]}

        with caplog.at_level(logging.WARNING):
            config = SyncConfig.from_dict(data, env={})

        assert len(config.building_cohorts) == 1
        assert "Devices-ZZ" in caplog.text

    def test_rule_overrides(self, minimal):
        data = {
            **minimal,
            "computer_naming_pattern": r"[A-Z]{2}-\d{3}",
            "computer_grace_period_days": "3",
            "probe_port": 3389,
        }

        config = SyncConfig.from_dict(data, env={})

        assert config.computer_naming_pattern == r"[A-Z]{2}-\d{3}"
        assert config.computer_grace_period_days == 3
        assert config.probe_port == 3389

    def test_environment_paths(self, minimal):
        env = {"MISSING_DEVICES_FILE": "/var/log/missing.log", "AUDIT_LOG_FILE": "/var/log/audit.jsonl"}

        config = SyncConfig.from_dict(minimal, env=env)

        assert config.missing_devices_file == "/var/log/missing.log"
        assert config.audit_log_file == "/var/log/audit.jsonl"


# ============================================
# load_config Tests
# ============================================

class TestLoadConfig:
    """Test reading the JSON configuration file."""

    def test_loads_file(self, tmp_path, minimal):
        path = tmp_path / "devsync.json"
        path.write_text(json.dumps(minimal))

        config = load_config(str(path))

        assert config.buildings["HS"] == "High School"

    def test_path_from_environment(self, tmp_path, minimal, monkeypatch):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps(minimal))
        monkeypatch.setenv("DEVSYNC_CONFIG_FILE", str(path))

        assert load_config().buildings["MS"] == "Middle School"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(tmp_path / "absent.json"))

        assert "not found" in exc_info.value.message

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "devsync.json"
        path.write_text("{buildings: ")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(path))

        assert "Invalid JSON" in exc_info.value.message

    def test_example_file_is_valid(self):
        config = load_config(str(EXAMPLE_CONFIG))

        assert len(config.buildings) == 20
        assert all(t.building in config.buildings for t in config.lab_rooms)
        assert config.unassigned is not None
        assert config.completed is not None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
