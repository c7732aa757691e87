"""Run configuration for the device sync tools.

Secrets and endpoints come from environment variables (see .env.example).
Which groups to sync, and the rules for each, live in a JSON file
(DEVSYNC_CONFIG_FILE, default devsync.json) so a new lab or building is a
config change, not a code change.

Example:
    >>> config = load_config()
    >>> config.buildings["HS"]
    'High School'
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from .api.exceptions import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "devsync.json"
DEFAULT_MISSING_DEVICES_FILE = "missing_devices.log"


@dataclass(frozen=True)
class LabRoomTarget:
    """A group that holds the devices of one lab room."""

    group: str
    building: str
    room: str


@dataclass(frozen=True)
class BuildingCohortTarget:
    """A group that holds every device in one building."""

    group: str
    building: str


@dataclass(frozen=True)
class UnassignedTarget:
    """A group for devices that are in storage or not yet deployed."""

    group: str
    statuses: list[str]
    asset_types: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CompletedTarget:
    """A group for Autopilot devices that finished enrollment."""

    group: str
    enrollment_states: list[str] = field(default_factory=lambda: ["enrolled"])


@dataclass
class SyncConfig:
    """Everything a run needs besides credentials.

    Built once at startup and passed to every routine that needs it.
    """

    buildings: dict[str, str]
    lab_rooms: list[LabRoomTarget] = field(default_factory=list)
    building_cohorts: list[BuildingCohortTarget] = field(default_factory=list)
    unassigned: Optional[UnassignedTarget] = None
    completed: Optional[CompletedTarget] = None
    primary_user_os_prefix: str = "10.0."
    retired_statuses: list[str] = field(default_factory=lambda: ["Retired", "Disposed"])
    computer_naming_pattern: str = r"[A-Z0-9]{2,6}-\d{3,6}"
    computer_grace_period_days: int = 1
    probe_port: int = 445
    missing_devices_file: str = DEFAULT_MISSING_DEVICES_FILE
    audit_log_file: Optional[str] = None

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        env: Optional[dict[str, str]] = None,
    ) -> "SyncConfig":
        """Build a config from parsed JSON plus environment overrides.

        Raises:
            ConfigurationError: If a required key is missing or malformed
        """
        env = os.environ if env is None else env

        buildings = data.get("buildings")
        if not isinstance(buildings, dict) or not buildings:
            raise ConfigurationError(
                "Configuration must map building codes to names under 'buildings'",
                missing_keys=["buildings"],
            )

        try:
            lab_rooms = [
                LabRoomTarget(group=t["group"], building=t["building"], room=str(t["room"]))
                for t in data.get("lab_rooms", [])
            ]
            cohorts = [
                BuildingCohortTarget(group=t["group"], building=t["building"])
                for t in data.get("building_cohorts", [])
            ]
            unassigned = None
            if data.get("unassigned"):
                u = data["unassigned"]
                unassigned = UnassignedTarget(
                    group=u["group"],
                    statuses=list(u["statuses"]),
                    asset_types=list(u.get("asset_types", [])),
                )
            completed = None
            if data.get("completed"):
                c = data["completed"]
                completed = CompletedTarget(
                    group=c["group"],
                    enrollment_states=list(c.get("enrollment_states", ["enrolled"])),
                )
        except (KeyError, TypeError) as e:
            raise ConfigurationError(f"Malformed sync target in configuration: {e}", cause=e)

        for target in [*lab_rooms, *cohorts]:
            if target.building not in buildings:
                logger.warning(
                    f"Target {target.group} uses unknown building code '{target.building}'; "
                    f"it will be skipped"
                )

        defaults = cls(buildings={})
        return cls(
            buildings=dict(buildings),
            lab_rooms=lab_rooms,
            building_cohorts=cohorts,
            unassigned=unassigned,
            completed=completed,
            primary_user_os_prefix=data.get("primary_user_os_prefix", defaults.primary_user_os_prefix),
            retired_statuses=list(data.get("retired_statuses", defaults.retired_statuses)),
            computer_naming_pattern=data.get("computer_naming_pattern", defaults.computer_naming_pattern),
            computer_grace_period_days=int(
                data.get("computer_grace_period_days", defaults.computer_grace_period_days)
            ),
            probe_port=int(data.get("probe_port", defaults.probe_port)),
            missing_devices_file=env.get("MISSING_DEVICES_FILE") or DEFAULT_MISSING_DEVICES_FILE,
            audit_log_file=env.get("AUDIT_LOG_FILE") or None,
        )


def load_config(path: Optional[str] = None) -> SyncConfig:
    """Load the run configuration.

    Args:
        path: JSON file to read. Defaults to DEVSYNC_CONFIG_FILE, then devsync.json.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    config_path = Path(path or os.getenv("DEVSYNC_CONFIG_FILE") or DEFAULT_CONFIG_FILE)

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Configuration file not found: {config_path}",
            missing_keys=["DEVSYNC_CONFIG_FILE"],
            cause=e,
        )
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}", cause=e)

    config = SyncConfig.from_dict(data)
    logger.info(
        f"Loaded {config_path}: {len(config.buildings)} buildings, "
        f"{len(config.lab_rooms)} lab rooms, {len(config.building_cohorts)} building groups"
    )
    return config
