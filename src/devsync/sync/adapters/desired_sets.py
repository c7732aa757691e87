"""Desired-set providers, one per kind of synced group.

Each provider answers one question: which device names belong in this
group right now? SyncGroupsUseCase does the rest.

Providers:
    LabRoomDesiredSet: devices the helpdesk places in one room
    UnassignedDesiredSet: devices in storage statuses
    CompletedAutopilotDesiredSet: devices whose Autopilot enrollment completed
    BuildingCohortDesiredSet: devices in every active room of a building
"""

import logging
from typing import TYPE_CHECKING

from ...api.exceptions import TargetResolutionError
from ..domain.entities import HelpdeskAsset, SyncTarget, TargetKind
from ..domain.ports import IDesiredSetProvider, IDeviceManagementService, IHelpdeskService
from ..domain.rooms import BuildingDirectory, resolve_room

if TYPE_CHECKING:
    from ...config import SyncConfig
    from ..use_cases.sync_groups import TargetPlan

logger = logging.getLogger(__name__)


def asset_tags(assets: list[HelpdeskAsset]) -> set[str]:
    """Asset tags of the given assets, skipping untagged ones."""
    return {a.asset_tag for a in assets if a.asset_tag}


class LabRoomDesiredSet(IDesiredSetProvider):
    """Devices located in one helpdesk room."""

    def __init__(
        self,
        helpdesk: IHelpdeskService,
        buildings: BuildingDirectory,
        building_code: str,
        room_number: str,
    ):
        self.helpdesk = helpdesk
        self.buildings = buildings
        self.building_code = building_code
        self.room_number = room_number

    def describe(self) -> str:
        return f"helpdesk room {self.building_code}-{self.room_number}"

    async def desired_names(self) -> set[str]:
        if self.building_code not in self.buildings:
            raise TargetResolutionError(
                f"Unknown building code '{self.building_code}'",
                target=self.describe(),
            )

        rooms = await self.helpdesk.list_rooms()
        room = resolve_room(self.building_code, self.room_number, rooms, self.buildings)
        if room is None:
            raise TargetResolutionError(
                f"No active room '{self.room_number}' in "
                f"{self.buildings.canonical_name(self.building_code)}",
                target=self.describe(),
            )

        assets = await self.helpdesk.list_devices_by_room(room.id)
        return asset_tags(assets)


class UnassignedDesiredSet(IDesiredSetProvider):
    """Devices the helpdesk lists in one of the storage statuses."""

    def __init__(
        self,
        helpdesk: IHelpdeskService,
        statuses: list[str],
        asset_types: list[str],
    ):
        self.helpdesk = helpdesk
        self.statuses = statuses
        self.asset_types = asset_types

    def describe(self) -> str:
        return f"helpdesk assets with status {', '.join(self.statuses)}"

    async def desired_names(self) -> set[str]:
        assets = await self.helpdesk.list_devices_by_status(self.statuses, self.asset_types or None)
        return asset_tags(assets)


class CompletedAutopilotDesiredSet(IDesiredSetProvider):
    """Managed devices whose Autopilot identity reached a completed state."""

    def __init__(self, intune: IDeviceManagementService, enrollment_states: list[str]):
        self.intune = intune
        self.enrollment_states = {s.lower() for s in enrollment_states}

    def describe(self) -> str:
        return f"Autopilot devices in state {', '.join(sorted(self.enrollment_states))}"

    async def desired_names(self) -> set[str]:
        autopilot = await self.intune.list_autopilot_devices()
        completed_ids = {
            a.managed_device_id
            for a in autopilot
            if a.managed_device_id and (a.enrollment_state or "").lower() in self.enrollment_states
        }
        if not completed_ids:
            return set()

        managed = await self.intune.list_managed_devices()
        return {
            d.device_name
            for d in managed
            if d.id in completed_ids and d.device_name
        }


class BuildingCohortDesiredSet(IDesiredSetProvider):
    """Devices in every active room of one building."""

    def __init__(
        self,
        helpdesk: IHelpdeskService,
        buildings: BuildingDirectory,
        building_code: str,
    ):
        self.helpdesk = helpdesk
        self.buildings = buildings
        self.building_code = building_code

    def describe(self) -> str:
        return f"all rooms in building {self.building_code}"

    async def desired_names(self) -> set[str]:
        building_name = self.buildings.canonical_name(self.building_code)
        if building_name is None:
            raise TargetResolutionError(
                f"Unknown building code '{self.building_code}'",
                target=self.describe(),
            )

        rooms = [
            r for r in await self.helpdesk.list_rooms()
            if r.is_active and r.building_name == building_name
        ]
        if not rooms:
            known = {b.name for b in await self.helpdesk.list_buildings()}
            if building_name not in known:
                # Usually a renamed building; the configured name is stale
                raise TargetResolutionError(
                    f"Helpdesk has no building named '{building_name}'",
                    target=self.describe(),
                )
            raise TargetResolutionError(
                f"No active rooms in {building_name}",
                target=self.describe(),
            )

        names: set[str] = set()
        for room in rooms:
            names |= asset_tags(await self.helpdesk.list_devices_by_room(room.id))
        logger.debug(f"{building_name}: {len(names)} devices across {len(rooms)} rooms")
        return names


def build_target_plans(
    config: "SyncConfig",
    helpdesk: IHelpdeskService,
    intune: IDeviceManagementService,
) -> list["TargetPlan"]:
    """Pair every configured group with the provider for its desired set.

    Order: lab rooms, building cohorts, unassigned, completed.
    """
    buildings = BuildingDirectory(config.buildings)
    plans: list["TargetPlan"] = []

    for lab in config.lab_rooms:
        plans.append((
            SyncTarget(TargetKind.LAB_ROOM, lab.group, lab.building, lab.room),
            LabRoomDesiredSet(helpdesk, buildings, lab.building, lab.room),
        ))

    for cohort in config.building_cohorts:
        plans.append((
            SyncTarget(TargetKind.BUILDING, cohort.group, cohort.building),
            BuildingCohortDesiredSet(helpdesk, buildings, cohort.building),
        ))

    if config.unassigned:
        plans.append((
            SyncTarget(TargetKind.UNASSIGNED, config.unassigned.group),
            UnassignedDesiredSet(helpdesk, config.unassigned.statuses, config.unassigned.asset_types),
        ))

    if config.completed:
        plans.append((
            SyncTarget(TargetKind.COMPLETED, config.completed.group),
            CompletedAutopilotDesiredSet(intune, config.completed.enrollment_states),
        ))

    return plans
