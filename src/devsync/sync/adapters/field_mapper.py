"""Field mappers for transforming API responses into domain entities.

Graph and the helpdesk API both return camelCase JSON; these mappers hold
all knowledge of the field names so the adapters stay thin.
"""

import re
from datetime import datetime, timezone
from typing import Any, Optional

from ..domain.entities import (
    AppAssignment,
    AutopilotDevice,
    Building,
    HelpdeskAsset,
    ManagedDevice,
    Room,
)

# Graph returns up to 7 fractional digits; datetime keeps 6
_FRACTION = re.compile(r"(\.\d{6})\d+")

GROUP_TARGET = "#microsoft.graph.groupAssignmentTarget"
EXCLUSION_GROUP_TARGET = "#microsoft.graph.exclusionGroupAssignmentTarget"


def parse_timestamp(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Handles the 'Z' suffix and Graph's 7-digit fractions. Graph reports
    "never" as 0001-01-01T00:00:00Z, which is returned as None.

    Args:
        iso_string: ISO 8601 formatted timestamp string (may end with 'Z')

    Returns:
        datetime object or None if input is None/empty/"never"
    """
    if not iso_string:
        return None
    normalized = _FRACTION.sub(r"\1", iso_string.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if parsed.year <= 1:
        return None
    return parsed


class IntuneFieldMapper:
    """Maps Microsoft Graph device-management responses to domain entities."""

    def map_managed_device(self, raw: dict[str, Any]) -> ManagedDevice:
        return ManagedDevice(
            id=raw["id"],
            device_name=raw.get("deviceName"),
            serial_number=raw.get("serialNumber"),
            operating_system=raw.get("operatingSystem"),
            os_version=raw.get("osVersion"),
            user_principal_name=raw.get("userPrincipalName") or None,
            registration_state=raw.get("deviceRegistrationState"),
            last_sync_at=parse_timestamp(raw.get("lastSyncDateTime")),
            raw_data=raw,
        )

    def map_autopilot_device(self, raw: dict[str, Any]) -> AutopilotDevice:
        return AutopilotDevice(
            id=raw["id"],
            serial_number=raw.get("serialNumber"),
            enrollment_state=raw.get("enrollmentState"),
            managed_device_id=raw.get("managedDeviceId") or None,
            group_tag=raw.get("groupTag") or None,
            raw_data=raw,
        )

    def extract_app_assignments(self, raw: dict[str, Any]) -> list[AppAssignment]:
        """Flatten a mobileApp (with $expand=assignments) into group assignments.

        Targets that are not groups (all devices, all users) are skipped.

        Args:
            raw: Raw mobileApp dictionary from Graph

        Returns:
            One AppAssignment per targeted group
        """
        assignments = []
        for assignment in raw.get("assignments") or []:
            target = assignment.get("target") or {}
            target_type = target.get("@odata.type")
            if target_type not in (GROUP_TARGET, EXCLUSION_GROUP_TARGET):
                continue
            assignments.append(
                AppAssignment(
                    app_id=raw["id"],
                    app_name=raw.get("displayName") or raw["id"],
                    intent=assignment.get("intent", "unknown"),
                    group_id=target.get("groupId", ""),
                    excluded=target_type == EXCLUSION_GROUP_TARGET,
                    app_type=(raw.get("@odata.type") or "").replace("#microsoft.graph.", "") or None,
                )
            )
        return assignments


class HelpdeskFieldMapper:
    """Maps helpdesk inventory API responses to domain entities.

    Ids are numeric in the helpdesk API and stored as strings here.
    """

    def map_building(self, raw: dict[str, Any]) -> Building:
        return Building(
            id=str(raw["id"]),
            name=raw.get("name", ""),
            code=raw.get("code"),
        )

    def map_room(self, raw: dict[str, Any]) -> Room:
        return Room(
            id=str(raw["id"]),
            name=raw.get("name") or "",
            building_name=raw.get("buildingName"),
            is_active=raw.get("isActive", True),
        )

    def map_asset(self, raw: dict[str, Any]) -> HelpdeskAsset:
        room_id = raw.get("roomId")
        return HelpdeskAsset(
            id=str(raw["id"]),
            asset_tag=raw.get("assetTag"),
            serial_number=raw.get("serialNumber"),
            status=raw.get("status"),
            asset_type=raw.get("assetType"),
            room_id=str(room_id) if room_id is not None else None,
            building_name=raw.get("buildingName"),
            raw_data=raw,
        )
