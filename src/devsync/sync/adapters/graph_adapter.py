"""Microsoft Graph adapters for Entra ID and Intune.

These adapters implement IDirectoryService and IDeviceManagementService
over GraphClient. Graph's "already a member" and "not found" answers to
mutations are mapped to ALREADY_IN_STATE so repeated runs stay harmless.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ...api.exceptions import NotFoundError, ValidationError
from ...api.graph_client import DIRECTORY_PAGINATION, INTUNE_PAGINATION
from ..domain.entities import AppAssignment, AutopilotDevice, ManagedDevice, MutationOutcome
from ..domain.ports import IDeviceManagementService, IDirectoryService
from .field_mapper import IntuneFieldMapper

if TYPE_CHECKING:
    from ...api.graph_client import GraphClient

logger = logging.getLogger(__name__)


def odata_quote(value: str) -> str:
    """Quote a string literal for an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"


class GraphDirectoryAPI(IDirectoryService):
    """Entra ID adapter for group lookups and device group membership."""

    GROUPS_ENDPOINT = "/v1.0/groups"
    DEVICES_ENDPOINT = "/v1.0/devices"

    def __init__(self, client: "GraphClient"):
        """Initialize the adapter.

        Args:
            client: Configured GraphClient instance (inside its context)
        """
        self.client = client

    async def lookup_group_id(self, group_name: str) -> Optional[str]:
        data = await self.client.get(
            self.GROUPS_ENDPOINT,
            params={
                "$filter": f"displayName eq {odata_quote(group_name)}",
                "$select": "id,displayName",
            },
        )
        groups = data.get("value", [])
        if not groups:
            return None
        if len(groups) > 1:
            logger.warning(f"{len(groups)} groups are named '{group_name}'; using {groups[0]['id']}")
        return groups[0]["id"]

    async def list_group_members(self, group_id: str) -> set[str]:
        # The cast segment limits the listing to device objects
        members = await self.client.fetch_all(
            f"{self.GROUPS_ENDPOINT}/{group_id}/members/microsoft.graph.device",
            config=DIRECTORY_PAGINATION,
            params={"$select": "id,displayName"},
        )
        return {m["displayName"] for m in members if m.get("displayName")}

    async def resolve_device_ids(self, device_name: str) -> list[str]:
        devices = await self.client.fetch_all(
            self.DEVICES_ENDPOINT,
            config=DIRECTORY_PAGINATION,
            params={
                "$filter": f"displayName eq {odata_quote(device_name)}",
                "$select": "id,displayName",
            },
        )
        return [d["id"] for d in devices]

    async def add_member(self, group_id: str, member_id: str) -> MutationOutcome:
        try:
            await self.client.post(
                f"{self.GROUPS_ENDPOINT}/{group_id}/members/$ref",
                json_body={
                    "@odata.id": f"{self.client.base_url}/v1.0/directoryObjects/{member_id}",
                },
            )
        except ValidationError as e:
            # Graph answers 400 "One or more added object references already exist"
            if "already exist" in (e.response_body or ""):
                return MutationOutcome.ALREADY_IN_STATE
            raise
        return MutationOutcome.APPLIED

    async def remove_member(self, group_id: str, member_id: str) -> MutationOutcome:
        try:
            await self.client.delete(f"{self.GROUPS_ENDPOINT}/{group_id}/members/{member_id}/$ref")
        except NotFoundError:
            return MutationOutcome.ALREADY_IN_STATE
        return MutationOutcome.APPLIED


class GraphIntuneAPI(IDeviceManagementService):
    """Intune adapter for managed devices, Autopilot identities and apps.

    The primary-user and rename actions only exist on the beta endpoint.
    """

    MANAGED_DEVICES_ENDPOINT = "/v1.0/deviceManagement/managedDevices"
    BETA_MANAGED_DEVICES_ENDPOINT = "/beta/deviceManagement/managedDevices"
    AUTOPILOT_ENDPOINT = "/v1.0/deviceManagement/windowsAutopilotDeviceIdentities"
    MOBILE_APPS_ENDPOINT = "/v1.0/deviceAppManagement/mobileApps"

    MANAGED_DEVICE_FIELDS = (
        "id,deviceName,serialNumber,operatingSystem,osVersion,"
        "userPrincipalName,deviceRegistrationState,lastSyncDateTime"
    )

    def __init__(
        self,
        client: "GraphClient",
        mapper: Optional[IntuneFieldMapper] = None,
    ):
        self.client = client
        self.mapper = mapper or IntuneFieldMapper()

    async def list_managed_devices(
        self,
        odata_filter: Optional[str] = None,
    ) -> list[ManagedDevice]:
        params = {"$select": self.MANAGED_DEVICE_FIELDS}
        if odata_filter:
            params["$filter"] = odata_filter
        raw_devices = await self.client.fetch_all(
            self.MANAGED_DEVICES_ENDPOINT,
            config=INTUNE_PAGINATION,
            params=params,
        )
        logger.info(f"Fetched {len(raw_devices)} managed devices")
        return [self.mapper.map_managed_device(raw) for raw in raw_devices]

    async def find_managed_devices_by_name(self, device_name: str) -> list[ManagedDevice]:
        return await self.list_managed_devices(f"deviceName eq {odata_quote(device_name)}")

    async def delete_managed_device(self, device_id: str) -> MutationOutcome:
        try:
            await self.client.delete(f"{self.MANAGED_DEVICES_ENDPOINT}/{device_id}")
        except NotFoundError:
            return MutationOutcome.ALREADY_IN_STATE
        return MutationOutcome.APPLIED

    async def remove_primary_user(self, device_id: str) -> MutationOutcome:
        try:
            await self.client.delete(f"{self.BETA_MANAGED_DEVICES_ENDPOINT}/{device_id}/users/$ref")
        except NotFoundError:
            return MutationOutcome.ALREADY_IN_STATE
        return MutationOutcome.APPLIED

    async def rename_managed_device(self, device_id: str, new_name: str) -> MutationOutcome:
        await self.client.post(
            f"{self.BETA_MANAGED_DEVICES_ENDPOINT}/{device_id}/setDeviceName",
            json_body={"deviceName": new_name},
        )
        return MutationOutcome.APPLIED

    async def list_autopilot_devices(self) -> list[AutopilotDevice]:
        raw_devices = await self.client.fetch_all(self.AUTOPILOT_ENDPOINT, config=INTUNE_PAGINATION)
        logger.info(f"Fetched {len(raw_devices)} Autopilot devices")
        return [self.mapper.map_autopilot_device(raw) for raw in raw_devices]

    async def delete_autopilot_device(self, autopilot_id: str) -> MutationOutcome:
        try:
            await self.client.delete(f"{self.AUTOPILOT_ENDPOINT}/{autopilot_id}")
        except NotFoundError:
            return MutationOutcome.ALREADY_IN_STATE
        return MutationOutcome.APPLIED

    async def list_app_assignments(self) -> list[AppAssignment]:
        raw_apps = await self.client.fetch_all(
            self.MOBILE_APPS_ENDPOINT,
            config=INTUNE_PAGINATION,
            params={"$expand": "assignments"},
        )
        assignments: list[AppAssignment] = []
        for raw in raw_apps:
            assignments.extend(self.mapper.extract_app_assignments(raw))
        logger.info(f"Fetched {len(raw_apps)} apps with {len(assignments)} group assignments")
        return assignments
