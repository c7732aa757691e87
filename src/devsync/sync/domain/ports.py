"""Port interfaces for sync operations.

Ports define the contracts between the domain/use cases and the infrastructure.
These are abstract base classes that adapters must implement.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations

Mutating methods return a MutationOutcome (APPLIED or ALREADY_IN_STATE) and
raise a DevSyncError subclass on failure; the use cases turn those errors
into per-item results.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .entities import (
    AppAssignment,
    AutopilotDevice,
    Building,
    ComputerRecord,
    EventCode,
    HelpdeskAsset,
    ManagedDevice,
    MutationOutcome,
    Room,
    Severity,
)


# ============================================
# Directory (Entra ID) Ports
# ============================================


class IDirectoryService(ABC):
    """Port for directory group and device operations.

    Implementations talk to Entra ID through Microsoft Graph.
    """

    @abstractmethod
    async def lookup_group_id(self, group_name: str) -> Optional[str]:
        """Find a group by display name.

        Args:
            group_name: Exact display name of the group

        Returns:
            The group's object id, or None if no group has that name
        """
        ...

    @abstractmethod
    async def list_group_members(self, group_id: str) -> set[str]:
        """List the display names of the devices in a group.

        Args:
            group_id: Group object id

        Returns:
            Set of device display names (deduplicated)
        """
        ...

    @abstractmethod
    async def resolve_device_ids(self, device_name: str) -> list[str]:
        """Map a device display name to directory object ids.

        Display names are not unique; every match is returned.

        Args:
            device_name: Device display name

        Returns:
            Zero or more device object ids
        """
        ...

    @abstractmethod
    async def add_member(self, group_id: str, member_id: str) -> MutationOutcome:
        """Add a device to a group.

        Returns:
            APPLIED, or ALREADY_IN_STATE if the device was already a member
        """
        ...

    @abstractmethod
    async def remove_member(self, group_id: str, member_id: str) -> MutationOutcome:
        """Remove a device from a group.

        Returns:
            APPLIED, or ALREADY_IN_STATE if the device was not a member
        """
        ...


# ============================================
# Device Management (Intune) Ports
# ============================================


class IDeviceManagementService(ABC):
    """Port for Intune managed-device, Autopilot and app operations."""

    @abstractmethod
    async def list_managed_devices(
        self,
        odata_filter: Optional[str] = None,
    ) -> list[ManagedDevice]:
        """List managed devices.

        Args:
            odata_filter: Optional OData $filter expression

        Returns:
            Managed devices in listing order
        """
        ...

    @abstractmethod
    async def find_managed_devices_by_name(self, device_name: str) -> list[ManagedDevice]:
        """Find managed devices whose device name equals device_name."""
        ...

    @abstractmethod
    async def delete_managed_device(self, device_id: str) -> MutationOutcome:
        """Delete a managed device record."""
        ...

    @abstractmethod
    async def remove_primary_user(self, device_id: str) -> MutationOutcome:
        """Remove the primary user from a managed device."""
        ...

    @abstractmethod
    async def rename_managed_device(self, device_id: str, new_name: str) -> MutationOutcome:
        """Rename a managed device (takes effect on the device's next check-in).

        Args:
            device_id: Managed device id
            new_name: New computer name
        """
        ...

    @abstractmethod
    async def list_autopilot_devices(self) -> list[AutopilotDevice]:
        """List Windows Autopilot device identities."""
        ...

    @abstractmethod
    async def delete_autopilot_device(self, autopilot_id: str) -> MutationOutcome:
        """Delete a Windows Autopilot device identity."""
        ...

    @abstractmethod
    async def list_app_assignments(self) -> list[AppAssignment]:
        """List every (app, group) assignment across all mobile apps.

        Returns:
            One AppAssignment per group targeted by an app, exclusions included
        """
        ...


# ============================================
# Helpdesk Inventory Ports
# ============================================


class IHelpdeskService(ABC):
    """Port for the helpdesk asset-tracking system.

    The helpdesk system is authoritative for device names (asset tags)
    and device locations.
    """

    @abstractmethod
    async def list_buildings(self) -> list[Building]:
        """List all buildings."""
        ...

    @abstractmethod
    async def list_rooms(self) -> list[Room]:
        """List all rooms, active and inactive."""
        ...

    @abstractmethod
    async def list_devices_by_room(self, room_id: str) -> list[HelpdeskAsset]:
        """List the device assets located in a room."""
        ...

    @abstractmethod
    async def list_devices_by_status(
        self,
        statuses: list[str],
        asset_types: Optional[list[str]] = None,
    ) -> list[HelpdeskAsset]:
        """List device assets in any of the given statuses.

        Args:
            statuses: Asset statuses to include (e.g. "In Storage")
            asset_types: Optional asset types to restrict to

        Returns:
            Matching assets
        """
        ...

    @abstractmethod
    async def get_device(self, serial_number: str) -> Optional[HelpdeskAsset]:
        """Look up one device asset by serial number.

        Returns:
            The asset, or None if the serial is unknown
        """
        ...


# ============================================
# Active Directory Ports
# ============================================


class IComputerDirectory(ABC):
    """Port for on-premises Active Directory computer objects."""

    @abstractmethod
    async def list_computers(self) -> list[ComputerRecord]:
        """List all computer objects under the configured search base."""
        ...

    @abstractmethod
    async def delete_computer(self, record: ComputerRecord) -> MutationOutcome:
        """Delete a computer object.

        Returns:
            APPLIED, or ALREADY_IN_STATE if the object no longer exists
        """
        ...


class IHostProbe(ABC):
    """Port for network reachability checks."""

    @abstractmethod
    async def is_reachable(self, host: str) -> bool:
        """Return True if the host answers on the probe port."""
        ...


# ============================================
# Logging Ports
# ============================================


class IEventLog(ABC):
    """Port for the operational log sink (code, severity, message)."""

    @abstractmethod
    def write(self, code: EventCode, severity: Severity, message: str) -> None:
        """Append one structured event."""
        ...


class IMissingDeviceLog(ABC):
    """Port for the persistent list of names that matched no directory object."""

    @abstractmethod
    def record(self, device_name: str, context: str) -> None:
        """Append an unresolved device name.

        Args:
            device_name: The name that did not resolve
            context: Where it came from (usually the group name)
        """
        ...


# ============================================
# Desired-Set Strategy Port
# ============================================


class IDesiredSetProvider(ABC):
    """Strategy that computes the desired membership of one group."""

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable description of the source."""
        ...

    @abstractmethod
    async def desired_names(self) -> set[str]:
        """Compute the set of device names that should be in the group.

        Raises:
            TargetResolutionError: If the source (building, room) cannot be found
        """
        ...
