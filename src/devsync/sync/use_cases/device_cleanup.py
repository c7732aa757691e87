"""Device cleanup use cases for Intune and Autopilot.

These are batch operations rather than reconciliations: each selects the
devices that need one mutation, then applies it device by device. A failure
is recorded against that device and the batch continues.

Use cases:
    RemovePrimaryUsersUseCase: Clear the primary user on shared Windows devices
    RemoveDuplicateDevicesUseCase: Delete stale managed-device records per serial
    RemoveRetiredAutopilotUseCase: Delete Autopilot identities of retired assets
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import Optional

from ...api.exceptions import FATAL_ERRORS
from ..domain.entities import (
    AutopilotDevice,
    BatchResult,
    EventCode,
    ManagedDevice,
    MutationAction,
    MutationOutcome,
    MutationResult,
    Severity,
)
from ..domain.ports import IDeviceManagementService, IEventLog, IHelpdeskService
from .reconcile import failure_result

logger = logging.getLogger(__name__)


async def attempt_mutation(
    action: MutationAction,
    subject: str,
    target_id: str,
    call: Callable[[], Awaitable[MutationOutcome]],
    event_log: IEventLog,
    success_code: EventCode,
    success_message: str,
) -> MutationResult:
    """Run one mutation and log its outcome; exceptions become failed results."""
    try:
        outcome = await call()
    except FATAL_ERRORS:
        raise
    except Exception as e:
        result = failure_result(action, subject, e, target_id=target_id)
        logger.error(f"{action.value} failed for {subject} ({target_id}): {e}")
        event_log.write(
            EventCode.MUTATION_FAILED,
            Severity.ERROR,
            f"{action.value} failed for {subject} ({result.outcome.value}): {e}",
        )
        return result

    if outcome == MutationOutcome.APPLIED:
        logger.info(success_message)
        event_log.write(success_code, Severity.INFO, success_message)
    else:
        logger.info(f"{action.value} for {subject}: {outcome.value}")
    return MutationResult(action=action, subject=subject, outcome=outcome, target_id=target_id)


def _sync_key(device: ManagedDevice) -> tuple[bool, Optional[datetime]]:
    # Devices that never synced sort before every timestamp
    return (device.last_sync_at is not None, device.last_sync_at)


def select_duplicate_devices(devices: Iterable[ManagedDevice]) -> list[ManagedDevice]:
    """Pick the managed-device records to delete.

    Devices are grouped by serial number; blank serials are ignored. In each
    group the device with the most recent last sync is kept. On equal or
    missing timestamps the device listed first is kept.

    Returns:
        The devices to delete, in listing order
    """
    devices = list(devices)
    by_serial: dict[str, list[ManagedDevice]] = {}
    for device in devices:
        serial = (device.serial_number or "").strip()
        if not serial:
            continue
        by_serial.setdefault(serial, []).append(device)

    doomed_ids: set[int] = set()
    for group in by_serial.values():
        if len(group) < 2:
            continue
        keeper = group[0]
        for device in group[1:]:
            if _sync_key(device) > _sync_key(keeper):
                keeper = device
        doomed_ids.update(id(d) for d in group if d is not keeper)

    return [d for d in devices if id(d) in doomed_ids]


def retired_autopilot_devices(
    autopilot_devices: Iterable[AutopilotDevice],
    retired_serials: Iterable[str],
) -> list[AutopilotDevice]:
    """Autopilot identities whose serial number is retired in the helpdesk."""
    retired = {s.strip() for s in retired_serials if s and s.strip()}
    return [
        device
        for device in autopilot_devices
        if device.serial_number and device.serial_number.strip() in retired
    ]


class RemovePrimaryUsersUseCase:
    """Removes the primary user from shared Windows devices.

    Only registered Windows devices with a primary user and an OS version
    starting with the configured prefix are touched.
    """

    def __init__(
        self,
        intune: IDeviceManagementService,
        event_log: IEventLog,
        os_version_prefix: str,
    ):
        self.intune = intune
        self.event_log = event_log
        self.os_version_prefix = os_version_prefix

    def _eligible(self, device: ManagedDevice) -> bool:
        return (
            device.is_registered
            and device.is_windows
            and device.has_primary_user
            and (device.os_version or "").startswith(self.os_version_prefix)
        )

    async def execute(self) -> BatchResult:
        result = BatchResult(operation="remove-primary-users", started_at=datetime.now(timezone.utc))

        devices = await self.intune.list_managed_devices("operatingSystem eq 'Windows'")
        eligible = [d for d in devices if self._eligible(d)]
        result.examined = len(devices)
        logger.info(f"{len(eligible)} of {len(devices)} devices have a primary user to remove")

        for device in eligible:
            name = device.device_name or device.id
            result.results.append(
                await attempt_mutation(
                    MutationAction.REMOVE_PRIMARY_USER,
                    name,
                    device.id,
                    lambda device=device: self.intune.remove_primary_user(device.id),
                    self.event_log,
                    EventCode.PRIMARY_USER_REMOVED,
                    f"Removed primary user {device.user_principal_name} from {name}",
                )
            )

        result.completed_at = datetime.now(timezone.utc)
        return result


class RemoveDuplicateDevicesUseCase:
    """Deletes older managed-device records that share a serial number."""

    def __init__(self, intune: IDeviceManagementService, event_log: IEventLog):
        self.intune = intune
        self.event_log = event_log

    async def execute(self) -> BatchResult:
        result = BatchResult(operation="remove-duplicates", started_at=datetime.now(timezone.utc))

        devices = await self.intune.list_managed_devices()
        doomed = select_duplicate_devices(devices)
        result.examined = len(devices)
        logger.info(f"{len(doomed)} duplicate records among {len(devices)} managed devices")

        for device in doomed:
            name = device.device_name or device.id
            result.results.append(
                await attempt_mutation(
                    MutationAction.DELETE_MANAGED_DEVICE,
                    name,
                    device.id,
                    lambda device=device: self.intune.delete_managed_device(device.id),
                    self.event_log,
                    EventCode.DEVICE_DELETED,
                    f"Deleted duplicate record {name} (serial {device.serial_number}, "
                    f"last sync {device.last_sync_at})",
                )
            )

        result.completed_at = datetime.now(timezone.utc)
        return result


class RemoveRetiredAutopilotUseCase:
    """Deletes Autopilot identities for devices retired in the helpdesk."""

    def __init__(
        self,
        intune: IDeviceManagementService,
        helpdesk: IHelpdeskService,
        event_log: IEventLog,
        retired_statuses: list[str],
    ):
        self.intune = intune
        self.helpdesk = helpdesk
        self.event_log = event_log
        self.retired_statuses = retired_statuses

    async def execute(self) -> BatchResult:
        result = BatchResult(operation="remove-retired", started_at=datetime.now(timezone.utc))

        retired_assets = await self.helpdesk.list_devices_by_status(self.retired_statuses)
        retired_serials = [a.serial_number for a in retired_assets if a.serial_number]
        autopilot = await self.intune.list_autopilot_devices()
        doomed = retired_autopilot_devices(autopilot, retired_serials)
        result.examined = len(autopilot)
        logger.info(
            f"{len(doomed)} of {len(autopilot)} Autopilot devices are retired "
            f"({len(retired_serials)} retired assets)"
        )

        for device in doomed:
            serial = device.serial_number or device.id
            result.results.append(
                await attempt_mutation(
                    MutationAction.DELETE_AUTOPILOT_DEVICE,
                    serial,
                    device.id,
                    lambda device=device: self.intune.delete_autopilot_device(device.id),
                    self.event_log,
                    EventCode.AUTOPILOT_DELETED,
                    f"Deleted Autopilot identity for retired device {serial}",
                )
            )

        result.completed_at = datetime.now(timezone.utc)
        return result
