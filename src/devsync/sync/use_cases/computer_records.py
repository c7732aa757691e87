"""Computer Records Use Case - Cleans up misnamed Active Directory computers.

Computers are imaged with a temporary name and renamed to their asset tag
once the helpdesk record exists. This use case handles the AD objects that
never got there.

Workflow:
1. List AD computer objects that do not fully match the naming convention
2. Look up the Intune managed device with the same name
3. No managed device: delete the AD object once it is past the grace period
4. Managed device found: group records by the device's serial number,
   keep the oldest record of each serial and delete the newer ones
5. For each kept record, compare its name with the helpdesk asset tag and
   rename the device if it differs and the host answers; otherwise defer
"""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Optional

from ...api.exceptions import FATAL_ERRORS
from ..domain.entities import (
    BatchResult,
    ComputerRecord,
    EventCode,
    ManagedDevice,
    MutationAction,
    MutationOutcome,
    MutationResult,
    Severity,
)
from ..domain.ports import (
    IComputerDirectory,
    IDeviceManagementService,
    IEventLog,
    IHelpdeskService,
    IHostProbe,
)
from .device_cleanup import attempt_mutation
from .reconcile import failure_result

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _created_key(record: ComputerRecord) -> tuple[bool, datetime]:
    # Records without a creation time sort after every dated record
    return (record.created_at is None, record.created_at or _OLDEST)


class ReconcileComputerRecordsUseCase:
    """Deletes stale AD computer objects and renames misnamed devices.

    Example:
        use_case = ReconcileComputerRecordsUseCase(
            computers=LdapComputerDirectory(...),
            intune=GraphIntuneAPI(client),
            helpdesk=HelpdeskInventoryAPI(helpdesk_client),
            probe=TcpHostProbe(port=445),
            event_log=LoggingEventLog(),
            naming_pattern=r"[A-Z]{2,4}-\\d{3}-\\d{2}",
        )
        result = await use_case.execute()
    """

    def __init__(
        self,
        computers: IComputerDirectory,
        intune: IDeviceManagementService,
        helpdesk: IHelpdeskService,
        probe: IHostProbe,
        event_log: IEventLog,
        naming_pattern: str,
        grace_period: timedelta = timedelta(days=1),
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the use case with its dependencies.

        Args:
            computers: Port for AD computer objects
            intune: Port for managed devices (lookup and rename)
            helpdesk: Port for asset tags by serial number
            probe: Port for host reachability
            event_log: Port for the operational log
            naming_pattern: Regex a correctly named computer fully matches
            grace_period: Minimum age before an orphaned record is deleted
            clock: Returns the current UTC time (for tests)
        """
        self.computers = computers
        self.intune = intune
        self.helpdesk = helpdesk
        self.probe = probe
        self.event_log = event_log
        self.naming_pattern = re.compile(naming_pattern)
        self.grace_period = grace_period
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def execute(self) -> BatchResult:
        result = BatchResult(
            operation="reconcile-computers",
            started_at=datetime.now(timezone.utc),
        )

        records = await self.computers.list_computers()
        outliers = [r for r in records if not self.naming_pattern.fullmatch(r.name)]
        result.examined = len(outliers)
        logger.info(f"{len(outliers)} of {len(records)} computer objects are outside the naming convention")

        # serial -> [(record, managed device)] in listing order
        by_serial: dict[str, list[tuple[ComputerRecord, ManagedDevice]]] = {}

        for record in outliers:
            try:
                devices = await self.intune.find_managed_devices_by_name(record.name)
            except FATAL_ERRORS:
                raise
            except Exception as e:
                logger.error(f"Managed device lookup failed for {record.name}: {e}")
                result.results.append(failure_result(MutationAction.RENAME_DEVICE, record.name, e))
                continue

            if not devices:
                orphan = await self._handle_orphan(record)
                if orphan:
                    result.results.append(orphan)
                continue

            device = devices[0]
            serial = (device.serial_number or "").strip()
            if not serial:
                logger.warning(f"Managed device {device.id} for {record.name} has no serial number")
                continue
            by_serial.setdefault(serial, []).append((record, device))

        for serial, pairs in by_serial.items():
            ordered = sorted(pairs, key=lambda pair: _created_key(pair[0]))
            kept_record, kept_device = ordered[0]

            for record, _ in ordered[1:]:
                result.results.append(
                    await attempt_mutation(
                        MutationAction.DELETE_COMPUTER,
                        record.name,
                        record.distinguished_name,
                        lambda record=record: self.computers.delete_computer(record),
                        self.event_log,
                        EventCode.COMPUTER_DELETED,
                        f"Deleted duplicate computer {record.name} for serial {serial} "
                        f"(kept {kept_record.name})",
                    )
                )

            rename = await self._rename_to_asset_tag(kept_record, kept_device, serial)
            if rename:
                result.results.append(rename)

        result.completed_at = datetime.now(timezone.utc)
        return result

    async def _handle_orphan(self, record: ComputerRecord) -> Optional[MutationResult]:
        """Delete an AD record with no managed device once it is old enough."""
        if record.created_at is None:
            logger.warning(f"{record.name} has no creation time; leaving it")
            return None

        age = self._clock() - record.created_at
        if age <= self.grace_period:
            logger.info(f"{record.name} is within the grace period ({age}); leaving it")
            return None

        return await attempt_mutation(
            MutationAction.DELETE_COMPUTER,
            record.name,
            record.distinguished_name,
            lambda: self.computers.delete_computer(record),
            self.event_log,
            EventCode.COMPUTER_DELETED,
            f"Deleted stale computer {record.name} (no managed device, created {record.created_at})",
        )

    async def _rename_to_asset_tag(
        self,
        record: ComputerRecord,
        device: ManagedDevice,
        serial: str,
    ) -> Optional[MutationResult]:
        try:
            asset = await self.helpdesk.get_device(serial)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            logger.error(f"Helpdesk lookup failed for serial {serial}: {e}")
            return failure_result(MutationAction.RENAME_DEVICE, record.name, e, target_id=device.id)

        if asset is None or not asset.asset_tag:
            logger.warning(f"No helpdesk asset tag for serial {serial} ({record.name})")
            return None

        new_name = asset.asset_tag
        if record.name == new_name:
            return None

        host = record.dns_host_name or record.name
        if not await self.probe.is_reachable(host):
            message = f"{record.name} is unreachable; rename to {new_name} deferred to next run"
            logger.info(message)
            self.event_log.write(EventCode.RENAME_DEFERRED, Severity.INFO, message)
            return MutationResult(
                action=MutationAction.RENAME_DEVICE,
                subject=record.name,
                outcome=MutationOutcome.DEFERRED,
                target_id=device.id,
                message=message,
            )

        return await attempt_mutation(
            MutationAction.RENAME_DEVICE,
            record.name,
            device.id,
            lambda: self.intune.rename_managed_device(device.id, new_name),
            self.event_log,
            EventCode.DEVICE_RENAMED,
            f"Renamed {record.name} to {new_name}",
        )
