"""Domain entities for sync operations.

These are pure data structures with no infrastructure dependencies.
They represent the devices, rooms and directory records the sync use cases
read, and the results they produce. Nothing here outlives a single run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


# ============================================
# Sync Targets
# ============================================


class TargetKind(str, Enum):
    """Kinds of group a reconciliation run can target."""

    LAB_ROOM = "lab_room"  # Devices located in one helpdesk room
    UNASSIGNED = "unassigned"  # Devices in storage / not deployed
    COMPLETED = "completed"  # Autopilot devices that finished enrollment
    BUILDING = "building"  # Every device in a building


@dataclass(frozen=True)
class SyncTarget:
    """One directory group whose membership is reconciled each run."""

    kind: TargetKind
    group_name: str
    building_code: Optional[str] = None
    room_number: Optional[str] = None

    @property
    def label(self) -> str:
        """Short description for log lines."""
        if self.kind == TargetKind.LAB_ROOM:
            return f"{self.kind.value}:{self.building_code}-{self.room_number} -> {self.group_name}"
        if self.kind == TargetKind.BUILDING:
            return f"{self.kind.value}:{self.building_code} -> {self.group_name}"
        return f"{self.kind.value} -> {self.group_name}"


# ============================================
# Helpdesk Entities
# ============================================


@dataclass
class Building:
    """A building as listed by the helpdesk system."""

    id: str
    name: str
    code: Optional[str] = None


@dataclass
class Room:
    """A room as listed by the helpdesk system.

    room names look like "101", "101 Science Lab" or "Gym".
    """

    id: str
    name: str
    building_name: Optional[str] = None
    is_active: bool = True


@dataclass
class HelpdeskAsset:
    """A device record in the helpdesk asset-tracking system.

    The asset tag is the authoritative device name; directory and Intune
    names are expected to equal it.
    """

    id: str
    asset_tag: Optional[str] = None
    serial_number: Optional[str] = None
    status: Optional[str] = None
    asset_type: Optional[str] = None
    room_id: Optional[str] = None
    building_name: Optional[str] = None
    raw_data: dict[str, Any] = field(default_factory=dict)


# ============================================
# Intune / Directory Entities
# ============================================


@dataclass
class ManagedDevice:
    """An Intune managed device."""

    id: str
    device_name: Optional[str] = None
    serial_number: Optional[str] = None
    operating_system: Optional[str] = None
    os_version: Optional[str] = None
    user_principal_name: Optional[str] = None
    registration_state: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    raw_data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_windows(self) -> bool:
        return (self.operating_system or "").lower() == "windows"

    @property
    def is_registered(self) -> bool:
        return (self.registration_state or "").lower() == "registered"

    @property
    def has_primary_user(self) -> bool:
        return bool(self.user_principal_name)


@dataclass
class AutopilotDevice:
    """A Windows Autopilot device identity."""

    id: str
    serial_number: Optional[str] = None
    enrollment_state: Optional[str] = None
    managed_device_id: Optional[str] = None
    group_tag: Optional[str] = None
    raw_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ComputerRecord:
    """An Active Directory computer object."""

    name: str
    distinguished_name: str
    dns_host_name: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class AppAssignment:
    """An Intune app assigned to (or excluded from) a group."""

    app_id: str
    app_name: str
    intent: str
    group_id: str
    excluded: bool = False
    app_type: Optional[str] = None


# ============================================
# Mutation Results
# ============================================


class MutationAction(str, Enum):
    """Directory/Intune mutations the sync tools perform."""

    ADD_MEMBER = "add_member"
    REMOVE_MEMBER = "remove_member"
    DELETE_MANAGED_DEVICE = "delete_managed_device"
    REMOVE_PRIMARY_USER = "remove_primary_user"
    DELETE_AUTOPILOT_DEVICE = "delete_autopilot_device"
    DELETE_COMPUTER = "delete_computer"
    RENAME_DEVICE = "rename_device"


class MutationOutcome(str, Enum):
    """Outcome of one mutation attempt.

    Transient failures are worth retrying on the next run; terminal ones
    need a human. UNRESOLVED means the name matched no directory object.
    """

    APPLIED = "applied"
    ALREADY_IN_STATE = "already_in_state"
    UNRESOLVED = "unresolved"
    DEFERRED = "deferred"
    TRANSIENT_FAILURE = "transient_failure"
    TERMINAL_FAILURE = "terminal_failure"


@dataclass
class MutationResult:
    """Result of one mutation attempt against one identifier."""

    action: MutationAction
    subject: str
    outcome: MutationOutcome
    target_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return self.outcome in (
            MutationOutcome.TRANSIENT_FAILURE,
            MutationOutcome.TERMINAL_FAILURE,
        )

    @property
    def is_change(self) -> bool:
        return self.outcome == MutationOutcome.APPLIED

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "subject": self.subject,
            "target_id": self.target_id,
            "outcome": self.outcome.value,
            "message": self.message,
        }


# ============================================
# Reconciliation Results
# ============================================


@dataclass
class SetDiff:
    """Difference between a desired and an actual membership set.

    initial_sync is set when the actual set was empty and the comparison
    was skipped: every desired name is added, nothing is removed.
    """

    to_add: set[str] = field(default_factory=set)
    to_remove: set[str] = field(default_factory=set)
    initial_sync: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


@dataclass
class ReconcileResult:
    """Result of reconciling one group's membership.

    Contains the computed diff and one MutationResult per attempt.
    """

    group_name: str
    desired_count: int = 0
    actual_count: int = 0
    diff: SetDiff = field(default_factory=SetDiff)
    results: list[MutationResult] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def _count(self, action: MutationAction, outcome: MutationOutcome) -> int:
        return sum(1 for r in self.results if r.action == action and r.outcome == outcome)

    @property
    def added(self) -> int:
        return self._count(MutationAction.ADD_MEMBER, MutationOutcome.APPLIED)

    @property
    def removed(self) -> int:
        return self._count(MutationAction.REMOVE_MEMBER, MutationOutcome.APPLIED)

    @property
    def unresolved(self) -> list[str]:
        return sorted(
            {r.subject for r in self.results if r.outcome == MutationOutcome.UNRESOLVED}
        )

    @property
    def failures(self) -> list[MutationResult]:
        return [r for r in self.results if r.is_failure]

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def success(self) -> bool:
        """No target-level skip and no failed mutation. Unresolved names are not failures."""
        return not self.skipped and not self.failures

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for CLI output and the health endpoint."""
        return {
            "group": self.group_name,
            "desired": self.desired_count,
            "actual": self.actual_count,
            "to_add": len(self.diff.to_add),
            "to_remove": len(self.diff.to_remove),
            "added": self.added,
            "removed": self.removed,
            "unresolved": len(self.unresolved),
            "failed": len(self.failures),
            "skipped": self.skipped_reason,
            "success": self.success,
        }


@dataclass
class BatchResult:
    """Result of a device-level cleanup batch (primary users, duplicates, ...)."""

    operation: str
    examined: int = 0
    results: list[MutationResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def applied(self) -> int:
        return sum(1 for r in self.results if r.is_change)

    @property
    def deferred(self) -> int:
        return sum(1 for r in self.results if r.outcome == MutationOutcome.DEFERRED)

    @property
    def failures(self) -> list[MutationResult]:
        return [r for r in self.results if r.is_failure]

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "examined": self.examined,
            "applied": self.applied,
            "deferred": self.deferred,
            "failed": len(self.failures),
            "success": self.success,
        }


# ============================================
# Operational Log
# ============================================


class Severity(str, Enum):
    """Severity of an operational log event."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class EventCode(int, Enum):
    """Stable event codes for the operational log.

    Kept numeric so log shippers can filter on them the way the old
    event-log entries were filtered.
    """

    RUN_STARTED = 1000
    RUN_COMPLETED = 1001
    MEMBER_ADDED = 1100
    MEMBER_REMOVED = 1101
    DEVICE_UNRESOLVED = 1102
    MUTATION_FAILED = 1103
    DUPLICATE_NAME = 1104
    TARGET_SKIPPED = 1200
    DEVICE_DELETED = 1300
    PRIMARY_USER_REMOVED = 1301
    AUTOPILOT_DELETED = 1302
    COMPUTER_DELETED = 1303
    DEVICE_RENAMED = 1304
    RENAME_DEFERRED = 1305
    FATAL = 1900
