"""Use cases layer - Business logic orchestration for sync operations.

This layer contains use case classes that orchestrate each workflow:
- Reconcile group membership against a desired set (per group and per run)
- Clean up Intune records (primary users, duplicates, retired Autopilot devices)
- Clean up and rename Active Directory computer records
- Report the apps assigned to a group

Use cases depend only on ports, not concrete implementations.
"""

from .app_assignments import ListGroupAppAssignmentsUseCase
from .computer_records import ReconcileComputerRecordsUseCase
from .device_cleanup import (
    RemoveDuplicateDevicesUseCase,
    RemovePrimaryUsersUseCase,
    RemoveRetiredAutopilotUseCase,
    retired_autopilot_devices,
    select_duplicate_devices,
)
from .reconcile import ReconcileGroupUseCase, compute_diff, reconcile
from .sync_groups import SyncGroupsUseCase

__all__ = [
    "ListGroupAppAssignmentsUseCase",
    "ReconcileComputerRecordsUseCase",
    "ReconcileGroupUseCase",
    "RemoveDuplicateDevicesUseCase",
    "RemovePrimaryUsersUseCase",
    "RemoveRetiredAutopilotUseCase",
    "SyncGroupsUseCase",
    "compute_diff",
    "reconcile",
    "retired_autopilot_devices",
    "select_duplicate_devices",
]
