"""Sync module - Clean Architecture implementation of the device sync tools.

Reconciles device and group state across the helpdesk asset-tracking
system, Entra ID, Intune and Active Directory.

Architecture:
    domain/     - Pure domain entities, port interfaces and room resolution
    use_cases/  - Business logic orchestration (reconcile, cleanup, reports)
    adapters/   - Infrastructure implementations (Graph, helpdesk, LDAP, logs)
"""

from .domain.entities import (
    BatchResult,
    MutationOutcome,
    MutationResult,
    ReconcileResult,
    SetDiff,
    SyncTarget,
    TargetKind,
)
from .domain.ports import (
    IComputerDirectory,
    IDesiredSetProvider,
    IDeviceManagementService,
    IDirectoryService,
    IEventLog,
    IHelpdeskService,
    IHostProbe,
    IMissingDeviceLog,
)
from .use_cases.reconcile import compute_diff, reconcile

__all__ = [
    # Result Entities
    "BatchResult",
    "MutationOutcome",
    "MutationResult",
    "ReconcileResult",
    "SetDiff",
    # Targets
    "SyncTarget",
    "TargetKind",
    # Ports
    "IComputerDirectory",
    "IDesiredSetProvider",
    "IDeviceManagementService",
    "IDirectoryService",
    "IEventLog",
    "IHelpdeskService",
    "IHostProbe",
    "IMissingDeviceLog",
    # Reconciler
    "compute_diff",
    "reconcile",
]
