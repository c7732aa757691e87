"""Domain layer - Pure domain entities, port interfaces and room resolution.

This layer contains:
- Entities: Pure data structures representing devices, rooms and results
- Ports: Abstract interfaces defining contracts for adapters
- Rooms: Building-code translation and room matching

No infrastructure dependencies allowed in this layer.
"""

from .entities import (
    AppAssignment,
    AutopilotDevice,
    BatchResult,
    Building,
    ComputerRecord,
    EventCode,
    HelpdeskAsset,
    ManagedDevice,
    MutationAction,
    MutationOutcome,
    MutationResult,
    ReconcileResult,
    Room,
    SetDiff,
    Severity,
    SyncTarget,
    TargetKind,
)
from .ports import (
    IComputerDirectory,
    IDesiredSetProvider,
    IDeviceManagementService,
    IDirectoryService,
    IEventLog,
    IHelpdeskService,
    IHostProbe,
    IMissingDeviceLog,
)
from .rooms import BuildingDirectory, resolve_room, room_name_matches

__all__ = [
    # Inventory Entities
    "AppAssignment",
    "AutopilotDevice",
    "Building",
    "ComputerRecord",
    "HelpdeskAsset",
    "ManagedDevice",
    "Room",
    # Targets
    "SyncTarget",
    "TargetKind",
    # Result Entities
    "BatchResult",
    "MutationAction",
    "MutationOutcome",
    "MutationResult",
    "ReconcileResult",
    "SetDiff",
    # Operational Log
    "EventCode",
    "Severity",
    # Ports
    "IComputerDirectory",
    "IDesiredSetProvider",
    "IDeviceManagementService",
    "IDirectoryService",
    "IEventLog",
    "IHelpdeskService",
    "IHostProbe",
    "IMissingDeviceLog",
    # Rooms
    "BuildingDirectory",
    "resolve_room",
    "room_name_matches",
]
