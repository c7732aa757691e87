"""Adapters layer - Infrastructure implementations for sync operations.

This layer contains concrete implementations of the ports defined in the domain layer:
- GraphDirectoryAPI: Entra ID (Microsoft Graph) implementation of IDirectoryService
- GraphIntuneAPI: Intune (Microsoft Graph) implementation of IDeviceManagementService
- HelpdeskInventoryAPI: Helpdesk REST implementation of IHelpdeskService
- LdapComputerDirectory: Active Directory (ldap3) implementation of IComputerDirectory
- TcpHostProbe: TCP connect implementation of IHostProbe
- LoggingEventLog / FileMissingDeviceLog: Operational log sinks
- Desired-set providers: One IDesiredSetProvider per kind of synced group
"""

from .desired_sets import (
    BuildingCohortDesiredSet,
    CompletedAutopilotDesiredSet,
    LabRoomDesiredSet,
    UnassignedDesiredSet,
    build_target_plans,
)
from .event_log import FileMissingDeviceLog, LoggingEventLog
from .field_mapper import HelpdeskFieldMapper, IntuneFieldMapper, parse_timestamp
from .graph_adapter import GraphDirectoryAPI, GraphIntuneAPI, odata_quote
from .helpdesk_adapter import HelpdeskInventoryAPI
from .host_probe import TcpHostProbe
from .ldap_computers import LdapComputerDirectory

__all__ = [
    # Directory and Intune
    "GraphDirectoryAPI",
    "GraphIntuneAPI",
    "odata_quote",
    # Helpdesk
    "HelpdeskInventoryAPI",
    # Active Directory
    "LdapComputerDirectory",
    "TcpHostProbe",
    # Logging
    "FileMissingDeviceLog",
    "LoggingEventLog",
    # Field mapping
    "HelpdeskFieldMapper",
    "IntuneFieldMapper",
    "parse_timestamp",
    # Desired sets
    "BuildingCohortDesiredSet",
    "CompletedAutopilotDesiredSet",
    "LabRoomDesiredSet",
    "UnassignedDesiredSet",
    "build_target_plans",
]
