"""Command implementations shared by the CLI and the scheduler.

Each function opens the clients it needs, wires adapters to a use case,
runs it and returns the domain result. Printing and exit codes are left to
the entry points.
"""

import logging
from datetime import timedelta
from typing import Optional

from .api.auth import TokenManager
from .api.graph_client import GraphClient
from .api.helpdesk_client import HelpdeskClient
from .config import SyncConfig
from .sync.adapters import (
    FileMissingDeviceLog,
    GraphDirectoryAPI,
    GraphIntuneAPI,
    HelpdeskInventoryAPI,
    LdapComputerDirectory,
    TcpHostProbe,
    build_target_plans,
)
from .sync.domain.entities import AppAssignment, BatchResult, ReconcileResult
from .sync.domain.ports import IEventLog
from .sync.use_cases import (
    ListGroupAppAssignmentsUseCase,
    ReconcileComputerRecordsUseCase,
    ReconcileGroupUseCase,
    RemoveDuplicateDevicesUseCase,
    RemovePrimaryUsersUseCase,
    RemoveRetiredAutopilotUseCase,
    SyncGroupsUseCase,
)

logger = logging.getLogger(__name__)


async def sync_groups(
    config: SyncConfig,
    token_manager: TokenManager,
    event_log: IEventLog,
    only_groups: Optional[list[str]] = None,
) -> list[ReconcileResult]:
    """Reconcile every configured group (or just the named ones)."""
    async with GraphClient(token_manager) as graph, HelpdeskClient() as helpdesk_client:
        directory = GraphDirectoryAPI(graph)
        intune = GraphIntuneAPI(graph)
        helpdesk = HelpdeskInventoryAPI(helpdesk_client)

        plans = build_target_plans(config, helpdesk, intune)
        if only_groups:
            wanted = set(only_groups)
            plans = [p for p in plans if p[0].group_name in wanted]
            logger.info(f"Limited to {len(plans)} of the configured groups")

        reconciler = ReconcileGroupUseCase(
            directory=directory,
            event_log=event_log,
            missing_log=FileMissingDeviceLog(config.missing_devices_file),
        )
        use_case = SyncGroupsUseCase(directory, event_log, reconciler)
        return await use_case.execute(plans)


async def remove_primary_users(
    config: SyncConfig,
    token_manager: TokenManager,
    event_log: IEventLog,
) -> BatchResult:
    async with GraphClient(token_manager) as graph:
        use_case = RemovePrimaryUsersUseCase(
            GraphIntuneAPI(graph),
            event_log,
            os_version_prefix=config.primary_user_os_prefix,
        )
        return await use_case.execute()


async def remove_duplicates(token_manager: TokenManager, event_log: IEventLog) -> BatchResult:
    async with GraphClient(token_manager) as graph:
        return await RemoveDuplicateDevicesUseCase(GraphIntuneAPI(graph), event_log).execute()


async def remove_retired(
    config: SyncConfig,
    token_manager: TokenManager,
    event_log: IEventLog,
) -> BatchResult:
    async with GraphClient(token_manager) as graph, HelpdeskClient() as helpdesk_client:
        use_case = RemoveRetiredAutopilotUseCase(
            GraphIntuneAPI(graph),
            HelpdeskInventoryAPI(helpdesk_client),
            event_log,
            retired_statuses=config.retired_statuses,
        )
        return await use_case.execute()


async def reconcile_computers(
    config: SyncConfig,
    token_manager: TokenManager,
    event_log: IEventLog,
) -> BatchResult:
    async with (
        GraphClient(token_manager) as graph,
        HelpdeskClient() as helpdesk_client,
        LdapComputerDirectory() as computers,
    ):
        use_case = ReconcileComputerRecordsUseCase(
            computers=computers,
            intune=GraphIntuneAPI(graph),
            helpdesk=HelpdeskInventoryAPI(helpdesk_client),
            probe=TcpHostProbe(port=config.probe_port),
            event_log=event_log,
            naming_pattern=config.computer_naming_pattern,
            grace_period=timedelta(days=config.computer_grace_period_days),
        )
        return await use_case.execute()


async def app_assignments(token_manager: TokenManager, group_name: str) -> list[AppAssignment]:
    async with GraphClient(token_manager) as graph:
        use_case = ListGroupAppAssignmentsUseCase(GraphDirectoryAPI(graph), GraphIntuneAPI(graph))
        return await use_case.execute(group_name)
