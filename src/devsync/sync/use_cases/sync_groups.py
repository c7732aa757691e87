"""Sync Groups Use Case - Reconciles every configured group in turn.

Workflow (per target, one target at a time):
1. Compute the desired set with the target's provider
2. Look up the directory group by name
3. Reconcile its membership (see ReconcileGroupUseCase)

A target whose building, room or group cannot be found is skipped with a
logged error; the remaining targets still run. Authentication and
connection failures abort the whole run.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from ...api.exceptions import FATAL_ERRORS, DevSyncError, TargetResolutionError
from ..domain.entities import EventCode, ReconcileResult, Severity, SyncTarget
from ..domain.ports import IDesiredSetProvider, IDirectoryService, IEventLog
from .reconcile import ReconcileGroupUseCase

logger = logging.getLogger(__name__)

TargetPlan = tuple[SyncTarget, IDesiredSetProvider]


class SyncGroupsUseCase:
    """Orchestrates reconciliation across all configured groups.

    Example:
        use_case = SyncGroupsUseCase(directory, event_log, reconciler)
        results = await use_case.execute(build_target_plans(config, helpdesk, intune))
    """

    def __init__(
        self,
        directory: IDirectoryService,
        event_log: IEventLog,
        reconciler: ReconcileGroupUseCase,
    ):
        self.directory = directory
        self.event_log = event_log
        self.reconciler = reconciler

    async def execute(self, plans: Sequence[TargetPlan]) -> list[ReconcileResult]:
        """Reconcile every target sequentially.

        Returns:
            One ReconcileResult per target, in configuration order

        Raises:
            AuthenticationError, NetworkError, ...: Fatal errors abort the run
        """
        started_at = datetime.now(timezone.utc)
        self.event_log.write(
            EventCode.RUN_STARTED,
            Severity.INFO,
            f"Group sync started for {len(plans)} targets",
        )

        results: list[ReconcileResult] = []
        for target, provider in plans:
            results.append(await self._sync_target(target, provider))

        duration = (datetime.now(timezone.utc) - started_at).total_seconds()
        failed = sum(1 for r in results if not r.success)
        added = sum(r.added for r in results)
        removed = sum(r.removed for r in results)
        summary = (
            f"Group sync completed in {duration:.2f}s: {len(results)} targets, "
            f"{added} added, {removed} removed, {failed} with errors"
        )
        logger.info(summary)
        self.event_log.write(
            EventCode.RUN_COMPLETED,
            Severity.INFO if failed == 0 else Severity.WARNING,
            summary,
        )
        return results

    async def _sync_target(
        self,
        target: SyncTarget,
        provider: IDesiredSetProvider,
    ) -> ReconcileResult:
        logger.info(f"Syncing {target.label} ({provider.describe()})")

        try:
            desired = await provider.desired_names()

            group_id = await self.directory.lookup_group_id(target.group_name)
            if group_id is None:
                raise TargetResolutionError(
                    f"Group '{target.group_name}' not found in directory",
                    target=target.label,
                )

            return await self.reconciler.execute(group_id, target.group_name, desired)

        except FATAL_ERRORS:
            raise

        except DevSyncError as e:
            logger.error(f"Skipping {target.label}: {e.message}")
            self.event_log.write(
                EventCode.TARGET_SKIPPED,
                Severity.ERROR,
                f"Skipped {target.label}: {e.message}",
            )
            return ReconcileResult(
                group_name=target.group_name,
                skipped_reason=e.message,
                started_at=datetime.now(timezone.utc),
                completed_at=datetime.now(timezone.utc),
            )
