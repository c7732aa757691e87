"""Reconcile Use Case - Brings one group's membership to its desired state.

Every group the sync tools manage (lab rooms, unassigned devices, completed
Autopilot devices, building cohorts) follows the same workflow; only the
source of the desired set differs. This module holds that workflow once.

Workflow:
1. Compute the diff between desired and actual member names
2. Resolve each name to add and add every matching directory object
3. Resolve each name to remove and remove every matching directory object
4. Record one MutationResult per attempt; a failed item never stops the batch

Authentication, configuration, network and open-circuit errors are not item
failures: they propagate and abort the run.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from functools import partial
from typing import Optional

from ...api.exceptions import FATAL_ERRORS
from ..domain.entities import (
    EventCode,
    MutationAction,
    MutationOutcome,
    MutationResult,
    ReconcileResult,
    SetDiff,
    Severity,
)
from ..domain.ports import IDirectoryService, IEventLog, IMissingDeviceLog

logger = logging.getLogger(__name__)

ResolveFn = Callable[[str], Awaitable[list[str]]]
MutateFn = Callable[[str], Awaitable[MutationOutcome]]
UnresolvedFn = Callable[[str], None]


def compute_diff(desired: set[str], actual: set[str]) -> SetDiff:
    """Compute names to add and remove.

    An empty actual set is treated as a first sync: everything desired is
    added and the comparison is skipped. Names are compared as exact strings.
    """
    if not actual:
        return SetDiff(to_add=set(desired), to_remove=set(), initial_sync=True)
    return SetDiff(to_add=desired - actual, to_remove=actual - desired)


def failure_result(
    action: MutationAction,
    subject: str,
    error: Exception,
    target_id: Optional[str] = None,
) -> MutationResult:
    """Turn an exception into a failed MutationResult.

    Recoverable errors (throttling, 5xx, network) are transient; anything
    else is terminal.
    """
    outcome = (
        MutationOutcome.TRANSIENT_FAILURE
        if getattr(error, "recoverable", False)
        else MutationOutcome.TERMINAL_FAILURE
    )
    return MutationResult(
        action=action,
        subject=subject,
        outcome=outcome,
        target_id=target_id,
        message=str(error),
    )


async def _apply_to_name(
    name: str,
    action: MutationAction,
    resolve: ResolveFn,
    mutate: MutateFn,
    on_unresolved: Optional[UnresolvedFn],
) -> list[MutationResult]:
    try:
        target_ids = await resolve(name)
    except FATAL_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to resolve '{name}': {e}")
        return [failure_result(action, name, e)]

    if not target_ids:
        logger.warning(f"'{name}' matched no directory object")
        if on_unresolved:
            on_unresolved(name)
        return [
            MutationResult(
                action=action,
                subject=name,
                outcome=MutationOutcome.UNRESOLVED,
                message="No directory object with this name",
            )
        ]

    if len(target_ids) > 1:
        logger.warning(
            f"'{name}' matched {len(target_ids)} directory objects; "
            f"applying {action.value} to all of them"
        )

    results = []
    for target_id in target_ids:
        try:
            outcome = await mutate(target_id)
            results.append(
                MutationResult(
                    action=action,
                    subject=name,
                    outcome=outcome,
                    target_id=target_id,
                )
            )
        except FATAL_ERRORS:
            raise
        except Exception as e:
            logger.error(f"{action.value} failed for '{name}' ({target_id}): {e}")
            results.append(failure_result(action, name, e, target_id=target_id))
    return results


async def reconcile(
    desired: set[str],
    actual: set[str],
    resolve: ResolveFn,
    apply_add: MutateFn,
    apply_remove: MutateFn,
    on_unresolved: Optional[UnresolvedFn] = None,
    group_name: str = "",
) -> ReconcileResult:
    """Apply the difference between desired and actual membership.

    Args:
        desired: Names that should be members
        actual: Names that currently are members
        resolve: Maps a name to zero or more directory object ids
        apply_add: Adds one object id to the group
        apply_remove: Removes one object id from the group
        on_unresolved: Called once for each name to add that matched nothing
        group_name: Used for logging and the result

    Returns:
        ReconcileResult with the diff and one result per attempt

    Raises:
        AuthenticationError, NetworkError, ...: Fatal errors abort the group
    """
    started_at = datetime.now(timezone.utc)
    diff = compute_diff(desired, actual)

    if diff.initial_sync and desired:
        logger.info(f"{group_name or 'group'} is empty; adding all {len(desired)} desired devices")

    results: list[MutationResult] = []

    # Sorted so repeated runs touch names in the same order
    for name in sorted(diff.to_add):
        results.extend(
            await _apply_to_name(name, MutationAction.ADD_MEMBER, resolve, apply_add, on_unresolved)
        )

    for name in sorted(diff.to_remove):
        results.extend(
            await _apply_to_name(name, MutationAction.REMOVE_MEMBER, resolve, apply_remove, None)
        )

    return ReconcileResult(
        group_name=group_name,
        desired_count=len(desired),
        actual_count=len(actual),
        diff=diff,
        results=results,
        started_at=started_at,
        completed_at=datetime.now(timezone.utc),
    )


class ReconcileGroupUseCase:
    """Reconciles one directory group against a desired set of device names.

    Runs against the same group id are serialized, so a second run only
    starts after the first has read and mutated the group.

    Example:
        use_case = ReconcileGroupUseCase(
            directory=GraphDirectoryAPI(client),
            event_log=LoggingEventLog(),
            missing_log=FileMissingDeviceLog("missing_devices.log"),
        )
        result = await use_case.execute(group_id, "Lab-HS-101", {"HS-101-01"})
    """

    def __init__(
        self,
        directory: IDirectoryService,
        event_log: IEventLog,
        missing_log: IMissingDeviceLog,
    ):
        """Initialize the use case with its dependencies.

        Args:
            directory: Port for group lookups and membership changes
            event_log: Port for the operational log
            missing_log: Port for recording names that matched nothing
        """
        self.directory = directory
        self.event_log = event_log
        self.missing_log = missing_log
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, group_id: str) -> asyncio.Lock:
        lock = self._locks.get(group_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[group_id] = lock
        return lock

    async def execute(
        self,
        group_id: str,
        group_name: str,
        desired: set[str],
    ) -> ReconcileResult:
        """Read the group's current members and reconcile them.

        Returns:
            ReconcileResult for the group
        """
        async with self._lock_for(group_id):
            actual = await self.directory.list_group_members(group_id)
            logger.info(
                f"{group_name}: {len(desired)} desired, {len(actual)} current members"
            )

            def on_unresolved(name: str) -> None:
                self.missing_log.record(name, group_name)
                self.event_log.write(
                    EventCode.DEVICE_UNRESOLVED,
                    Severity.WARNING,
                    f"{name} was not found in the directory (group {group_name})",
                )

            result = await reconcile(
                desired,
                actual,
                resolve=self.directory.resolve_device_ids,
                apply_add=partial(self.directory.add_member, group_id),
                apply_remove=partial(self.directory.remove_member, group_id),
                on_unresolved=on_unresolved,
                group_name=group_name,
            )

        self._write_events(result)
        return result

    def _write_events(self, result: ReconcileResult) -> None:
        fan_out = Counter(r.subject for r in result.results if r.target_id)
        for name, count in sorted(fan_out.items()):
            if count > 1:
                self.event_log.write(
                    EventCode.DUPLICATE_NAME,
                    Severity.WARNING,
                    f"{name} matches {count} directory objects in {result.group_name}",
                )

        for r in result.results:
            if r.is_change:
                code = (
                    EventCode.MEMBER_ADDED
                    if r.action == MutationAction.ADD_MEMBER
                    else EventCode.MEMBER_REMOVED
                )
                verb = "added to" if r.action == MutationAction.ADD_MEMBER else "removed from"
                self.event_log.write(code, Severity.INFO, f"{r.subject} {verb} {result.group_name}")
            elif r.is_failure:
                self.event_log.write(
                    EventCode.MUTATION_FAILED,
                    Severity.ERROR,
                    f"{r.action.value} {r.subject} in {result.group_name} failed "
                    f"({r.outcome.value}): {r.message}",
                )
