"""Tests for SyncGroupsUseCase.

Targets are reconciled one after another; a target that cannot be resolved
is skipped while fatal errors abort the run.
"""

import pytest

from src.devsync.api.exceptions import (
    ConnectionError,
    ServerError,
    TargetResolutionError,
    TokenFetchError,
)
from src.devsync.sync.domain.entities import (
    EventCode,
    MutationOutcome,
    Severity,
    SyncTarget,
    TargetKind,
)
from src.devsync.sync.domain.ports import (
    IDesiredSetProvider,
    IDirectoryService,
    IEventLog,
    IMissingDeviceLog,
)
from src.devsync.sync.use_cases.reconcile import ReconcileGroupUseCase
from src.devsync.sync.use_cases.sync_groups import SyncGroupsUseCase


class MockDirectory(IDirectoryService):
    def __init__(self, group_ids: dict[str, str], members: dict[str, set[str]]):
        self.group_ids = group_ids
        self.members = members
        self.added: list[tuple[str, str]] = []
        self.removed: list[tuple[str, str]] = []
        self.lookup_error: Exception | None = None

    async def lookup_group_id(self, group_name: str) -> str | None:
        if self.lookup_error:
            raise self.lookup_error
        return self.group_ids.get(group_name)

    async def list_group_members(self, group_id: str) -> set[str]:
        return set(self.members.get(group_id, set()))

    async def resolve_device_ids(self, device_name: str) -> list[str]:
        return [device_name.lower()]

    async def add_member(self, group_id: str, member_id: str) -> MutationOutcome:
        self.added.append((group_id, member_id))
        return MutationOutcome.APPLIED

    async def remove_member(self, group_id: str, member_id: str) -> MutationOutcome:
        self.removed.append((group_id, member_id))
        return MutationOutcome.APPLIED


class StaticDesiredSet(IDesiredSetProvider):
    def __init__(self, names: set[str] | None = None, error: Exception | None = None):
        self.names = names or set()
        self.error = error

    def describe(self) -> str:
        return "static"

    async def desired_names(self) -> set[str]:
        if self.error:
            raise self.error
        return set(self.names)


class MockEventLog(IEventLog):
    def __init__(self):
        self.events: list[tuple[EventCode, Severity, str]] = []

    def write(self, code: EventCode, severity: Severity, message: str) -> None:
        self.events.append((code, severity, message))

    def codes(self) -> list[EventCode]:
        return [code for code, _, _ in self.events]


class MockMissingLog(IMissingDeviceLog):
    def __init__(self):
        self.recorded: list[tuple[str, str]] = []

    def record(self, device_name: str, context: str) -> None:
        self.recorded.append((device_name, context))


def lab(group: str) -> SyncTarget:
    return SyncTarget(TargetKind.LAB_ROOM, group, "HS", "101")


@pytest.fixture
def directory():
    return MockDirectory(
        group_ids={"Lab-A": "g-a", "Lab-B": "g-b"},
        members={"g-a": set(), "g-b": {"D1", "D2"}},
    )


@pytest.fixture
def event_log():
    return MockEventLog()


@pytest.fixture
def use_case(directory, event_log):
    reconciler = ReconcileGroupUseCase(directory, event_log, MockMissingLog())
    return SyncGroupsUseCase(directory, event_log, reconciler)


class TestSyncGroupsUseCase:
    """Tests for SyncGroupsUseCase."""

    @pytest.mark.asyncio
    async def test_scenarios(self, use_case, directory):
        results = await use_case.execute([
            (lab("Lab-A"), StaticDesiredSet({"D1", "D2"})),
            (lab("Lab-B"), StaticDesiredSet({"D1"})),
        ])

        # Empty group: two adds; {D1} vs {D1, D2}: one remove
        assert sorted(directory.added) == [("g-a", "d1"), ("g-a", "d2")]
        assert directory.removed == [("g-b", "d2")]
        assert [r.group_name for r in results] == ["Lab-A", "Lab-B"]
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_missing_group_is_skipped(self, use_case, directory, event_log):
        results = await use_case.execute([
            (lab("Lab-Missing"), StaticDesiredSet({"D1"})),
            (lab("Lab-A"), StaticDesiredSet({"D9"})),
        ])

        assert results[0].skipped
        assert "Lab-Missing" in results[0].skipped_reason
        assert results[1].added == 1
        assert EventCode.TARGET_SKIPPED in event_log.codes()

    @pytest.mark.asyncio
    async def test_unresolvable_source_is_skipped(self, use_case, directory):
        results = await use_case.execute([
            (lab("Lab-A"), StaticDesiredSet(error=TargetResolutionError("No active room '101'"))),
            (lab("Lab-B"), StaticDesiredSet({"D1", "D2"})),
        ])

        assert results[0].skipped
        assert not results[0].success
        assert results[1].success
        assert directory.added == []

    @pytest.mark.asyncio
    async def test_api_error_skips_target(self, use_case, directory):
        results = await use_case.execute([
            (lab("Lab-A"), StaticDesiredSet(error=ServerError("Helpdesk down", status_code=503))),
        ])

        assert results[0].skipped

    @pytest.mark.asyncio
    async def test_authentication_error_aborts_run(self, use_case, directory):
        directory.lookup_error = TokenFetchError("Token request rejected", status_code=401)

        with pytest.raises(TokenFetchError):
            await use_case.execute([(lab("Lab-A"), StaticDesiredSet({"D1"}))])

    @pytest.mark.asyncio
    async def test_connection_error_aborts_run(self, use_case):
        provider = StaticDesiredSet(error=ConnectionError("Cannot connect", host="helpdesk"))

        with pytest.raises(ConnectionError):
            await use_case.execute([(lab("Lab-A"), provider)])

    @pytest.mark.asyncio
    async def test_run_events(self, use_case, event_log):
        await use_case.execute([(lab("Lab-B"), StaticDesiredSet({"D1", "D2"}))])

        assert event_log.codes()[0] == EventCode.RUN_STARTED
        assert event_log.codes()[-1] == EventCode.RUN_COMPLETED
        assert event_log.events[-1][1] == Severity.INFO

    @pytest.mark.asyncio
    async def test_failed_target_makes_summary_a_warning(self, use_case, event_log):
        await use_case.execute([(lab("Lab-Missing"), StaticDesiredSet({"D1"}))])

        assert event_log.events[-1][0] == EventCode.RUN_COMPLETED
        assert event_log.events[-1][1] == Severity.WARNING
