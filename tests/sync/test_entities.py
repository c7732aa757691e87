"""Tests for domain entities."""

from datetime import datetime, timedelta, timezone

from src.devsync.sync.domain.entities import (
    BatchResult,
    ManagedDevice,
    MutationAction,
    MutationOutcome,
    MutationResult,
    ReconcileResult,
    SetDiff,
    SyncTarget,
    TargetKind,
)


def result(action: MutationAction, outcome: MutationOutcome, subject: str = "D1") -> MutationResult:
    return MutationResult(action=action, subject=subject, outcome=outcome)


class TestSyncTarget:
    """Tests for SyncTarget labels."""

    def test_lab_room_label(self):
        target = SyncTarget(TargetKind.LAB_ROOM, "Lab-HS-101", "HS", "101")
        assert target.label == "lab_room:HS-101 -> Lab-HS-101"

    def test_building_label(self):
        target = SyncTarget(TargetKind.BUILDING, "Devices-ES1", "ES1")
        assert target.label == "building:ES1 -> Devices-ES1"

    def test_unassigned_label(self):
        target = SyncTarget(TargetKind.UNASSIGNED, "Devices-Unassigned")
        assert target.label == "unassigned -> Devices-Unassigned"


class TestManagedDevice:
    """Tests for ManagedDevice properties."""

    def test_flags(self):
        device = ManagedDevice(
            id="m1",
            operating_system="Windows",
            registration_state="registered",
            user_principal_name="student@example.org",
        )
        assert device.is_windows
        assert device.is_registered
        assert device.has_primary_user

    def test_defaults(self):
        device = ManagedDevice(id="m1")
        assert not device.is_windows
        assert not device.is_registered
        assert not device.has_primary_user


class TestMutationResult:
    """Tests for MutationResult classification."""

    def test_failures(self):
        assert result(MutationAction.ADD_MEMBER, MutationOutcome.TRANSIENT_FAILURE).is_failure
        assert result(MutationAction.ADD_MEMBER, MutationOutcome.TERMINAL_FAILURE).is_failure
        assert not result(MutationAction.ADD_MEMBER, MutationOutcome.UNRESOLVED).is_failure
        assert not result(MutationAction.ADD_MEMBER, MutationOutcome.DEFERRED).is_failure

    def test_only_applied_is_change(self):
        assert result(MutationAction.ADD_MEMBER, MutationOutcome.APPLIED).is_change
        assert not result(MutationAction.ADD_MEMBER, MutationOutcome.ALREADY_IN_STATE).is_change

    def test_to_dict(self):
        r = MutationResult(
            action=MutationAction.DELETE_COMPUTER,
            subject="MININT-1",
            outcome=MutationOutcome.APPLIED,
            target_id="CN=MININT-1,OU=Computers",
        )
        assert r.to_dict() == {
            "action": "delete_computer",
            "subject": "MININT-1",
            "target_id": "CN=MININT-1,OU=Computers",
            "outcome": "applied",
            "message": None,
        }


class TestReconcileResult:
    """Tests for ReconcileResult aggregation."""

    def test_counts(self):
        r = ReconcileResult(
            group_name="Lab",
            diff=SetDiff(to_add={"A", "B", "C"}, to_remove={"D"}),
            results=[
                result(MutationAction.ADD_MEMBER, MutationOutcome.APPLIED, "A"),
                result(MutationAction.ADD_MEMBER, MutationOutcome.UNRESOLVED, "B"),
                result(MutationAction.ADD_MEMBER, MutationOutcome.TERMINAL_FAILURE, "C"),
                result(MutationAction.REMOVE_MEMBER, MutationOutcome.APPLIED, "D"),
            ],
        )

        assert r.added == 1
        assert r.removed == 1
        assert r.unresolved == ["B"]
        assert [f.subject for f in r.failures] == ["C"]
        assert not r.success

        data = r.to_dict()
        assert data["to_add"] == 3
        assert data["unresolved"] == 1
        assert data["failed"] == 1
        assert data["success"] is False

    def test_skipped(self):
        r = ReconcileResult(group_name="Lab", skipped_reason="Group not found")
        assert r.skipped
        assert not r.success

    def test_duration(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        r = ReconcileResult(group_name="Lab", started_at=start, completed_at=start + timedelta(seconds=3))
        assert r.duration_seconds == 3.0
        assert ReconcileResult(group_name="Lab").duration_seconds is None


class TestBatchResult:
    """Tests for BatchResult aggregation."""

    def test_counts(self):
        batch = BatchResult(
            operation="reconcile-computers",
            examined=4,
            results=[
                result(MutationAction.DELETE_COMPUTER, MutationOutcome.APPLIED),
                result(MutationAction.RENAME_DEVICE, MutationOutcome.DEFERRED),
                result(MutationAction.DELETE_COMPUTER, MutationOutcome.ALREADY_IN_STATE),
            ],
        )
        assert batch.applied == 1
        assert batch.deferred == 1
        assert batch.success
        assert batch.to_dict()["examined"] == 4

    def test_failure_marks_unsuccessful(self):
        batch = BatchResult(
            operation="remove-duplicates",
            results=[result(MutationAction.DELETE_MANAGED_DEVICE, MutationOutcome.TRANSIENT_FAILURE)],
        )
        assert not batch.success
