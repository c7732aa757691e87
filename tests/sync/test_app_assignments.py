"""Tests for ListGroupAppAssignmentsUseCase."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.devsync.api.exceptions import TargetResolutionError
from src.devsync.sync.domain.entities import AppAssignment
from src.devsync.sync.domain.ports import IDeviceManagementService, IDirectoryService
from src.devsync.sync.use_cases.app_assignments import ListGroupAppAssignmentsUseCase


@pytest.fixture
def directory():
    directory = MagicMock(spec=IDirectoryService)
    directory.lookup_group_id = AsyncMock(return_value="g1")
    return directory


@pytest.fixture
def intune():
    intune = MagicMock(spec=IDeviceManagementService)
    intune.list_app_assignments = AsyncMock(return_value=[
        AppAssignment(app_id="2", app_name="zoom", intent="required", group_id="g1"),
        AppAssignment(app_id="1", app_name="Chrome", intent="required", group_id="g1", excluded=True),
        AppAssignment(app_id="3", app_name="Acrobat", intent="available", group_id="g2"),
        AppAssignment(app_id="1", app_name="Chrome", intent="available", group_id="g1"),
    ])
    return intune


class TestListGroupAppAssignmentsUseCase:
    """Tests for ListGroupAppAssignmentsUseCase."""

    @pytest.mark.asyncio
    async def test_filters_and_sorts(self, directory, intune):
        assignments = await ListGroupAppAssignmentsUseCase(directory, intune).execute("All Students")

        assert [(a.app_name, a.excluded) for a in assignments] == [
            ("Chrome", False),
            ("Chrome", True),
            ("zoom", False),
        ]
        directory.lookup_group_id.assert_awaited_once_with("All Students")

    @pytest.mark.asyncio
    async def test_unknown_group(self, directory, intune):
        directory.lookup_group_id.return_value = None

        with pytest.raises(TargetResolutionError):
            await ListGroupAppAssignmentsUseCase(directory, intune).execute("Nope")
        intune.list_app_assignments.assert_not_called()
