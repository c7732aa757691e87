"""List the Intune apps assigned to a group."""

import logging

from ...api.exceptions import TargetResolutionError
from ..domain.entities import AppAssignment
from ..domain.ports import IDeviceManagementService, IDirectoryService

logger = logging.getLogger(__name__)


class ListGroupAppAssignmentsUseCase:
    """Finds every app whose assignments include (or exclude) a group."""

    def __init__(self, directory: IDirectoryService, intune: IDeviceManagementService):
        self.directory = directory
        self.intune = intune

    async def execute(self, group_name: str) -> list[AppAssignment]:
        """List assignments targeting the named group.

        Args:
            group_name: Display name of the group

        Returns:
            Assignments sorted by app name

        Raises:
            TargetResolutionError: If no group has that name
        """
        group_id = await self.directory.lookup_group_id(group_name)
        if group_id is None:
            raise TargetResolutionError(
                f"Group '{group_name}' not found in directory",
                target=group_name,
            )

        assignments = [a for a in await self.intune.list_app_assignments() if a.group_id == group_id]
        logger.info(f"{len(assignments)} app assignments target {group_name}")
        return sorted(assignments, key=lambda a: (a.app_name.lower(), a.excluded))
