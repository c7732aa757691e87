"""Building and room resolution.

Lab-room targets are configured as a short building code plus a room number
("HS", "101"). The helpdesk system lists rooms by full building name and
free-text room name ("101 Science Lab"), so a target has to be translated
before its devices can be looked up.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Optional

from .entities import Room

logger = logging.getLogger(__name__)


class BuildingDirectory:
    """Maps short building codes to canonical helpdesk building names.

    The mapping comes from the run configuration, so adding a building
    is a config change.

    Example:
        >>> buildings = BuildingDirectory({"HS": "High School"})
        >>> buildings.canonical_name("HS")
        'High School'
    """

    def __init__(self, mapping: Mapping[str, str]):
        self._mapping = dict(mapping)

    def canonical_name(self, code: str) -> Optional[str]:
        """Return the building name for a code, or None if the code is unknown."""
        return self._mapping.get(code)

    def __contains__(self, code: object) -> bool:
        return code in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    @property
    def codes(self) -> list[str]:
        return sorted(self._mapping)


def room_name_matches(room_name: str, room_number: str) -> bool:
    """Exclusive-or of "prefix followed by a space" and "exact" matches.

    "101" matches "101" and "101 Science Lab", but not "1010".
    """
    prefixed = room_name.startswith(room_number + " ")
    exact = room_name == room_number
    return prefixed != exact


def resolve_room(
    building_code: str,
    room_number: str,
    rooms: Iterable[Room],
    buildings: BuildingDirectory,
) -> Optional[Room]:
    """Find the helpdesk room for a building code and room number.

    Only active rooms in the canonical building are considered. When more
    than one room name matches, the candidates are narrowed to exact name
    matches; if none is exact the room is ambiguous and None is returned.
    Duplicate exact names resolve to the first in listing order.

    Args:
        building_code: Short building code from the configuration
        room_number: Room number as written on the door
        rooms: All helpdesk rooms
        buildings: Code to building-name mapping

    Returns:
        The matching Room, or None if the building code is unknown or no
        room matches
    """
    building_name = buildings.canonical_name(building_code)
    if building_name is None:
        logger.debug(f"Unknown building code: {building_code}")
        return None

    candidates = [
        room
        for room in rooms
        if room.is_active
        and room.building_name == building_name
        and room_name_matches(room.name, room_number)
    ]

    if len(candidates) > 1:
        candidates = [room for room in candidates if room.name == room_number]
        if not candidates:
            logger.warning(f"{building_code}-{room_number} is ambiguous: several rooms match, none exactly")

    if not candidates:
        return None

    if len(candidates) > 1:
        logger.warning(
            f"{len(candidates)} rooms match {building_code}-{room_number}; "
            f"using '{candidates[0].name}' ({candidates[0].id})"
        )
    return candidates[0]
