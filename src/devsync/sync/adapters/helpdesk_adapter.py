"""Helpdesk inventory adapter.

This adapter implements IHelpdeskService and wraps HelpdeskClient to
provide the room, building and asset queries the sync targets need.
"""

import logging
from typing import TYPE_CHECKING, Optional
from urllib.parse import quote

from ...api.exceptions import NotFoundError
from ..domain.entities import Building, HelpdeskAsset, Room
from ..domain.ports import IHelpdeskService
from .field_mapper import HelpdeskFieldMapper

if TYPE_CHECKING:
    from ...api.helpdesk_client import HelpdeskClient

logger = logging.getLogger(__name__)


class HelpdeskInventoryAPI(IHelpdeskService):
    """Helpdesk REST API adapter.

    Rooms and buildings change rarely; they are fetched once per adapter
    instance, which lives for one run.
    """

    BUILDINGS_ENDPOINT = "/v1/buildings"
    ROOMS_ENDPOINT = "/v1/rooms"
    ASSETS_ENDPOINT = "/v1/assets"

    def __init__(
        self,
        client: "HelpdeskClient",
        mapper: Optional[HelpdeskFieldMapper] = None,
    ):
        self.client = client
        self.mapper = mapper or HelpdeskFieldMapper()
        self._rooms: Optional[list[Room]] = None

    async def list_buildings(self) -> list[Building]:
        raw = await self.client.fetch_all(self.BUILDINGS_ENDPOINT)
        return [self.mapper.map_building(b) for b in raw]

    async def list_rooms(self) -> list[Room]:
        if self._rooms is None:
            raw = await self.client.fetch_all(self.ROOMS_ENDPOINT)
            self._rooms = [self.mapper.map_room(r) for r in raw]
            logger.info(f"Fetched {len(self._rooms)} helpdesk rooms")
        return self._rooms

    async def list_devices_by_room(self, room_id: str) -> list[HelpdeskAsset]:
        raw = await self.client.fetch_all(f"{self.ROOMS_ENDPOINT}/{room_id}/assets")
        return [self.mapper.map_asset(a) for a in raw]

    async def list_devices_by_status(
        self,
        statuses: list[str],
        asset_types: Optional[list[str]] = None,
    ) -> list[HelpdeskAsset]:
        params = {"status": ",".join(statuses)}
        if asset_types:
            params["type"] = ",".join(asset_types)
        raw = await self.client.fetch_all(self.ASSETS_ENDPOINT, params=params)
        logger.info(f"Fetched {len(raw)} assets with status in {statuses}")
        return [self.mapper.map_asset(a) for a in raw]

    async def get_device(self, serial_number: str) -> Optional[HelpdeskAsset]:
        try:
            raw = await self.client.get(f"{self.ASSETS_ENDPOINT}/serial/{quote(serial_number, safe='')}")
        except NotFoundError:
            return None
        return self.mapper.map_asset(raw)
