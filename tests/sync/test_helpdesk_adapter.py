"""Tests for HelpdeskInventoryAPI."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.devsync.api.exceptions import NotFoundError
from src.devsync.sync.adapters.helpdesk_adapter import HelpdeskInventoryAPI


@pytest.fixture
def client():
    client = MagicMock()
    client.get = AsyncMock()
    client.fetch_all = AsyncMock(return_value=[])
    return client


class TestHelpdeskInventoryAPI:
    """Tests for HelpdeskInventoryAPI."""

    @pytest.mark.asyncio
    async def test_rooms_fetched_once(self, client):
        client.fetch_all.return_value = [{"id": 1, "name": "101", "buildingName": "High School"}]
        api = HelpdeskInventoryAPI(client)

        first = await api.list_rooms()
        second = await api.list_rooms()

        assert first is second
        assert client.fetch_all.await_count == 1

    @pytest.mark.asyncio
    async def test_buildings(self, client):
        client.fetch_all.return_value = [{"id": 3, "name": "High School", "code": "HS"}]

        buildings = await HelpdeskInventoryAPI(client).list_buildings()

        assert client.fetch_all.call_args.args[0] == "/v1/buildings"
        assert [(b.id, b.name, b.code) for b in buildings] == [("3", "High School", "HS")]

    @pytest.mark.asyncio
    async def test_devices_by_room(self, client):
        client.fetch_all.return_value = [{"id": 9, "assetTag": "HS-101-01"}]

        assets = await HelpdeskInventoryAPI(client).list_devices_by_room("42")

        assert [a.asset_tag for a in assets] == ["HS-101-01"]
        assert client.fetch_all.call_args.args[0] == "/v1/rooms/42/assets"

    @pytest.mark.asyncio
    async def test_devices_by_status_params(self, client):
        await HelpdeskInventoryAPI(client).list_devices_by_status(["In Storage", "Ready"], ["Laptop"])

        assert client.fetch_all.call_args.kwargs["params"] == {"status": "In Storage,Ready", "type": "Laptop"}

    @pytest.mark.asyncio
    async def test_devices_by_status_without_types(self, client):
        await HelpdeskInventoryAPI(client).list_devices_by_status(["Retired"])

        assert client.fetch_all.call_args.kwargs["params"] == {"status": "Retired"}

    @pytest.mark.asyncio
    async def test_get_device_quotes_serial(self, client):
        client.get.return_value = {"id": 9, "assetTag": "HS-101-01", "serialNumber": "AB/12"}

        asset = await HelpdeskInventoryAPI(client).get_device("AB/12")

        assert asset.asset_tag == "HS-101-01"
        client.get.assert_awaited_once_with("/v1/assets/serial/AB%2F12")

    @pytest.mark.asyncio
    async def test_get_unknown_device_is_none(self, client):
        client.get.side_effect = NotFoundError(resource_type="asset", resource_id="X")

        assert await HelpdeskInventoryAPI(client).get_device("X") is None
