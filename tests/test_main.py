#!/usr/bin/env python3
"""Tests for the command-line entry point."""
import json
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
import main
from src.devsync import commands
from src.devsync.api.exceptions import ConfigurationError, InvalidCredentialsError
from src.devsync.config import SyncConfig
from src.devsync.sync.domain.entities import (
    AppAssignment,
    BatchResult,
    MutationAction,
    MutationOutcome,
    MutationResult,
    ReconcileResult,
)


@pytest.fixture
def wiring():
    """Patch config loading and credentials so no real services are touched."""
    with patch.object(main, "load_config", return_value=SyncConfig(buildings={"HS": "High School"})), \
         patch.object(main, "TokenManager", return_value=MagicMock()):
        yield


def parse(*argv: str):
    return main.build_parser().parse_args(list(argv))


class TestParser:
    """Test argument parsing."""

    def test_repeatable_group_filter(self):
        args = parse("sync-groups", "--group", "Lab-HS-101", "--group", "Lab-HS-214")
        assert args.command == "sync-groups"
        assert args.group == ["Lab-HS-101", "Lab-HS-214"]

    def test_global_options(self):
        args = parse("--json", "--config", "district.json", "remove-retired")
        assert args.json
        assert args.config == "district.json"

    def test_app_assignments_requires_group(self):
        with pytest.raises(SystemExit):
            parse("app-assignments")

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse()


class TestRunCommand:
    """Test dispatch and exit status."""

    @pytest.mark.asyncio
    async def test_sync_groups_success(self, wiring, capsys):
        result = ReconcileResult(
            group_name="Lab-HS-101",
            results=[MutationResult(MutationAction.ADD_MEMBER, "HS-101-01", MutationOutcome.APPLIED)],
        )
        mock_sync = AsyncMock(return_value=[result])

        with patch.object(commands, "sync_groups", new=mock_sync):
            status = await main.run_command(parse("sync-groups", "--group", "Lab-HS-101"))

        assert status == main.EXIT_OK
        assert mock_sync.await_args.args[3] == ["Lab-HS-101"]
        assert "Lab-HS-101" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_failed_device_exits_nonzero(self, wiring):
        result = BatchResult(
            operation="remove-duplicates",
            examined=2,
            results=[MutationResult(
                MutationAction.DELETE_MANAGED_DEVICE, "SN1", MutationOutcome.TRANSIENT_FAILURE, "m1",
            )],
        )

        with patch.object(commands, "remove_duplicates", new=AsyncMock(return_value=result)):
            status = await main.run_command(parse("remove-duplicates"))

        assert status == main.EXIT_FAILURE

    @pytest.mark.asyncio
    async def test_json_output(self, wiring, capsys):
        result = BatchResult(operation="remove-retired", examined=3)

        with patch.object(commands, "remove_retired", new=AsyncMock(return_value=result)):
            status = await main.run_command(parse("--json", "remove-retired"))

        out = capsys.readouterr().out
        payload = json.loads(out[out.index("{"):out.rindex("}") + 1])
        assert status == main.EXIT_OK
        assert payload["examined"] == 3

    @pytest.mark.asyncio
    async def test_app_assignments_skips_config(self, capsys):
        assignments = [AppAssignment(app_id="a1", app_name="Chrome", intent="required", group_id="g1")]

        with patch.object(main, "load_config") as mock_load, \
             patch.object(main, "TokenManager", return_value=MagicMock()), \
             patch.object(commands, "app_assignments", new=AsyncMock(return_value=assignments)):
            status = await main.run_command(parse("app-assignments", "All Students"))

        mock_load.assert_not_called()
        assert status == main.EXIT_OK
        assert "Chrome" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_configuration_error(self, capsys):
        with patch.object(main, "load_config", side_effect=ConfigurationError("Configuration file not found: devsync.json")):
            status = await main.run_command(parse("sync-groups"))

        assert status == main.EXIT_FAILURE
        assert "Configuration error" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_fatal_error(self, wiring, capsys):
        with patch.object(commands, "reconcile_computers", new=AsyncMock(side_effect=InvalidCredentialsError())):
            status = await main.run_command(parse("reconcile-computers"))

        assert status == main.EXIT_FAILURE
        assert "Fatal error" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_fatal_error_as_json(self, wiring, capsys):
        with patch.object(commands, "remove_retired", new=AsyncMock(side_effect=InvalidCredentialsError())):
            status = await main.run_command(parse("--json", "remove-retired"))

        out = capsys.readouterr().out
        payload = json.loads(out[out.index("{"):out.rindex("}") + 1])
        assert status == main.EXIT_FAILURE
        assert payload["code"] == "INVALID_CREDENTIALS"
        assert payload["recoverable"] is False
