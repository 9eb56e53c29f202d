"""Unit tests for compose queries."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from stack_orchestrator.core.compose import ComposeCli
from stack_orchestrator.core.enums import StackStatus
from stack_orchestrator.utils.logging import SpawnError
from stack_orchestrator.utils.process import CommandResult


def result(stdout="", return_code=0, stderr=""):
    return CommandResult(command=["docker"], return_code=return_code, stdout=stdout, stderr=stderr)


class TestComposeCli:
    """Test ComposeCli against a mocked command runner."""

    @pytest.mark.asyncio
    async def test_list_projects(self):
        output = json.dumps([{"Name": "web", "Status": "running(1)", "ConfigFiles": "x"}])
        with patch(
            "stack_orchestrator.core.compose.run_command",
            AsyncMock(return_value=result(output)),
        ) as run_command:
            projects = await ComposeCli("podman").list_projects()

        assert [p.name for p in projects] == ["web"]
        run_command.assert_awaited_once_with(
            "podman", ["compose", "ls", "--all", "--format", "json"], None
        )

    @pytest.mark.asyncio
    async def test_list_projects_failure_is_empty(self):
        with patch(
            "stack_orchestrator.core.compose.run_command",
            AsyncMock(return_value=result(return_code=1, stderr="daemon down")),
        ):
            assert await ComposeCli().list_projects() == []

    @pytest.mark.asyncio
    async def test_list_projects_missing_binary_is_empty(self):
        with patch(
            "stack_orchestrator.core.compose.run_command",
            AsyncMock(side_effect=SpawnError("not found", 2)),
        ):
            assert await ComposeCli().list_projects() == []

    @pytest.mark.asyncio
    async def test_list_projects_bad_json_is_empty(self):
        with patch(
            "stack_orchestrator.core.compose.run_command",
            AsyncMock(return_value=result("not json")),
        ):
            assert await ComposeCli().list_projects() == []

    @pytest.mark.asyncio
    async def test_project_containers(self):
        output = json.dumps({"Names": "web-nginx-1", "Status": "Exited (0) 1 minute ago"})
        with patch(
            "stack_orchestrator.core.compose.run_command",
            AsyncMock(return_value=result(output + "\n")),
        ) as run_command:
            containers = await ComposeCli().project_containers("web")

        assert containers[0].exit_code == 0
        args = run_command.await_args.args[1]
        assert "label=com.docker.compose.project=web" in args

    @pytest.mark.asyncio
    async def test_project_containers_unavailable(self):
        with patch(
            "stack_orchestrator.core.compose.run_command",
            AsyncMock(return_value=result("")),
        ):
            assert await ComposeCli().project_containers("web") is None

    @pytest.mark.asyncio
    async def test_ps_runs_in_stack_directory(self):
        output = json.dumps({"Name": "web-nginx-1", "Service": "nginx", "State": "running"})
        with patch(
            "stack_orchestrator.core.compose.run_command",
            AsyncMock(return_value=result(output)),
        ) as run_command:
            containers = await ComposeCli().ps(["compose", "ps", "--format", "json"], Path("/s/web"))

        assert containers[0].service == "nginx"
        run_command.assert_awaited_once_with(
            "docker", ["compose", "ps", "--format", "json"], Path("/s/web")
        )

    @pytest.mark.asyncio
    async def test_get_status_list(self):
        compose = ComposeCli()
        projects = json.dumps(
            [{"Name": "web", "Status": "running(1)"}, {"Name": "db", "Status": "created(1)"}]
        )
        with patch(
            "stack_orchestrator.core.compose.run_command",
            AsyncMock(return_value=result(projects)),
        ):
            status_list = await compose.get_status_list()

        assert status_list == {"web": StackStatus.RUNNING, "db": StackStatus.CREATED_STACK}
