"""Unit tests for the stack orchestrator."""

import asyncio
import stat
import sys
from unittest.mock import AsyncMock, patch

import pytest

from stack_orchestrator.core.compose import ComposeCli
from stack_orchestrator.core.enums import StackStatus
from stack_orchestrator.core.orchestrator import StackOrchestrator
from stack_orchestrator.core.stack import Stack
from stack_orchestrator.core.status import ContainerEntry
from stack_orchestrator.terminal.session import Session, SessionKind
from stack_orchestrator.utils.logging import BusyError, CommandFailedError, ValidationError

PYTHON = sys.executable


@pytest.fixture
def stack(stacks_dir):
    return Stack(stacks_dir, "web")


@pytest.fixture
def orchestrator(stack, registry):
    return StackOrchestrator(stack, registry, compose=ComposeCli("docker"))


class TestLifecycleCommands:
    """Test the commands run by lifecycle operations."""

    @pytest.mark.asyncio
    async def test_deploy_success(self, orchestrator, registry, stacks_dir):
        with patch.object(registry, "exec", AsyncMock(return_value=0)) as exec_:
            assert await orchestrator.deploy(viewer_id="viewer") == 0

        exec_.assert_awaited_once_with(
            "compose--web",
            "docker",
            ["compose", "up", "-d", "--remove-orphans"],
            stacks_dir / "web",
            viewer_id="viewer",
        )

    @pytest.mark.asyncio
    async def test_deploy_failure(self, orchestrator, registry):
        with patch.object(registry, "exec", AsyncMock(return_value=1)):
            with pytest.raises(CommandFailedError) as exc_info:
                await orchestrator.deploy(viewer_id="viewer")

        error = exc_info.value
        assert error.session_name == "compose--web"
        assert error.exit_code == 1
        assert "compose--web" in error.message

    @pytest.mark.asyncio
    async def test_deploy_validates_first(self, stacks_dir, registry):
        (stacks_dir / "web" / "compose.yaml").write_text("services: [unclosed")
        orchestrator = StackOrchestrator(Stack(stacks_dir, "web"), registry)

        with patch.object(registry, "exec", AsyncMock(return_value=0)) as exec_:
            with pytest.raises(ValidationError):
                await orchestrator.deploy()

        exec_.assert_not_awaited()

    @pytest.mark.parametrize(
        "operation,args",
        [
            ("start", ["compose", "up", "-d", "--remove-orphans"]),
            ("stop", ["compose", "stop"]),
            ("restart", ["compose", "restart"]),
            ("down", ["compose", "down"]),
        ],
    )
    @pytest.mark.asyncio
    async def test_simple_operations(self, orchestrator, registry, operation, args):
        with patch.object(registry, "exec", AsyncMock(return_value=0)) as exec_:
            await getattr(orchestrator, operation)()

        assert exec_.await_args.args[2] == args

    @pytest.mark.parametrize(
        "operation,args",
        [
            ("start_service", ["compose", "up", "-d", "nginx"]),
            ("stop_service", ["compose", "stop", "nginx"]),
            ("restart_service", ["compose", "restart", "nginx"]),
        ],
    )
    @pytest.mark.asyncio
    async def test_service_operations(self, orchestrator, registry, operation, args):
        with patch.object(registry, "exec", AsyncMock(return_value=0)) as exec_:
            await getattr(orchestrator, operation)("nginx", viewer_id="viewer")

        assert exec_.await_args.args[2] == args
        assert exec_.await_args.args[0] == "compose--web"

    def test_endpoint_in_session_name(self, stack, registry):
        orchestrator = StackOrchestrator(stack, registry, endpoint="remote:5001")
        assert orchestrator.session_name == "compose-remote:5001-web"

    @pytest.mark.asyncio
    async def test_busy_stack_rejects_operation(self, orchestrator, registry):
        """Test a second operation on the same stack is refused."""
        active = registry.get_or_create(
            "compose--web",
            registry.new_session(
                "compose--web", SessionKind.PROGRESS, PYTHON, ["-c", "pass"], orchestrator.stack.path
            ),
        )

        with pytest.raises(BusyError):
            await orchestrator.stop()

        assert registry.get("compose--web") is active


class TestDelete:
    """Test delete and force delete."""

    @pytest.mark.asyncio
    async def test_delete_removes_directory(self, orchestrator, registry, stacks_dir):
        with patch.object(registry, "exec", AsyncMock(return_value=0)) as exec_:
            await orchestrator.delete()

        assert exec_.await_args.args[2] == ["compose", "down", "--remove-orphans"]
        assert not (stacks_dir / "web").exists()

    @pytest.mark.asyncio
    async def test_delete_can_keep_files(self, orchestrator, registry, stacks_dir):
        with patch.object(registry, "exec", AsyncMock(return_value=0)):
            await orchestrator.delete(delete_files=False)

        assert (stacks_dir / "web").exists()

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_files(self, orchestrator, registry, stacks_dir):
        with patch.object(registry, "exec", AsyncMock(return_value=1)):
            with pytest.raises(CommandFailedError):
                await orchestrator.delete()

        assert (stacks_dir / "web").exists()

    @pytest.mark.asyncio
    async def test_force_delete_removes_volumes(self, orchestrator, registry, stacks_dir):
        with patch.object(registry, "exec", AsyncMock(return_value=0)) as exec_:
            await orchestrator.force_delete()

        assert exec_.await_args.args[2] == ["compose", "down", "-v", "--remove-orphans"]
        assert not (stacks_dir / "web").exists()


class TestUpdate:
    """Test the pull, recreate and prune sequence."""

    @pytest.mark.asyncio
    async def test_update_running_stack(self, orchestrator, registry):
        with patch.object(registry, "exec", AsyncMock(return_value=0)) as exec_, patch.object(
            orchestrator.compose,
            "get_status_list",
            AsyncMock(return_value={"web": StackStatus.RUNNING}),
        ):
            await orchestrator.update(viewer_id="viewer")

        assert [c.args[2] for c in exec_.await_args_list] == [
            ["compose", "pull"],
            ["compose", "up", "-d", "--remove-orphans"],
            ["image", "prune", "--all", "--force"],
        ]
        assert all(c.kwargs["viewer_id"] == "viewer" for c in exec_.await_args_list)

    @pytest.mark.asyncio
    async def test_update_stopped_stack_only_pulls(self, orchestrator, registry):
        with patch.object(registry, "exec", AsyncMock(return_value=0)) as exec_, patch.object(
            orchestrator.compose,
            "get_status_list",
            AsyncMock(return_value={"web": StackStatus.EXITED}),
        ):
            await orchestrator.update()

        assert exec_.await_count == 1
        assert orchestrator.stack.status is StackStatus.EXITED

    @pytest.mark.asyncio
    async def test_update_stops_at_failed_pull(self, orchestrator, registry):
        get_status_list = AsyncMock(return_value={"web": StackStatus.RUNNING})
        with patch.object(registry, "exec", AsyncMock(return_value=18)), patch.object(
            orchestrator.compose, "get_status_list", get_status_list
        ):
            with pytest.raises(CommandFailedError) as exc_info:
                await orchestrator.update()

        assert exc_info.value.exit_code == 18
        get_status_list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_status_unknown_project(self, orchestrator):
        with patch.object(orchestrator.compose, "get_status_list", AsyncMock(return_value={})):
            assert await orchestrator.update_status() is StackStatus.UNKNOWN


class TestServiceStatus:
    @pytest.mark.asyncio
    async def test_get_service_status_list(self, orchestrator, stacks_dir):
        containers = [
            ContainerEntry(Name="web-nginx-1", Service="nginx", State="running", Health="healthy"),
            ContainerEntry(Name="web-nginx-2", Service="nginx", State="running"),
            ContainerEntry(Name="web-db-1", Service="db", State="exited"),
        ]
        with patch.object(orchestrator.compose, "ps", AsyncMock(return_value=containers)) as ps:
            status_list = await orchestrator.get_service_status_list()

        ps.assert_awaited_once_with(["compose", "ps", "--format", "json"], stacks_dir / "web")
        assert status_list == {
            "nginx": [
                {"status": "healthy", "name": "web-nginx-1"},
                {"status": "running", "name": "web-nginx-2"},
            ],
            "db": [{"status": "exited", "name": "web-db-1"}],
        }


class TestTerminals:
    """Test the terminals opened for a stack."""

    @pytest.mark.asyncio
    async def test_combined_terminal(self, orchestrator, registry):
        with patch.object(Session, "start", AsyncMock()):
            session = await orchestrator.join_combined_terminal("viewer")
            again = await orchestrator.join_combined_terminal("other")

        assert session is again
        assert session.name == "combined--web"
        assert session.kind is SessionKind.LOGS
        assert session.keep_alive
        assert (session.rows, session.cols) == (20, 58)
        assert session.args == ["compose", "logs", "-f", "--tail", "100"]
        assert session.viewers == frozenset({"viewer", "other"})

        orchestrator.leave_combined_terminal("viewer")
        assert session.viewers == frozenset({"other"})

    def test_leave_combined_terminal_without_session(self, orchestrator):
        orchestrator.leave_combined_terminal("viewer")

    @pytest.mark.asyncio
    async def test_container_terminal(self, orchestrator):
        with patch.object(Session, "start", AsyncMock()):
            session = await orchestrator.join_container_terminal("viewer", "nginx", "bash", 1)

        assert session.name == "container-exec--web-nginx-1"
        assert session.kind is SessionKind.INTERACTIVE
        assert session.args == ["compose", "exec", "nginx", "bash"]
        assert session.rows == 10

    @pytest.mark.asyncio
    async def test_attach_terminal(self, orchestrator):
        with patch.object(Session, "start_with_logs", AsyncMock()) as start_with_logs:
            session = await orchestrator.join_attach_terminal("viewer", "nginx")

        start_with_logs.assert_awaited_once()
        assert session.name == "container-attach--web-nginx"
        assert session.kind is SessionKind.ATTACH
        assert session.service_name == "nginx"
        assert session.args == ["compose", "attach", "--sig-proxy=false", "nginx"]


class TestEndToEnd:
    """Run operations against a stand-in compose executable."""

    @pytest.fixture
    def fake_docker(self, tmp_path):
        script = tmp_path / "docker"
        script.write_text(
            "#!/bin/sh\n"
            'echo "docker $*"\n'
            'if [ "$2" = "stop" ]; then exit 3; fi\n'
            "exit 0\n"
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        return str(script)

    @pytest.mark.asyncio
    async def test_output_reaches_viewer(self, stack, registry, transport, fake_docker):
        orchestrator = StackOrchestrator(stack, registry, compose=ComposeCli(fake_docker))

        exit_code = await asyncio.wait_for(orchestrator.start(viewer_id="viewer"), timeout=10)

        assert exit_code == 0
        assert "docker compose up -d --remove-orphans" in transport.data_for("viewer")
        assert transport.events_for("viewer")[-1] == ("exit", ("compose--web", 0))
        assert "compose--web" not in registry

    @pytest.mark.asyncio
    async def test_failure_exit_code(self, stack, registry, fake_docker):
        orchestrator = StackOrchestrator(stack, registry, compose=ComposeCli(fake_docker))

        with pytest.raises(CommandFailedError) as exc_info:
            await asyncio.wait_for(orchestrator.stop(), timeout=10)

        assert exc_info.value.exit_code == 3
