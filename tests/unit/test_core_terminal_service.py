"""Unit tests for the terminal service."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from stack_orchestrator.config import OrchestratorConfig
from stack_orchestrator.core.terminal_service import TerminalService
from stack_orchestrator.terminal.session import Session, SessionKind, SessionState
from stack_orchestrator.utils.logging import SessionNotFoundError, ValidationError


@pytest.fixture
def service(registry, config):
    return TerminalService(registry, config)


class TestRequestStart:
    """Test starting terminals by kind."""

    @pytest.mark.asyncio
    async def test_progress_kind_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.request_start(SessionKind.PROGRESS, stack_name="web")

    @pytest.mark.asyncio
    async def test_console_disabled(self, service):
        with pytest.raises(ValidationError, match="Console is not enabled"):
            await service.request_start(SessionKind.INTERACTIVE, viewer_id="viewer")

    @pytest.mark.asyncio
    async def test_console_enabled(self, registry, stacks_dir):
        config = OrchestratorConfig(stacks_dir=str(stacks_dir), enable_console=True)
        service = TerminalService(registry, config)

        with patch.object(Session, "start", AsyncMock()):
            name = await service.request_start(SessionKind.INTERACTIVE, viewer_id="viewer")

        session = registry.get(name)
        assert name == "console-"
        assert session.kind is SessionKind.INTERACTIVE
        assert session.cwd == stacks_dir
        assert session.keep_alive
        assert session.viewers == frozenset({"viewer"})

    @pytest.mark.asyncio
    async def test_logs_terminal(self, service, registry):
        with patch.object(Session, "start", AsyncMock()):
            name = await service.request_start(
                SessionKind.LOGS, stack_name="web", viewer_id="viewer"
            )

        assert name == "combined--web"
        assert registry.get(name).viewers == frozenset({"viewer"})

    @pytest.mark.asyncio
    async def test_container_terminal_default_shell(self, service, registry):
        with patch.object(Session, "start", AsyncMock()):
            name = await service.request_start(
                SessionKind.INTERACTIVE,
                stack_name="web",
                service_name="nginx",
                viewer_id="viewer",
            )

        assert name == "container-exec--web-nginx-0"
        assert registry.get(name).args[-2:] == ["nginx", "sh"]

    @pytest.mark.asyncio
    async def test_attach_terminal(self, service):
        with patch.object(Session, "start_with_logs", AsyncMock()):
            name = await service.request_start(
                SessionKind.ATTACH, endpoint="", stack_name="web", service_name="nginx"
            )

        assert name == "container-attach--web-nginx"

    @pytest.mark.asyncio
    async def test_service_required(self, service):
        with pytest.raises(ValidationError):
            await service.request_start(SessionKind.ATTACH, stack_name="web")

    @pytest.mark.asyncio
    async def test_stack_required(self, service):
        with pytest.raises(ValidationError):
            await service.request_start(SessionKind.LOGS)

    @pytest.mark.asyncio
    async def test_invalid_stack_name(self, service):
        with pytest.raises(ValidationError):
            await service.request_start(SessionKind.LOGS, stack_name="../etc")


class TestSessionRequests:
    """Test write, resize, join, leave and buffer by name."""

    @pytest.fixture
    def interactive(self, registry):
        session = registry.get_or_create(
            "shell",
            registry.new_session("shell", SessionKind.INTERACTIVE, "sh", [], "/"),
        )
        session.buffer.append("$ ")
        return session

    def test_write_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            service.request_write("missing", "ls\n")

    def test_write_read_only_session(self, service, registry):
        registry.get_or_create(
            "job", registry.new_session("job", SessionKind.PROGRESS, "sh", [], "/")
        )
        with pytest.raises(SessionNotFoundError):
            service.request_write("job", "ls\n")

    def test_write_forwards_to_session(self, service, interactive):
        with patch.object(interactive, "write") as write:
            service.request_write("shell", "ls\n")
        write.assert_called_once_with("ls\n")

    def test_resize_unknown_session_is_ignored(self, service):
        service.request_resize("missing", 24, 80)

    def test_resize(self, service, interactive):
        service.request_resize("shell", 24, 80)
        assert (interactive.rows, interactive.cols) == (24, 80)

    def test_join_returns_buffer(self, service, interactive):
        assert service.request_join("shell", "viewer") == "$ "
        assert interactive.viewers == frozenset({"viewer"})

    def test_join_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            service.request_join("missing", "viewer")

    def test_leave(self, service, interactive):
        service.request_join("shell", "viewer")
        service.request_leave("shell", "viewer")
        service.request_leave("missing", "viewer")
        assert interactive.viewers == frozenset()

    def test_leave_all(self, service, interactive, registry):
        other = registry.get_or_create(
            "other", registry.new_session("other", SessionKind.LOGS, "sh", [], "/")
        )
        interactive.join("viewer")
        other.join("viewer")

        service.leave_all("viewer")

        assert interactive.viewers == frozenset()
        assert other.viewers == frozenset()

    def test_buffer(self, service, interactive):
        assert service.request_buffer("shell") == "$ "
        with pytest.raises(SessionNotFoundError):
            service.request_buffer("missing")


class TestInteractiveRoundTrip:
    @pytest.mark.asyncio
    async def test_console_echoes_input(self, registry, stacks_dir, transport):
        config = OrchestratorConfig(stacks_dir=str(stacks_dir), enable_console=True)
        service = TerminalService(registry, config)
        transport.connected.add("viewer")

        name = await service.request_start(SessionKind.INTERACTIVE, viewer_id="viewer")
        service.request_write(name, "echo round-trip-$((40 + 2))\n")

        for _ in range(100):
            if "round-trip-42" in transport.data_for("viewer"):
                break
            await asyncio.sleep(0.05)

        assert "round-trip-42" in transport.data_for("viewer")

        session = registry.get(name)
        session.kill()
        await asyncio.wait_for(session.wait(), timeout=10)
        assert session.state is SessionState.EXITED

    @pytest.mark.asyncio
    async def test_unwatched_console_is_evicted(self, registry, stacks_dir):
        config = OrchestratorConfig(stacks_dir=str(stacks_dir), enable_console=True)
        service = TerminalService(registry, config)

        name = await service.request_start(SessionKind.INTERACTIVE)
        session = registry.get(name)
        await asyncio.wait_for(session.wait(), timeout=10)

        assert session.state is SessionState.EXITED
        assert name not in registry
