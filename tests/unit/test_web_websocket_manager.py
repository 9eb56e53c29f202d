"""Unit tests for the WebSocket connection manager."""

import asyncio
import json

import pytest
from fastapi import WebSocketDisconnect

from stack_orchestrator.terminal.transport import EVENT_DATA, EVENT_EXIT
from stack_orchestrator.web.websocket.manager import (
    ConnectionManager,
    ConnectionRefusedError,
    WebSocketConfig,
    WebSocketMessage,
)


class MockWebSocket:
    """Mock WebSocket for testing."""

    def __init__(self, fail_sends: bool = False):
        self.messages_sent: list[dict] = []
        self.accepted = False
        self.closed = False
        self.fail_sends = fail_sends

    async def accept(self):
        self.accepted = True

    async def send_text(self, data):
        if self.fail_sends:
            raise WebSocketDisconnect()
        self.messages_sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = ""):
        self.closed = True


@pytest.fixture
def manager():
    return ConnectionManager(
        WebSocketConfig(max_connections=2, max_message_size=256, max_queue_size=3)
    )


async def drain() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestWebSocketConfig:
    def test_heartbeat_timeout_validation(self):
        with pytest.raises(ValueError):
            WebSocketConfig(heartbeat_interval=30, heartbeat_timeout=40)

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("STACK_ORCHESTRATOR_WS_MAX_CONNECTIONS", "5")
        assert WebSocketConfig.from_environment().max_connections == 5


class TestConnections:
    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, manager):
        websocket = MockWebSocket()
        closed: list[str] = []
        manager.on_disconnect(closed.append)

        connection_id = await manager.connect(websocket, "127.0.0.1")

        assert websocket.accepted
        assert manager.is_connected(connection_id)

        await manager.disconnect(connection_id)

        assert websocket.closed
        assert not manager.is_connected(connection_id)
        assert closed == [connection_id]

    @pytest.mark.asyncio
    async def test_capacity(self, manager):
        await manager.connect(MockWebSocket(), "127.0.0.1")
        await manager.connect(MockWebSocket(), "127.0.0.1")
        refused = MockWebSocket()

        with pytest.raises(ConnectionRefusedError):
            await manager.connect(refused, "127.0.0.1")

        assert refused.closed
        assert not refused.accepted
        await manager.cleanup()


class TestViewerTransport:
    @pytest.mark.asyncio
    async def test_emit_preserves_order(self, manager):
        websocket = MockWebSocket()
        connection_id = await manager.connect(websocket, "127.0.0.1")

        manager.emit(connection_id, EVENT_DATA, "compose--web", "a")
        manager.emit(connection_id, EVENT_DATA, "compose--web", "b")
        manager.emit(connection_id, EVENT_EXIT, "compose--web", 0)
        await drain()

        assert [m["type"] for m in websocket.messages_sent] == [
            "terminal_data",
            "terminal_data",
            "terminal_exit",
        ]
        assert [m["data"].get("data") for m in websocket.messages_sent[:2]] == ["a", "b"]
        assert websocket.messages_sent[2]["data"] == {
            "session_name": "compose--web",
            "exit_code": 0,
        }
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self, manager):
        websocket = MockWebSocket()
        connection_id = await manager.connect(websocket, "127.0.0.1")

        for chunk in "abcde":
            manager.emit(connection_id, EVENT_DATA, "s", chunk)
        await drain()

        assert [m["data"]["data"] for m in websocket.messages_sent] == ["c", "d", "e"]
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_send_failure_marks_connection_dead(self, manager):
        websocket = MockWebSocket(fail_sends=True)
        connection_id = await manager.connect(websocket, "127.0.0.1")

        manager.emit(connection_id, EVENT_DATA, "s", "lost")
        await drain()

        assert not manager.is_connected(connection_id)
        assert not manager.send_message(
            connection_id, WebSocketMessage(type="pong", data={})
        )
        await manager.cleanup()

    def test_emit_to_unknown_viewer(self, manager):
        manager.emit("missing", EVENT_DATA, "s", "x")
        assert not manager.is_connected("missing")


class TestInboundMessages:
    @pytest.mark.asyncio
    async def test_heartbeat(self, manager):
        websocket = MockWebSocket()
        connection_id = await manager.connect(websocket, "127.0.0.1")

        await manager.handle_message(connection_id, json.dumps({"type": "heartbeat"}))
        await drain()

        assert websocket.messages_sent[0]["type"] == "heartbeat_ack"
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_oversized_message(self, manager):
        websocket = MockWebSocket()
        connection_id = await manager.connect(websocket, "127.0.0.1")

        await manager.handle_message(connection_id, "x" * 512)
        await drain()

        assert websocket.messages_sent[0]["type"] == "error"
        assert "exceeds limit" in websocket.messages_sent[0]["data"]["error"]
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_request_dispatch(self, manager):
        websocket = MockWebSocket()
        calls = []

        async def handler(connection_id, message_type, data):
            calls.append((connection_id, message_type, data))
            return {"ok": True}

        manager.set_request_handler(handler)
        connection_id = await manager.connect(websocket, "127.0.0.1")

        await manager.handle_message(
            connection_id,
            json.dumps({"type": "terminal_leave", "data": {"session_name": "s"}, "request_id": "7"}),
        )
        await drain()

        assert calls == [(connection_id, "terminal_leave", {"session_name": "s"})]
        assert websocket.messages_sent[0]["type"] == "terminal_leave_result"
        assert websocket.messages_sent[0]["request_id"] == "7"
        assert websocket.messages_sent[0]["data"] == {"ok": True}
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_unexpected_handler_error_is_answered(self, manager):
        websocket = MockWebSocket()

        async def handler(connection_id, message_type, data):
            raise NotADirectoryError("stacks is not a directory")

        manager.set_request_handler(handler)
        connection_id = await manager.connect(websocket, "127.0.0.1")

        await manager.handle_message(
            connection_id,
            json.dumps({"type": "stack_save", "data": {}, "request_id": "8"}),
        )
        await drain()

        assert websocket.messages_sent[0]["type"] == "stack_save_result"
        assert websocket.messages_sent[0]["request_id"] == "8"
        assert websocket.messages_sent[0]["data"] == {
            "ok": False,
            "msg": "stacks is not a directory",
        }
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_connection_stats(self, manager):
        connection_id = await manager.connect(MockWebSocket(), "127.0.0.1")
        await manager.handle_message(connection_id, json.dumps({"type": "ping"}))

        stats = await manager.get_connection_stats()

        assert stats["active_connections"] == 1
        assert stats["total_connections"] == 1
        assert stats["messages_received"] == 1
        await manager.cleanup()
