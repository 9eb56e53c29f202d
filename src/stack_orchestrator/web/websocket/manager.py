"""
WebSocket connection manager for terminal streaming.

Handles connection lifecycle, per-connection outbound queues and request
dispatch. The manager is also the viewer transport of the session registry:
a viewer id is a connection id, and session events are queued onto that
connection's outbound queue so a slow client never blocks a session.
"""

import asyncio
import json
import os
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from ...terminal.transport import EVENT_DATA, EVENT_EXIT, ViewerTransport
from ...utils.logging import StackOrchestratorException
from ..logging_utils import (
    log_request_failure,
    log_websocket_connection,
    log_websocket_message,
    websocket_logger,
)

RequestHandler = Callable[[str, str, dict[str, Any]], Awaitable[dict[str, Any] | None]]


class ConnectionRefusedError(Exception):
    """Raised when a WebSocket connection is refused due to server constraints."""

    pass


@dataclass
class WebSocketConfig:
    """Configuration for WebSocket connections."""

    # Connection management
    max_connections: int = 1000
    max_message_size: int = 64 * 1024  # 64KB
    max_queue_size: int = 1000  # Outbound messages kept per connection

    # Heartbeat settings
    heartbeat_interval: int = 30  # seconds
    heartbeat_timeout: int = 120  # seconds

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.heartbeat_timeout < (2 * self.heartbeat_interval):
            raise ValueError(
                f"Heartbeat timeout ({self.heartbeat_timeout}s) must be at least "
                f"twice the interval ({self.heartbeat_interval}s)"
            )

    @classmethod
    def from_environment(cls) -> "WebSocketConfig":
        """Create configuration from environment variables."""
        return cls(
            max_connections=int(os.getenv("STACK_ORCHESTRATOR_WS_MAX_CONNECTIONS", "1000")),
            max_message_size=int(
                os.getenv("STACK_ORCHESTRATOR_WS_MAX_MESSAGE_SIZE", str(64 * 1024))
            ),
            max_queue_size=int(os.getenv("STACK_ORCHESTRATOR_WS_MAX_QUEUE_SIZE", "1000")),
            heartbeat_interval=int(
                os.getenv("STACK_ORCHESTRATOR_WS_HEARTBEAT_INTERVAL", "30")
            ),
            heartbeat_timeout=int(
                os.getenv("STACK_ORCHESTRATOR_WS_HEARTBEAT_TIMEOUT", "120")
            ),
        )


class WebSocketMessage(BaseModel):
    """WebSocket message structure."""

    type: str
    data: dict[str, Any]
    timestamp: datetime
    message_id: str = ""
    request_id: str | None = None

    def __init__(self, **data: Any) -> None:
        if "message_id" not in data:
            data["message_id"] = str(uuid.uuid4())
        if "timestamp" not in data:
            data["timestamp"] = datetime.now()
        super().__init__(**data)


def event_payload(event: str, args: tuple[Any, ...]) -> dict[str, Any]:
    """Shape the arguments of a session event into a message body."""
    if event == EVENT_DATA:
        session_name, chunk = args
        return {"session_name": session_name, "data": chunk}
    if event == EVENT_EXIT:
        session_name, exit_code = args
        return {"session_name": session_name, "exit_code": exit_code}
    return {"args": list(args)}


class WebSocketConnection:
    """A WebSocket connection with its outbound queue and metadata."""

    def __init__(
        self,
        websocket: WebSocket,
        connection_id: str,
        client_ip: str,
        max_queue_size: int,
    ):
        self.websocket = websocket
        self.connection_id = connection_id
        self.client_ip = client_ip
        self.connected_at = datetime.now()
        self.last_heartbeat = datetime.now()
        self.outbox: deque[WebSocketMessage] = deque(maxlen=max_queue_size)
        self.is_alive = True
        self.sender_task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()

    def enqueue(self, message: WebSocketMessage) -> None:
        # The oldest message is dropped once the queue is full
        self.outbox.append(message)
        self._wakeup.set()

    async def send_loop(self) -> int:
        """Deliver queued messages in order until the connection fails.

        Returns:
            Number of messages sent
        """
        sent = 0
        while self.is_alive:
            await self._wakeup.wait()
            self._wakeup.clear()

            while self.outbox:
                message = self.outbox.popleft()
                message_data = message.model_dump_json()
                try:
                    await self.websocket.send_text(message_data)
                except (WebSocketDisconnect, RuntimeError, ConnectionError, OSError) as e:
                    self.is_alive = False
                    websocket_logger.debug(
                        "WebSocket send failed",
                        connection_id=self.connection_id,
                        error=str(e),
                    )
                    return sent

                sent += 1
                log_websocket_message(
                    connection_id=self.connection_id,
                    message_type=message.type,
                    direction="outbound",
                    message_size=len(message_data),
                )
        return sent


class ConnectionManager(ViewerTransport):
    """
    Manages WebSocket connections and delivers terminal events.

    Features:
    - Connection lifecycle management
    - Ordered, bounded outbound queue per connection
    - Heartbeat monitoring
    - Request dispatch to a pluggable handler
    """

    def __init__(self, config: WebSocketConfig | None = None) -> None:
        self.config = config or WebSocketConfig.from_environment()

        # Active connections by connection ID
        self.connections: dict[str, WebSocketConnection] = {}

        self.request_handler: RequestHandler | None = None
        self._disconnect_callbacks: list[Callable[[str], None]] = []
        self._request_tasks: set[asyncio.Task[None]] = set()

        # Heartbeat monitoring
        self.heartbeat_task: asyncio.Task[None] | None = None

        # Connection stats
        self.total_connections = 0
        self.total_messages_received = 0

    def set_request_handler(self, handler: RequestHandler) -> None:
        self.request_handler = handler

    def on_disconnect(self, callback: Callable[[str], None]) -> None:
        """Register a callback invoked with the id of every closed connection."""
        self._disconnect_callbacks.append(callback)

    async def initialize(self) -> None:
        """Initialize the connection manager."""
        self.heartbeat_task = asyncio.create_task(self._heartbeat_monitor())

    async def cleanup(self) -> None:
        """Cleanup resources on shutdown."""
        if self.heartbeat_task:
            self.heartbeat_task.cancel()
            try:
                await self.heartbeat_task
            except asyncio.CancelledError:
                pass

        for task in list(self._request_tasks):
            task.cancel()
        if self._request_tasks:
            await asyncio.gather(*self._request_tasks, return_exceptions=True)

        for connection in list(self.connections.values()):
            await self.disconnect(connection.connection_id, "server_shutdown")

    async def connect(self, websocket: WebSocket, client_ip: str) -> str:
        """
        Accept a new WebSocket connection.

        Args:
            websocket: The WebSocket connection
            client_ip: Client IP address

        Returns:
            Connection ID for the new connection

        Raises:
            ConnectionRefusedError: If server is at capacity
        """
        if len(self.connections) >= self.config.max_connections:
            await websocket.close(code=1008, reason="Server at capacity")
            raise ConnectionRefusedError(
                f"Maximum connections ({self.config.max_connections}) exceeded"
            )

        await websocket.accept()

        connection_id = str(uuid.uuid4())
        connection = WebSocketConnection(
            websocket, connection_id, client_ip, self.config.max_queue_size
        )
        connection.sender_task = asyncio.create_task(connection.send_loop())

        self.connections[connection_id] = connection
        self.total_connections += 1

        log_websocket_connection(
            client_ip=client_ip,
            action="connect",
            connection_id=connection_id,
        )
        return connection_id

    async def disconnect(
        self, connection_id: str, reason: str = "client_disconnect"
    ) -> None:
        """
        Remove a WebSocket connection.

        Args:
            connection_id: ID of the connection to remove
            reason: Reason for disconnection
        """
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return

        connection.is_alive = False
        if connection.sender_task is not None:
            connection.sender_task.cancel()
            try:
                await connection.sender_task
            except asyncio.CancelledError:
                pass

        try:
            await connection.websocket.close()
        except (RuntimeError, ConnectionError, OSError):
            # Connection might already be closed or in invalid state
            pass

        for callback in self._disconnect_callbacks:
            callback(connection_id)

        log_websocket_connection(
            client_ip=connection.client_ip,
            action="disconnect",
            connection_id=connection_id,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Viewer transport

    def is_connected(self, viewer_id: str) -> bool:
        connection = self.connections.get(viewer_id)
        return connection is not None and connection.is_alive

    def emit(self, viewer_id: str, event: str, *args: Any) -> None:
        self.send_message(
            viewer_id,
            WebSocketMessage(type=f"terminal_{event}", data=event_payload(event, args)),
        )

    def send_message(self, connection_id: str, message: WebSocketMessage) -> bool:
        """
        Queue a message for a specific connection.

        Returns:
            True if the message was queued, False if the connection is gone
        """
        connection = self.connections.get(connection_id)
        if connection is None or not connection.is_alive:
            return False
        connection.enqueue(message)
        return True

    # ------------------------------------------------------------------
    # Inbound messages

    async def handle_message(self, connection_id: str, message_data: str) -> None:
        """
        Handle incoming message from a WebSocket connection.

        Args:
            connection_id: Source connection ID
            message_data: Raw message data
        """
        connection = self.connections.get(connection_id)
        if connection is None:
            return

        if len(message_data) > self.config.max_message_size:
            self.send_message(
                connection_id,
                WebSocketMessage(
                    type="error",
                    data={
                        "error": f"Message size ({len(message_data)} bytes) exceeds limit "
                        f"({self.config.max_message_size} bytes)"
                    },
                ),
            )
            return

        connection.last_heartbeat = datetime.now()
        self.total_messages_received += 1

        try:
            data = json.loads(message_data)
        except json.JSONDecodeError:
            self.send_message(
                connection_id,
                WebSocketMessage(type="error", data={"error": "Invalid JSON format"}),
            )
            return

        if not isinstance(data, dict):
            self.send_message(
                connection_id,
                WebSocketMessage(type="error", data={"error": "Message must be an object"}),
            )
            return

        message_type = str(data.get("type", "unknown"))
        log_websocket_message(
            connection_id=connection_id,
            message_type=message_type,
            direction="inbound",
            message_size=len(message_data),
        )

        if message_type == "heartbeat":
            self.send_message(
                connection_id,
                WebSocketMessage(
                    type="heartbeat_ack",
                    data={"timestamp": datetime.now().isoformat()},
                ),
            )
        elif message_type == "ping":
            self.send_message(
                connection_id, WebSocketMessage(type="pong", data=data.get("data", {}))
            )
        else:
            # Requests may wait on long-running operations
            task = asyncio.create_task(
                self._dispatch(
                    connection_id,
                    message_type,
                    data.get("data") or {},
                    data.get("request_id"),
                )
            )
            self._request_tasks.add(task)
            task.add_done_callback(self._request_tasks.discard)

    async def _dispatch(
        self,
        connection_id: str,
        message_type: str,
        data: dict[str, Any],
        request_id: str | None,
    ) -> None:
        result: dict[str, Any] | None
        try:
            if self.request_handler is None:
                result = None
            else:
                result = await self.request_handler(connection_id, message_type, data)
        except StackOrchestratorException as e:
            log_request_failure(connection_id, message_type, e)
            result = {"ok": False, "msg": e.message, **e.context}
        except ModelValidationError as e:
            log_request_failure(connection_id, message_type, e)
            result = {"ok": False, "msg": f"Invalid request: {e.error_count()} error(s)"}
        except Exception as e:
            log_request_failure(connection_id, message_type, e)
            result = {"ok": False, "msg": str(e)}

        if result is None:
            self.send_message(
                connection_id,
                WebSocketMessage(
                    type="error",
                    data={"error": f"Unknown message type: {message_type}"},
                    request_id=request_id,
                ),
            )
            return

        self.send_message(
            connection_id,
            WebSocketMessage(
                type=f"{message_type}_result", data=result, request_id=request_id
            ),
        )

    async def get_connection_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        return {
            "active_connections": len(self.connections),
            "total_connections": self.total_connections,
            "queued_messages": sum(len(c.outbox) for c in self.connections.values()),
            "messages_received": self.total_messages_received,
            "pending_requests": len(self._request_tasks),
        }

    async def _heartbeat_monitor(self) -> None:
        """Disconnect timed-out or failed connections."""
        while True:
            try:
                await asyncio.sleep(self.config.heartbeat_interval)

                timeout_threshold = datetime.now() - timedelta(
                    seconds=self.config.heartbeat_timeout
                )

                for connection_id, connection in list(self.connections.items()):
                    if not connection.is_alive:
                        await self.disconnect(connection_id, "send_failed")
                    elif connection.last_heartbeat < timeout_threshold:
                        await self.disconnect(connection_id, "heartbeat_timeout")

            except asyncio.CancelledError:
                break
            except (RuntimeError, ConnectionError, OSError):
                # Continue monitoring despite errors
                continue
