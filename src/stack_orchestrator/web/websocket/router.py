"""
WebSocket router for terminal streaming.

One endpoint carries every terminal request and every session event of a
client. The connection id doubles as the viewer id of that client.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .manager import ConnectionManager, ConnectionRefusedError

router = APIRouter()


@router.websocket("/terminal")
async def terminal_websocket(websocket: WebSocket) -> None:
    """
    Main WebSocket endpoint for terminal clients.

    Handles the full connection lifecycle including:
    - Connection establishment
    - Message processing
    - Graceful disconnection
    """
    manager: ConnectionManager = websocket.app.state.connection_manager

    client_ip = websocket.client.host if websocket.client else "unknown"

    try:
        connection_id = await manager.connect(websocket, client_ip)
    except ConnectionRefusedError:
        return

    try:
        while True:
            message = await websocket.receive_text()
            await manager.handle_message(connection_id, message)

    except WebSocketDisconnect:
        await manager.disconnect(connection_id, "client_disconnect")
    except Exception as e:
        await manager.disconnect(connection_id, f"error: {str(e)}")
