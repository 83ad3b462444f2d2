"""WebSocket routes for notification push."""
from fastapi import APIRouter, Query, WebSocket
from ..config import get_settings
from ..streaming.registry import registry
from ..streaming.websocket import handle_push_connection

router = APIRouter(tags=["websocket"])
settings = get_settings()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str | None = Query(default=None)):
    """
    WebSocket endpoint for real-time notifications.

    The credential is passed as the `token` query parameter. A missing
    token closes the socket with code 4401, an invalid one with 4403.

    Example client (JavaScript):
    ```javascript
    const ws = new WebSocket(`ws://localhost:3003/ws?token=${jwt}`);
    ws.onmessage = (event) => {
        const data = JSON.parse(event.data);
        if (data.type === 'ping') {
            ws.send('pong');
            return;
        }
        console.log('Notification:', data.type, data.data);
    };
    ```
    """
    await handle_push_connection(
        websocket,
        token,
        registry=registry,
        ping_interval=settings.WS_PING_INTERVAL,
        buffer_size=settings.SUBSCRIBER_BUFFER_SIZE,
    )
