"""WebSocket push connections with credential check and keepalive."""
import asyncio
import time
import orjson
import structlog
from fastapi import WebSocket, WebSocketDisconnect
from ..auth.credentials import identity_from_claims, verify_token
from ..errors import InvalidCredentialError, MissingCredentialError
from .registry import SubscriberRegistry, registry as default_registry
from .subscribers import CLOSED, PushSubscriber

log = structlog.get_logger()

# Application close codes (4000-4999 range)
CLOSE_MISSING_CREDENTIAL = 4401
CLOSE_INVALID_CREDENTIAL = 4403
CLOSE_SUBSCRIBER_DROPPED = 1011


async def _authenticate(websocket: WebSocket, token: str | None) -> dict | None:
    """Verify the connection credential, closing the socket on failure."""
    try:
        return verify_token(token)
    except MissingCredentialError:
        log.warning("websocket.rejected", reason="missing_token")
        await websocket.close(code=CLOSE_MISSING_CREDENTIAL, reason="Missing token")
    except InvalidCredentialError as e:
        log.warning("websocket.rejected", reason="invalid_token", error=str(e))
        await websocket.close(code=CLOSE_INVALID_CREDENTIAL, reason="Invalid token")
    return None


async def _serve(websocket: WebSocket, subscriber: PushSubscriber, ping_interval: float, poll_interval: float):
    """
    Forward buffered events and read client frames in a single loop.

    Returns once the subscriber is dropped. A client disconnect surfaces as
    WebSocketDisconnect from receive_text().
    """
    last_ping = time.monotonic()

    while True:
        # Send periodic ping for keepalive
        if time.monotonic() - last_ping >= ping_interval:
            await websocket.send_text(orjson.dumps({"type": "ping", "ts": time.time()}).decode())
            last_ping = time.monotonic()

        until_ping = max(0.0, ping_interval - (time.monotonic() - last_ping))
        message = await subscriber.next_message(timeout=min(poll_interval, until_ping))
        if message is CLOSED:
            log.info("websocket.subscriber_dropped", subscriber_id=subscriber.id)
            await websocket.close(code=CLOSE_SUBSCRIBER_DROPPED, reason="Subscriber dropped")
            return
        if message is not None:
            await websocket.send_text(message)
            continue

        try:
            # Timeout to allow buffer and ping checks
            client_message = await asyncio.wait_for(
                websocket.receive_text(),
                timeout=poll_interval
            )
        except asyncio.TimeoutError:
            continue

        if client_message == "pong":
            log.debug("websocket.pong_received", subscriber_id=subscriber.id)
        elif client_message == "ping":
            await websocket.send_text("pong")


async def handle_push_connection(
    websocket: WebSocket,
    token: str | None,
    registry: SubscriberRegistry | None = None,
    ping_interval: float = 30.0,
    buffer_size: int = 100,
    poll_interval: float = 0.2,
):
    """
    Handle a WebSocket push connection.

    The socket is accepted first so that credential failures can be
    signalled with distinct close codes. Verified clients are registered
    until they disconnect, error, or fail a delivery.

    Args:
        websocket: WebSocket connection
        token: Credential from the connection query string
        registry: Registry to join (defaults to the global registry)
        ping_interval: Seconds between keepalive pings
        buffer_size: Maximum undelivered frames before the client is dropped
        poll_interval: Longest wait on either the buffer or the client
    """
    registry = default_registry if registry is None else registry
    await websocket.accept()

    claims = await _authenticate(websocket, token)
    if claims is None:
        return

    subscriber = PushSubscriber(identity=identity_from_claims(claims), buffer_size=buffer_size)
    registry.register(subscriber)

    try:
        await websocket.send_text(orjson.dumps({
            "type": "connected",
            "message": "Connected to notification stream",
            "ping_interval": ping_interval,
        }).decode())

        await _serve(websocket, subscriber, ping_interval, poll_interval)

    except WebSocketDisconnect:
        log.info("websocket.client_disconnected", subscriber_id=subscriber.id)
    except Exception as e:
        log.error("websocket.error", subscriber_id=subscriber.id, error=str(e), exc_info=True)
    finally:
        subscriber.close()
        registry.unregister(subscriber)
