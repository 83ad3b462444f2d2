from typing import Any, Dict
from fastapi import APIRouter, Depends, Request
from .schemas import SubscriberStatsResponse
from ..auth.credentials import identity_from_claims, require_bearer
from ..config import get_settings
from ..streaming.registry import registry
from ..streaming.sse import stream_response

router = APIRouter()
settings = get_settings()


@router.get("/notifications/stream")
async def notification_stream(request: Request, claims: Dict[str, Any] = Depends(require_bearer)):
    """
    Server-Sent-Events stream of notifications.

    Requires `Authorization: Bearer <token>`. Emits an `event: connected`
    block, then one `event: <kind>` block per broadcast, and a `: keepalive`
    comment when idle.
    """
    return stream_response(
        request,
        identity=identity_from_claims(claims),
        registry=registry,
        keepalive_seconds=settings.SSE_KEEPALIVE_SECONDS,
        buffer_size=settings.SUBSCRIBER_BUFFER_SIZE,
    )


@router.get("/v1/subscribers", response_model=SubscriberStatsResponse)
async def subscriber_stats(claims: Dict[str, Any] = Depends(require_bearer)):
    by_protocol = registry.counts_by_protocol()
    return SubscriberStatsResponse(total=sum(by_protocol.values()), by_protocol=by_protocol)
