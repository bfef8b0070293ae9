"""Server-Sent Events stream for invoice status updates."""

from typing import AsyncIterator

import anyio
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from app.core.config import get_settings
from app.core.dependencies import get_current_user_from_query
from app.events.hub import NotificationHub
from app.events.models import KEEPALIVE_FRAME, connected_event, format_sse

router = APIRouter(tags=["Events"])
settings = get_settings()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_hub(request: Request) -> NotificationHub:
    return request.app.state.notification_hub


async def _stream(hub: NotificationHub, user_id: str) -> AsyncIterator[str]:
    # Registered only once the response starts pulling frames, so a client
    # gone before the first frame leaves nothing behind.
    handle = await hub.subscribe(user_id)
    handle.close_replaced()
    try:
        yield format_sse(connected_event())
        async for event in handle.events(keepalive_seconds=settings.SSE_KEEPALIVE_SECONDS):
            yield KEEPALIVE_FRAME if event is None else format_sse(event)
    finally:
        handle.close()
        # Runs while the response is being cancelled on disconnect.
        with anyio.CancelScope(shield=True):
            await hub.unsubscribe(handle.user_id, handle)


@router.get("/events")
@router.get("/sse", include_in_schema=False)
async def subscribe_events(
    current_user: dict = Depends(get_current_user_from_query),
    hub: NotificationHub = Depends(get_hub),
):
    """
    Open a push channel for the caller.

    Pass the access token as `?authorization=<token>`. The first frame is a
    `connected` event, followed by `job_ready` / `job_failed` events. A newer
    connection for the same user closes this one. Events are not replayed;
    list invoices after reconnecting to catch up.
    """
    return StreamingResponse(
        _stream(hub, current_user["id"]),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
