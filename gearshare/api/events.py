"""
Server-sent change notifications, so that clients know when to refresh.
"""

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from .dependencies import EventBusDependency, LoggerDependency

events_app = APIRouter(tags=["Events"])


@events_app.get(
    "/events",
    summary="Subscribe to change notifications",
    description=(
        "A `text/event-stream` of changes that concern `user_id`. Each message's "
        "`event` is the change type (e.g. `BorrowRequestChanged`) and its `data` "
        "the JSON-encoded change."
    ),
    response_class=StreamingResponse,
)
async def stream_events(
    user_id: str,
    request: Request,
    bus: EventBusDependency,
    log: LoggerDependency,
):
    log = log.bind(user_id=user_id)

    async def stream():
        await log.ainfo("events.connected")
        try:
            async for event in bus.listen(user_id=user_id):
                if await request.is_disconnected():
                    break
                payload = event.model_dump_json(exclude={"audience"})
                yield f"event: {event.name}\ndata: {payload}\n\n"
        finally:
            await log.ainfo("events.disconnected")

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
