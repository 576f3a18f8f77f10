from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Query, WebSocket

from meshguard.notify.sink import BroadcastSink, PublishedEvent

logger = structlog.get_logger()

router = APIRouter()


@router.websocket("/events")
async def event_stream(
    websocket: WebSocket,
    events: str | None = Query(default=None),
) -> None:
    """
    Stream published events as JSON messages.

    ``events`` is an optional comma separated list of event names to keep,
    e.g. ``?events=anomaly.created,policy.draft``.
    """
    broadcast: BroadcastSink = websocket.app.state.runtime.broadcast
    wanted = {name.strip() for name in events.split(",") if name.strip()} if events else None

    # subscribe before accepting so nothing published after the handshake is missed
    queue = broadcast.subscribe()
    await websocket.accept()
    logger.info("event_stream_opened", events=sorted(wanted) if wanted else "all")

    async def forward() -> None:
        while True:
            message: PublishedEvent = await queue.get()
            if wanted is None or message.event in wanted:
                await websocket.send_json(message.to_dict())

    async def wait_for_disconnect() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    sender = asyncio.create_task(forward())
    receiver = asyncio.create_task(wait_for_disconnect())
    try:
        done, pending = await asyncio.wait(
            {sender, receiver}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.debug("event_stream_send_failed", error=str(task.exception()))
    finally:
        broadcast.unsubscribe(queue)
        logger.info("event_stream_closed", subscribers=broadcast.subscriber_count)
