import asyncio
import json
import logging
import os
from contextlib import suppress

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import redis.asyncio as redis


logger = logging.getLogger(__name__)
router = APIRouter()


REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


def channel_for(mid: str) -> str:
    return f"match:{mid}"


async def broadcast(mid: str, message: dict) -> None:
    """Publish a live update for a match to all subscribers.

    The write being announced is already committed, so a Redis outage only
    costs viewers an update and is logged instead of failing the request.
    """
    try:
        await redis_client.publish(channel_for(mid), json.dumps(message, default=str))
    except redis.RedisError as exc:
        logger.warning("Could not broadcast update for match %s: %s", mid, exc)


@router.websocket("/matches/{mid}/stream")
async def match_stream(ws: WebSocket, mid: str) -> None:
    """Stream point, undo and status updates of a match via Redis pub/sub."""
    await ws.accept()
    channel = channel_for(mid)
    try:
        async with redis_client.pubsub() as pubsub:
            await pubsub.subscribe(channel)

            async def sender() -> None:
                try:
                    async for msg in pubsub.listen():
                        if msg.get("type") == "message":
                            await ws.send_json(json.loads(msg["data"]))
                except redis.ConnectionError:
                    await ws.close()

            send_task = asyncio.create_task(sender())
            try:
                while True:
                    await ws.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                send_task.cancel()
                with suppress(asyncio.CancelledError):
                    await send_task
                await pubsub.unsubscribe(channel)
    except redis.ConnectionError:
        await ws.close()
