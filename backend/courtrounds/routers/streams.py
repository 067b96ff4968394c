import asyncio
import json
import logging
from contextlib import suppress

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import redis.asyncio as redis

from ..config import REDIS_URL
from ..services.events import TournamentEvent

logger = logging.getLogger(__name__)

router = APIRouter()

redis_client = redis.from_url(REDIS_URL, decode_responses=True)


def channel_name(tournament_id: str) -> str:
    return f"tournament:{tournament_id}"


async def broadcast(tournament_id: str, message: dict) -> None:
    """Publish a message for a tournament to all subscribers."""
    try:
        await redis_client.publish(channel_name(tournament_id), json.dumps(message))
    except redis.ConnectionError:
        logger.warning("Redis unavailable; dropped event for tournament %s", tournament_id)


async def forward_event(event: TournamentEvent) -> None:
    """Event channel subscriber relaying events to websocket listeners."""
    await broadcast(event.tournament_id, event.to_message())


@router.websocket("/tournaments/{tournament_id}/stream")
async def tournament_stream(ws: WebSocket, tournament_id: str) -> None:
    """Stream tournament events via a Redis pub/sub channel."""
    channel = channel_name(tournament_id)
    try:
        async with redis_client.pubsub() as pubsub:
            await pubsub.subscribe(channel)
            await ws.accept()

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
