"""
WebSocket router for real-time change events.

Clients authenticate with ?token=<access token>, then receive one JSON
message per change to the subscribed table. A "ping" text frame is
answered with "pong".
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from sentinel.realtime.feed import ChangeFeed, Subscription
from sentinel.security.auth import AuthenticationError, verify_access_token
from sentinel.team.service import PROFILES_TABLE

logger = logging.getLogger(__name__)

router = APIRouter()


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json(event.to_dict())


async def _receive(websocket: WebSocket) -> None:
    while True:
        data = await websocket.receive_text()
        if data == "ping":
            await websocket.send_text("pong")


@router.websocket("/profiles")
async def profile_changes(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Push profiles INSERT/UPDATE events for the team roster."""
    if not token:
        await websocket.close(code=4001, reason="Authentication required")
        return
    try:
        payload = verify_access_token(token)
    except AuthenticationError:
        await websocket.close(code=4001, reason="Invalid token")
        return

    feed: ChangeFeed = websocket.app.state.feed
    await websocket.accept()
    logger.info(f"User {payload.sub} subscribed to {PROFILES_TABLE} changes")

    async with feed.subscribe(PROFILES_TABLE) as subscription:
        tasks = [
            asyncio.create_task(_forward(websocket, subscription)),
            asyncio.create_task(_receive(websocket)),
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, WebSocketDisconnect):
                    logger.error(f"Realtime connection for {payload.sub} failed: {exc}")
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    logger.info(f"User {payload.sub} unsubscribed from {PROFILES_TABLE} changes")
