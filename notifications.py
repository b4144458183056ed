"""
Push channel for status changes.

One hub serves both orders and service requests. Every socket joins its
user's channel, admins also join the admin channel. Clients that are not
connected fall back to polling the REST endpoints.
"""

import logging
from typing import Dict, Iterable, Set

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from auth import decode_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])

ADMIN_CHANNEL = "role:admin"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


class NotificationHub:
    def __init__(self):
        self._channels: Dict[str, Set] = {}

    def subscribe(self, websocket, channels: Iterable[str]) -> None:
        for channel in channels:
            self._channels.setdefault(channel, set()).add(websocket)

    def unsubscribe(self, websocket) -> None:
        for channel in list(self._channels):
            members = self._channels[channel]
            members.discard(websocket)
            if not members:
                del self._channels[channel]

    def subscribers(self, channel: str) -> Set:
        return set(self._channels.get(channel, ()))

    async def publish(self, channels: Iterable[str], event: str, data: dict) -> int:
        """Send `{event, data}` once to every socket on any of `channels`. Returns the delivery count."""
        targets = set()
        for channel in channels:
            targets |= self.subscribers(channel)
        delivered = 0
        for websocket in targets:
            try:
                await websocket.send_json({"event": event, "data": data})
                delivered += 1
            except Exception:
                logger.warning("Dropping dead socket after failed %s delivery", event)
                self.unsubscribe(websocket)
        return delivered


hub = NotificationHub()


async def notify_status_change(event: str, owner_id: str, data: dict) -> None:
    await hub.publish([user_channel(owner_id), ADMIN_CHANNEL], event, data)


@router.websocket("/ws")
async def status_updates(websocket: WebSocket, token: str = ""):
    try:
        user = decode_token(token)
    except HTTPException:
        await websocket.close(code=1008)
        return
    await websocket.accept()
    channels = [user_channel(user.id)]
    if user.is_admin:
        channels.append(ADMIN_CHANNEL)
    hub.subscribe(websocket, channels)
    logger.info("Socket connected for user %s", user.id)
    try:
        await websocket.send_json({"event": "connected", "data": {"channels": channels}})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.unsubscribe(websocket)
        logger.info("Socket closed for user %s", user.id)
