"""Per-user push channels over WebSocket.

Each connection listens on exactly one user's channel. Publishing a message
reaches every live connection of its sender and its receiver, once each.
Delivery is best effort: nothing is kept for users who are not connected, so
clients fall back to polling history to catch up.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from loadboard import config
from loadboard.database import MessageDB
from loadboard.models import Message

logger = logging.getLogger(__name__)

RECEIVE_MESSAGE = "receive_message"


class FanOut:
    def __init__(self, send_timeout: Optional[float] = None):
        # A socket that cannot take an event within this many seconds is dropped
        self.send_timeout = config.PUSH_TIMEOUT if send_timeout is None else send_timeout
        # user id -> {connection key -> socket}; keyed by id() since sockets compare as mappings
        self.channels: Dict[int, Dict[int, WebSocket]] = {}
        self.members: Dict[int, int] = {}

    def join(self, user_id: int, websocket: WebSocket) -> None:
        key = id(websocket)
        current = self.members.get(key)
        if current == user_id:
            return
        if current is not None:
            self._discard(websocket)
        self.channels.setdefault(user_id, {})[key] = websocket
        self.members[key] = user_id
        logger.info("Connection joined channel user_%s", user_id)

    def leave(self, websocket: WebSocket) -> Optional[int]:
        user_id = self._discard(websocket)
        if user_id is not None:
            logger.info("Connection left channel user_%s", user_id)
        return user_id

    def _discard(self, websocket: WebSocket) -> Optional[int]:
        key = id(websocket)
        user_id = self.members.pop(key, None)
        if user_id is None:
            return None
        channel = self.channels.get(user_id)
        if channel is not None:
            channel.pop(key, None)
            if not channel:
                del self.channels[user_id]
        return user_id

    def channel_of(self, websocket: WebSocket) -> Optional[int]:
        return self.members.get(id(websocket))

    def connections(self, user_id: int) -> List[WebSocket]:
        return list(self.channels.get(user_id, {}).values())

    async def publish(self, message: MessageDB) -> int:
        """Push a stored message to both participants. Returns deliveries made."""
        targets = dict(self.channels.get(message.sender_id, {}))
        targets.update(self.channels.get(message.receiver_id, {}))
        if not targets:
            return 0

        event = {
            "event": RECEIVE_MESSAGE,
            "data": jsonable_encoder(Message.model_validate(message)),
        }
        sockets = list(targets.values())
        results = await asyncio.gather(
            *(asyncio.wait_for(websocket.send_json(event), self.send_timeout) for websocket in sockets),
            return_exceptions=True,
        )

        delivered = 0
        for websocket, result in zip(sockets, results):
            if isinstance(result, BaseException):
                logger.warning("Dropping connection on channel user_%s: %r",
                               self.channel_of(websocket), result)
                self.leave(websocket)
            else:
                delivered += 1
        return delivered
