"""Conversation view for API consumers.

Two delivery paths feed the same view: a poll loop that replaces the list with
the server's snapshot every few seconds, and pushed ``receive_message`` events
that are merged in by message id. Either path alone keeps the view correct.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

import httpx

from loadboard import config
from loadboard.helpers.time import format_received_time
from loadboard.models import Message

logger = logging.getLogger(__name__)


class ClientError(Exception):
    """A request failed.

    ``detail`` is the server's message, verbatim. A status of 0 means the
    server could not be reached at all.
    """

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


class ConversationView:
    def __init__(self, http: httpx.AsyncClient, credential: str, user_id: int,
                 names: Optional[Dict[int, str]] = None,
                 poll_interval: Optional[float] = None,
                 on_change: Optional[Callable[[List[Message]], None]] = None):
        self.http = http
        self.user_id = user_id
        self.names = dict(names or {})
        self.poll_interval = config.POLL_INTERVAL if poll_interval is None else poll_interval
        self.on_change = on_change
        self.headers = {"Authorization": credential}

        self.selected: Optional[int] = None
        self.messages: List[Message] = []
        self._poller: Optional[asyncio.Task] = None
        # Bumped on every selection change; stale fetches compare against it
        self._generation = 0

    async def select(self, other_id: Optional[int]) -> None:
        """Switch to another conversation (or none) and restart polling."""
        self._cancel_poller()
        self._generation += 1
        generation = self._generation
        self.selected = other_id
        self._replace([])
        if other_id is None:
            return
        await self.refresh()
        # Another select may have run while the first fetch was in flight
        if self._generation == generation:
            self._poller = asyncio.create_task(self._poll(other_id))

    async def close(self) -> None:
        task = self._poller
        self._cancel_poller()
        self._generation += 1
        self.selected = None
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _cancel_poller(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    async def _poll(self, other_id: int) -> None:
        while self.selected == other_id:
            await asyncio.sleep(self.poll_interval)
            await self.refresh()

    async def refresh(self) -> bool:
        """Fetch the selected conversation and replace the view with it.

        Returns False when nothing was applied: the fetch failed or the
        selection changed while the request was in flight.
        """
        other_id = self.selected
        generation = self._generation
        if other_id is None:
            return False
        try:
            response = await self.http.get(f"/api/messages/{other_id}", headers=self.headers)
            response.raise_for_status()
            snapshot = [Message.model_validate(item) for item in response.json()]
        except (httpx.HTTPError, ValueError):
            logger.debug("History fetch for conversation %s failed", other_id, exc_info=True)
            return False

        if self._generation != generation or self.selected != other_id:
            return False
        self._replace(snapshot)
        return True

    async def send(self, content: str) -> Message:
        if self.selected is None:
            raise ClientError(400, "No conversation selected")
        try:
            response = await self.http.post(
                "/api/messages/send",
                json={"receiverId": self.selected, "content": content},
                headers=self.headers,
            )
        except httpx.HTTPError as exc:
            # Unreachable backend surfaces the same way as a rejection
            raise ClientError(0, str(exc)) from exc
        if response.is_error:
            raise ClientError(response.status_code, _detail(response))
        message = Message.model_validate(response.json())
        await self.refresh()
        return message

    def receive(self, payload: dict) -> bool:
        """Merge a pushed message into the view if it belongs here."""
        message = Message.model_validate(payload)
        if self.selected is None:
            return False
        if {message.sender_id, message.receiver_id} != {self.user_id, self.selected}:
            return False
        if any(m.id == message.id for m in self.messages):
            return False
        merged = sorted(self.messages + [message], key=lambda m: (m.created_at, m.id))
        self._replace(merged)
        return True

    def _replace(self, messages: List[Message]) -> None:
        self.messages = messages
        if self.on_change is not None:
            self.on_change(list(messages))

    def render(self, now: Optional[datetime] = None) -> List[str]:
        lines = []
        for message in self.messages:
            if message.sender_id == self.user_id:
                who = "You"
            else:
                who = self.names.get(message.sender_id, str(message.sender_id))
            lines.append(f"{who}: {message.content} ({format_received_time(message.created_at, now)})")
        return lines
