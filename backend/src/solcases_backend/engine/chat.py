from __future__ import annotations

import asyncio
import logging
import random
import re
from collections import deque
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any
from uuid import uuid4

from solcases_backend.engine.internal import ChatConnection, utc_now
from solcases_backend.engine.service import CaseEngineService, EngineRejectedAction


logger = logging.getLogger(__name__)

MAX_HISTORY = 100
HISTORY_ON_JOIN = 20
MAX_MESSAGE_LENGTH = 100
MESSAGE_COOLDOWN_SECONDS = 1.0
QUEUE_SIZE = 256


def filter_message(content: str, blocked_words: Iterable[str]) -> str:
    filtered = content
    for word in blocked_words:
        pattern = re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)
        filtered = pattern.sub("***", filtered)
    return filtered


def system_message(content: str, timestamp: datetime | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"type": "system", "content": content}
    if timestamp is not None:
        message["timestamp"] = timestamp.isoformat()
    return message


class ChatRelay:
    """Connection registry and fan-out for the lobby chat.

    Only chat and presence go through here; pack results are returned to the
    requester directly.
    """

    def __init__(
        self,
        engine: CaseEngineService,
        blocked_words: Iterable[str] = (),
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._engine = engine
        self._blocked_words = tuple(blocked_words)
        self._clock = clock
        self._rng = rng or random.Random()
        self._connections: dict[str, ChatConnection] = {}
        self._history: deque[dict[str, Any]] = deque(maxlen=MAX_HISTORY)

    @property
    def online_count(self) -> int:
        return len(self._connections)

    def history(self) -> list[dict[str, Any]]:
        return list(self._history)

    async def connect(self, session_id: str) -> ChatConnection:
        state = await self._engine.find_state(session_id)
        if state is None:
            raise KeyError(f"session {session_id} not found")

        username = state.username or f"Player{self._rng.randint(1, 9999)}"
        connection = ChatConnection(
            connection_id=uuid4().hex,
            session_id=session_id,
            username=username,
            level=state.level,
            queue=asyncio.Queue(maxsize=QUEUE_SIZE),
        )
        self._connections[connection.connection_id] = connection

        if state.username:
            self._send(connection, {"type": "username_loaded", "username": username})
        self._send(connection, {"type": "chat_history", "messages": list(self._history)[-HISTORY_ON_JOIN:]})
        self._broadcast_online_count()
        return connection

    def disconnect(self, connection_id: str) -> None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return
        logger.info("Chat: %s disconnected (%d online)", connection.username, self.online_count)
        self._broadcast_online_count()

    async def handle_message(self, connection_id: str, message: dict[str, Any]) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return

        kind = message.get("type")
        if kind == "chat_message":
            self._handle_chat(connection, message.get("content"))
        elif kind == "username_update":
            await self._handle_username(connection, message.get("username"))

    def _handle_chat(self, connection: ChatConnection, content: Any) -> None:
        if not isinstance(content, str) or not content or len(content) > MAX_MESSAGE_LENGTH:
            self._send(
                connection,
                system_message(f"Message too long! Maximum {MAX_MESSAGE_LENGTH} characters allowed."),
            )
            return

        now = self._clock()
        if (
            connection.last_message_at is not None
            and (now - connection.last_message_at).total_seconds() < MESSAGE_COOLDOWN_SECONDS
        ):
            self._send(connection, system_message("Please wait 1 second between messages."))
            return

        connection.last_activity = now
        connection.last_message_at = now
        chat_message = {
            "type": "user",
            "username": connection.username,
            "content": filter_message(content, self._blocked_words),
            "level": connection.level,
            "timestamp": now.isoformat(),
        }
        self._history.append(chat_message)
        self.publish(chat_message)

    async def _handle_username(self, connection: ChatConnection, username: Any) -> None:
        if not isinstance(username, str):
            return
        try:
            saved = await self._engine.save_username(connection.session_id, username)
        except EngineRejectedAction as exc:
            self._send(connection, system_message(exc.message))
            return

        old_username = connection.username
        connection.username = saved
        connection.last_activity = self._clock()
        logger.info("Chat: %s changed name to %s", old_username, saved)
        self.publish(system_message(f"{old_username} is now known as {saved}", self._clock()))

    def publish(self, event: dict[str, Any]) -> None:
        for connection in list(self._connections.values()):
            self._send(connection, event)

    def _broadcast_online_count(self) -> None:
        self.publish({"type": "online_count", "count": self.online_count})

    def _send(self, connection: ChatConnection, event: dict[str, Any]) -> None:
        try:
            connection.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Dropping chat event for slow connection %s", connection.connection_id)
