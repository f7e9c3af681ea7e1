"""
Business connections and the messages sent through them.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from tgsim.clock import Clock

logger = logging.getLogger("tgsim.business_state")


@dataclass
class StoredBusinessConnection:
    id: str
    user: dict[str, Any]
    user_chat_id: int
    date: int
    can_reply: bool = True
    is_enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        connection: dict[str, Any] = {
            "id": self.id,
            "user": self.user,
            "user_chat_id": self.user_chat_id,
            "date": self.date,
            "can_reply": self.can_reply,
            "is_enabled": self.is_enabled,
        }
        if self.can_reply:
            connection["rights"] = {"can_reply": True}
        return connection


@dataclass
class StoredBusinessMessage:
    business_connection_id: str
    message_id: int
    chat_id: int
    date: int


@dataclass
class BusinessState:
    """Connections by id plus a log of business messages per connection."""

    clock: Clock
    connections: dict[str, StoredBusinessConnection] = field(default_factory=dict)
    messages: list[StoredBusinessMessage] = field(default_factory=list)
    _connection_counter: int = 1

    def create_connection(
        self,
        user: dict[str, Any],
        user_chat_id: int,
        can_reply: bool = True,
        is_enabled: bool = True,
    ) -> StoredBusinessConnection:
        connection = StoredBusinessConnection(
            id=f"business_connection_{self._connection_counter}",
            user=user,
            user_chat_id=user_chat_id,
            date=self.clock.now(),
            can_reply=can_reply,
            is_enabled=is_enabled,
        )
        self._connection_counter += 1
        self.connections[connection.id] = connection
        logger.debug("Created %s for user %d", connection.id, user["id"])
        return connection

    def get_connection(self, connection_id: str) -> StoredBusinessConnection | None:
        return self.connections.get(connection_id)

    def get_connections_for_user(self, user_id: int) -> list[StoredBusinessConnection]:
        return [c for c in self.connections.values() if c.user["id"] == user_id]

    def update_connection(
        self,
        connection_id: str,
        can_reply: bool | None = None,
        is_enabled: bool | None = None,
    ) -> bool:
        connection = self.connections.get(connection_id)
        if connection is None:
            return False
        if can_reply is not None:
            connection.can_reply = can_reply
        if is_enabled is not None:
            connection.is_enabled = is_enabled
        return True

    def delete_connection(self, connection_id: str) -> bool:
        return self.connections.pop(connection_id, None) is not None

    def track_message(
        self,
        connection_id: str,
        message_id: int,
        chat_id: int,
    ) -> StoredBusinessMessage | None:
        """Record a message sent through a known connection."""
        if connection_id not in self.connections:
            return None
        message = StoredBusinessMessage(
            business_connection_id=connection_id,
            message_id=message_id,
            chat_id=chat_id,
            date=self.clock.now(),
        )
        self.messages.append(message)
        return message

    def get_messages(self, connection_id: str) -> list[StoredBusinessMessage]:
        return [m for m in self.messages if m.business_connection_id == connection_id]

    def clear(self) -> None:
        self.connections.clear()
        self.messages.clear()
        self._connection_counter = 1
