"""
Simulated time and id sequencing.

One Clock instance is shared by reference between every state manager of a
server, so advancing it is immediately visible everywhere. Nothing here
reads the wall clock after construction.
"""
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger("tgsim.clock")


class Clock:
    """Mutable unix timestamp advanced explicitly by the harness."""

    def __init__(self, start: int | None = None) -> None:
        self._now = int(time.time()) if start is None else int(start)

    def now(self) -> int:
        """Current simulated time in unix seconds."""
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += int(seconds)
        logger.debug("Clock advanced by %d to %d", seconds, self._now)
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = int(timestamp)
        logger.debug("Clock set to %d", self._now)


@dataclass
class Sequencer:
    """Monotonic id counters. Ids are never reused within one server."""

    update_id: int = 1
    message_id: int = 1
    callback_query_id: int = 1
    inline_query_id: int = 1
    user_id: int = 100000001
    chat_id: int = 1

    def next_update_id(self) -> int:
        value = self.update_id
        self.update_id += 1
        return value

    def next_message_id(self) -> int:
        value = self.message_id
        self.message_id += 1
        return value

    def next_callback_query_id(self) -> str:
        value = self.callback_query_id
        self.callback_query_id += 1
        return str(value)

    def next_inline_query_id(self) -> str:
        value = self.inline_query_id
        self.inline_query_id += 1
        return str(value)

    def next_user_id(self) -> int:
        value = self.user_id
        self.user_id += 1
        return value

    def next_chat_id(self, chat_type: str) -> int:
        """Negative id for a group; supergroups and channels get the -100 prefix."""
        value = self.chat_id
        self.chat_id += 1
        if chat_type == "group":
            return -value
        return -(1000000000000 + value)

    def reset(self) -> None:
        self.update_id = 1
        self.message_id = 1
        self.callback_query_id = 1
        self.inline_query_id = 1
        self.user_id = 100000001
        self.chat_id = 1
