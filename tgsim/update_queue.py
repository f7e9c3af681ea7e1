"""
Long-poll update queue behind getUpdates.

Waiting is a future resolved at most once: by the next arrival, by the
timeout, or by abort(). Nothing sleeps on the wall clock except the
long-poll timeout itself.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("tgsim.update_queue")

MAX_LIMIT = 100


@dataclass
class _Waiter:
    future: asyncio.Future
    offset: int
    limit: int


class UpdateQueue:
    """Pending updates plus the getUpdates callers waiting for them."""

    def __init__(self) -> None:
        self._updates: list[dict[str, Any]] = []
        self._waiters: list[_Waiter] = []
        self._aborted = False
        self._last_offset = 0

    @property
    def pending_count(self) -> int:
        return len(self._updates)

    @property
    def waiter_count(self) -> int:
        return len(self._waiters)

    @property
    def is_aborted(self) -> bool:
        return self._aborted

    def push(self, update: dict[str, Any]) -> None:
        self._updates.append(update)
        self._notify_waiter()

    def push_batch(self, updates: list[dict[str, Any]]) -> None:
        self._updates.extend(updates)
        self._notify_waiter()

    async def get_updates(self, offset: int = 0, limit: int = MAX_LIMIT, timeout: float = 0) -> list[dict[str, Any]]:
        """
        Return pending updates with update_id >= offset.

        A positive offset acknowledges (drops) every lower update. With a
        timeout the call waits for the next arrival; abort() releases it
        with an empty list.
        """
        if self._aborted:
            return []

        if offset > 0 and offset > self._last_offset:
            self._last_offset = offset
            self._updates = [u for u in self._updates if u["update_id"] >= offset]

        available = self._available(offset, limit)
        if available or timeout <= 0:
            return available

        waiter = _Waiter(asyncio.get_running_loop().create_future(), offset, limit)
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter.future, timeout)
        except asyncio.TimeoutError:
            return self._available(offset, limit)
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def abort(self) -> None:
        """Release every waiter with an empty result and refuse new waits."""
        self._aborted = True
        for waiter in self._waiters:
            if not waiter.future.done():
                waiter.future.set_result([])
        self._waiters.clear()
        logger.debug("Update queue aborted")

    def resume(self) -> None:
        self._aborted = False

    def drop_pending(self) -> int:
        """Discard pending updates; returns how many were dropped."""
        dropped = len(self._updates)
        self._updates.clear()
        return dropped

    def reset(self) -> None:
        self.abort()
        self._updates.clear()
        self._aborted = False
        self._last_offset = 0

    def _available(self, offset: int, limit: int) -> list[dict[str, Any]]:
        updates = self._updates
        if offset > 0:
            updates = [u for u in updates if u["update_id"] >= offset]
        return updates[:min(limit, MAX_LIMIT)]

    def _notify_waiter(self) -> None:
        while self._waiters:
            waiter = self._waiters.pop(0)
            if waiter.future.done():
                continue
            waiter.future.set_result(self._available(waiter.offset, waiter.limit))
            return
