"""
Tests for update delivery: the long-poll queue, getUpdates and webhooks.
"""
import asyncio

import pytest

from tgsim.errors import ApiError, ValidationError
from tgsim.update_queue import UpdateQueue


def _update(update_id: int) -> dict:
    return {"update_id": update_id, "message": {"message_id": update_id}}


class TestUpdateQueue:
    """Test UpdateQueue directly."""

    @pytest.mark.asyncio
    async def test_returns_pending(self) -> None:
        queue = UpdateQueue()
        queue.push_batch([_update(1), _update(2)])

        assert [u["update_id"] for u in await queue.get_updates()] == [1, 2]

    @pytest.mark.asyncio
    async def test_offset_acknowledges(self) -> None:
        """A positive offset drops every lower update for good."""
        queue = UpdateQueue()
        queue.push_batch([_update(1), _update(2), _update(3)])

        assert [u["update_id"] for u in await queue.get_updates(offset=3)] == [3]
        assert queue.pending_count == 1
        assert [u["update_id"] for u in await queue.get_updates()] == [3]

    @pytest.mark.asyncio
    async def test_limit(self) -> None:
        queue = UpdateQueue()
        queue.push_batch([_update(i) for i in range(1, 6)])

        assert len(await queue.get_updates(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_push_wakes_waiter(self) -> None:
        """A long poll returns as soon as an update arrives."""
        queue = UpdateQueue()
        poll = asyncio.create_task(queue.get_updates(timeout=5))
        await asyncio.sleep(0)
        assert queue.waiter_count == 1

        queue.push(_update(7))

        assert [u["update_id"] for u in await asyncio.wait_for(poll, 1)] == [7]
        assert queue.waiter_count == 0

    @pytest.mark.asyncio
    async def test_abort_releases_waiter(self) -> None:
        """abort() ends a pending long poll with an empty list."""
        queue = UpdateQueue()
        poll = asyncio.create_task(queue.get_updates(timeout=30))
        await asyncio.sleep(0)

        queue.abort()

        assert await asyncio.wait_for(poll, 1) == []
        assert queue.is_aborted
        assert await queue.get_updates(timeout=30) == []

    @pytest.mark.asyncio
    async def test_timeout_returns_empty(self) -> None:
        queue = UpdateQueue()

        assert await queue.get_updates(timeout=0.01) == []
        assert queue.waiter_count == 0

    @pytest.mark.asyncio
    async def test_drop_pending(self) -> None:
        queue = UpdateQueue()
        queue.push_batch([_update(1), _update(2)])

        assert queue.drop_pending() == 2
        assert await queue.get_updates() == []


class TestGetUpdates:
    """Test getUpdates through the server."""

    @pytest.mark.asyncio
    async def test_delivers_enqueued_updates(self, server, private_chat, user) -> None:
        server.enqueue(server.simulate_message(private_chat.id, user, "hi"))

        updates = await server.handle("getUpdates", {"offset": 0, "timeout": 0})

        assert len(updates) == 1
        assert updates[0]["message"]["text"] == "hi"

    @pytest.mark.asyncio
    async def test_enqueue_ignores_none(self, server) -> None:
        server.enqueue(None)

        assert server.update_queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_long_poll_does_not_block_other_calls(self, server, private_chat, user) -> None:
        """Other methods run while a getUpdates call is waiting."""
        poll = asyncio.create_task(server.handle("getUpdates", {"timeout": 30}))
        await asyncio.sleep(0)

        sent = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "meanwhile"})
        assert sent["text"] == "meanwhile"

        server.enqueue(server.simulate_message(private_chat.id, user, "wake up"))
        updates = await asyncio.wait_for(poll, 1)
        assert updates[0]["message"]["text"] == "wake up"

    @pytest.mark.asyncio
    async def test_abort_updates(self, server) -> None:
        poll = asyncio.create_task(server.handle("getUpdates", {"timeout": 30}))
        await asyncio.sleep(0)

        server.abort_updates()

        assert await asyncio.wait_for(poll, 1) == []

    @pytest.mark.asyncio
    async def test_invalid_limit(self, server) -> None:
        with pytest.raises(ValidationError, match="invalid limit"):
            await server.handle("getUpdates", {"limit": 101})

    @pytest.mark.asyncio
    async def test_conflict_with_webhook(self, server) -> None:
        """getUpdates is refused with 409 while a webhook is set."""
        await server.handle("setWebhook", {"url": "https://example.com/hook"})

        with pytest.raises(ApiError) as exc_info:
            await server.handle("getUpdates", {})

        assert exc_info.value.error_code == 409
        assert "Conflict" in exc_info.value.description


class TestWebhook:
    """Test setWebhook, deleteWebhook and getWebhookInfo."""

    @pytest.mark.asyncio
    async def test_https_required(self, server) -> None:
        with pytest.raises(ValidationError, match="HTTPS url must be provided"):
            await server.handle("setWebhook", {"url": "http://example.com/hook"})

    @pytest.mark.asyncio
    async def test_info_reports_pending(self, server, private_chat, user) -> None:
        await server.handle("setWebhook", {"url": "https://example.com/hook", "max_connections": 10})
        server.enqueue(server.simulate_message(private_chat.id, user, "hi"))

        info = await server.handle("getWebhookInfo", {})

        assert info["url"] == "https://example.com/hook"
        assert info["pending_update_count"] == 1
        assert info["max_connections"] == 10

    @pytest.mark.asyncio
    async def test_delete_webhook_drops_pending(self, server, private_chat, user) -> None:
        await server.handle("setWebhook", {"url": "https://example.com/hook"})
        server.enqueue(server.simulate_message(private_chat.id, user, "hi"))

        await server.handle("deleteWebhook", {"drop_pending_updates": True})

        assert not server.bot.has_webhook
        assert await server.handle("getUpdates", {}) == []

    @pytest.mark.asyncio
    async def test_bad_secret_token(self, server) -> None:
        with pytest.raises(ValidationError, match="secret token"):
            await server.handle(
                "setWebhook", {"url": "https://example.com/hook", "secret_token": "bad token!"}
            )
