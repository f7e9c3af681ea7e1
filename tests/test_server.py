"""
Tests for TelegramServer dispatch: envelopes, tracking and isolation.
"""
import asyncio

import pytest

from tgsim.bot_response import BotResponse
from tgsim.config import Settings
from tgsim.errors import NotFoundError
from tgsim.server import SimulationError, TelegramServer


class TestDispatch:
    """Test handle() and call()."""

    @pytest.mark.asyncio
    async def test_get_me(self, server) -> None:
        result = await server.handle("getMe")

        assert result["id"] == server.settings.bot_id
        assert result["is_bot"] is True
        assert result["username"] == "test_bot"

    @pytest.mark.asyncio
    async def test_call_ok_envelope(self, server, private_chat) -> None:
        envelope = await server.call("sendMessage", {"chat_id": private_chat.id, "text": "hi"})

        assert envelope["ok"] is True
        assert envelope["result"]["text"] == "hi"

    @pytest.mark.asyncio
    async def test_call_error_envelope(self, server) -> None:
        """Rejections come back in the platform's error shape."""
        envelope = await server.call("sendMessage", {"chat_id": 1, "text": "hi"})

        assert envelope == {
            "ok": False,
            "error_code": 400,
            "description": "Bad Request: chat not found",
        }

    @pytest.mark.asyncio
    async def test_rate_limit_envelope_has_retry_after(self, server, group_chat) -> None:
        for i in range(20):
            await server.call("sendMessage", {"chat_id": group_chat.id, "text": str(i)})

        envelope = await server.call("sendMessage", {"chat_id": group_chat.id, "text": "again"})

        assert envelope["error_code"] == 429
        assert envelope["parameters"]["retry_after"] > 0

    @pytest.mark.asyncio
    async def test_unknown_method_succeeds(self, server) -> None:
        """Methods the server does not model are accepted and tracked."""
        assert await server.handle("someFutureMethod", {"x": 1}) is True
        assert server.tracker.get_last_call("someFutureMethod") is not None

    @pytest.mark.asyncio
    async def test_none_payload(self, server) -> None:
        result = await server.handle("getMyCommands", None)

        assert result == []


class TestTracking:
    """Test RequestTracker and BotResponse recording."""

    @pytest.mark.asyncio
    async def test_successful_call_recorded(self, server, private_chat) -> None:
        await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "hi"})

        record = server.tracker.get_last_call("sendMessage")
        assert record.ok
        assert record.payload["text"] == "hi"
        assert record.result["text"] == "hi"
        assert record.timestamp == server.clock.now()

    @pytest.mark.asyncio
    async def test_failed_call_recorded(self, server) -> None:
        with pytest.raises(NotFoundError):
            await server.handle("sendMessage", {"chat_id": 1, "text": "hi"})

        failed = server.tracker.get_failed_calls()
        assert len(failed) == 1
        assert failed[0].error["description"] == "Bad Request: chat not found"

    @pytest.mark.asyncio
    async def test_response_collects_messages_and_calls(self, server, private_chat) -> None:
        response = BotResponse()

        await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "one"}, response)
        await server.call("sendMessage", {"chat_id": 404, "text": "two"}, response)

        assert response.texts == ["one"]
        assert [call.method for call in response.api_calls] == ["sendMessage", "sendMessage"]
        assert response.has_error
        assert response.error["error_code"] == 400

    @pytest.mark.asyncio
    async def test_response_records_callback_answer(self, server, private_chat, user) -> None:
        markup = {"inline_keyboard": [[{"text": "Yes", "callback_data": "yes"}]]}
        await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "?", "reply_markup": markup})
        update = server.simulate_button_click(private_chat.id, user, "Yes")
        response = BotResponse()

        await server.handle(
            "answerCallbackQuery",
            {"callback_query_id": update["callback_query"]["id"], "text": "Done"},
            response,
        )

        assert response.callback_answer["text"] == "Done"

    @pytest.mark.asyncio
    async def test_count_by_method(self, server, private_chat) -> None:
        await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "a"})
        await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "b"})
        await server.handle("getMe")

        assert server.tracker.count() == 3
        assert len(server.tracker.get_calls_by_method("sendMessage")) == 2


class TestConcurrency:
    """Test concurrent calls against one server."""

    @pytest.mark.asyncio
    async def test_concurrent_sends_get_unique_ids(self, server, private_chat) -> None:
        """Concurrent calls never share a message id."""
        results = await asyncio.gather(*(
            server.handle("sendMessage", {"chat_id": private_chat.id, "text": f"m{i}"})
            for i in range(25)
        ))

        ids = [r["message_id"] for r in results]
        assert len(set(ids)) == 25
        assert len(server.chats.get_conversation(private_chat.id)) == 25

    @pytest.mark.asyncio
    async def test_servers_are_isolated(self, settings, user) -> None:
        first = TelegramServer(settings)
        second = TelegramServer(settings)
        chat = first.create_chat("private", user=user)

        await first.handle("sendMessage", {"chat_id": chat.id, "text": "only here"})

        assert second.chats.get(chat.id) is None
        assert second.tracker.count() == 0


class TestClockAndReset:
    """Test time control and reset."""

    def test_start_time_from_settings(self, server) -> None:
        assert server.clock.now() == 1_700_000_000

    def test_advance_time(self, server) -> None:
        assert server.advance_time(90) == 1_700_000_090

    def test_negative_advance_rejected(self, server) -> None:
        with pytest.raises(ValueError):
            server.advance_time(-1)

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, server, private_chat) -> None:
        await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "hi"})
        server.enqueue({"update_id": 99})

        server.reset()

        assert server.chats.get(private_chat.id) is None
        assert server.tracker.count() == 0
        assert server.update_queue.pending_count == 0
        assert server.sequencer.message_id == 1
        assert server.members.get_user(server.bot_id) is not None

    def test_file_url(self, server) -> None:
        assert server.file_url("documents/file_1.pdf") == (
            "https://api.telegram.org/file/bot1234567890:TEST_TOKEN/documents/file_1.pdf"
        )


class TestSetupHelpers:
    """Test user and chat creation helpers."""

    def test_user_ids_are_sequential(self, server) -> None:
        first = server.create_user("A")
        second = server.create_user("B")

        assert second["id"] == first["id"] + 1
        assert first["is_bot"] is False

    def test_premium_user(self, server) -> None:
        user = server.create_user("P", is_premium=True)

        assert user["is_premium"] is True

    def test_group_ids(self, server, user) -> None:
        group = server.create_chat("group", user=user)
        supergroup = server.create_chat("supergroup", user=user)

        assert group.id < 0
        assert str(supergroup.id).startswith("-100")

    def test_private_chat_needs_user(self, server) -> None:
        with pytest.raises(SimulationError):
            server.create_chat("private")

    def test_forum_needs_supergroup(self, server, user) -> None:
        with pytest.raises(SimulationError):
            server.create_chat("group", user=user, is_forum=True)

    def test_settings_override(self) -> None:
        server = TelegramServer(Settings(bot_id=42, bot_username="other_bot", start_time=0))

        assert server.bot_id == 42
        assert server.bot_user["username"] == "other_bot"
