"""
Tests for message API methods: sending, editing, deleting and reactions.
"""
import pytest

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, PermissionDeniedError, RateLimitError, ValidationError
from tgsim.permissions import ChatPermissions


class TestSendMessage:
    """Test sendMessage."""

    @pytest.mark.asyncio
    async def test_returns_message(self, server, private_chat) -> None:
        """The result is a full Message sent by the bot."""
        result = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "Hello"})

        assert result["text"] == "Hello"
        assert result["chat"]["id"] == private_chat.id
        assert result["from"]["id"] == server.bot_id
        assert result["date"] == server.clock.now()
        assert server.chats.get_message(private_chat.id, result["message_id"]) is not None

    @pytest.mark.asyncio
    async def test_message_ids_increase(self, server, private_chat) -> None:
        first = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "one"})
        second = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "two"})

        assert second["message_id"] > first["message_id"]

    @pytest.mark.asyncio
    async def test_max_length_accepted(self, server, private_chat) -> None:
        """4096 characters is the limit, inclusive."""
        result = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "a" * 4096})

        assert len(result["text"]) == 4096

    @pytest.mark.asyncio
    async def test_too_long_rejected(self, server, private_chat) -> None:
        with pytest.raises(ValidationError, match="message is too long") as exc_info:
            await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "a" * 4097})

        assert exc_info.value.error_code == 400
        assert server.chats.get_conversation(private_chat.id) == []

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, server, private_chat) -> None:
        with pytest.raises(ValidationError, match="message text is empty"):
            await server.handle("sendMessage", {"chat_id": private_chat.id, "text": ""})

    @pytest.mark.asyncio
    async def test_unknown_chat(self, server) -> None:
        with pytest.raises(NotFoundError, match="chat not found"):
            await server.handle("sendMessage", {"chat_id": 42, "text": "hi"})

    @pytest.mark.asyncio
    async def test_chat_id_as_string(self, server, private_chat) -> None:
        """Form-encoded ids arrive as strings."""
        result = await server.handle("sendMessage", {"chat_id": str(private_chat.id), "text": "hi"})

        assert result["chat"]["id"] == private_chat.id

    @pytest.mark.asyncio
    async def test_parse_mode_entities(self, server, private_chat) -> None:
        """parse_mode is applied before storing."""
        result = await server.handle(
            "sendMessage",
            {"chat_id": private_chat.id, "text": "*Hello* world", "parse_mode": "MarkdownV2"},
        )

        assert result["text"] == "Hello world"
        assert result["entities"] == [{"type": "bold", "offset": 0, "length": 5}]

    @pytest.mark.asyncio
    async def test_inline_keyboard_echoed(self, server, private_chat) -> None:
        markup = {"inline_keyboard": [[{"text": "Go", "callback_data": "go"}]]}
        result = await server.handle(
            "sendMessage",
            {"chat_id": private_chat.id, "text": "Pick", "reply_markup": markup},
        )

        assert result["reply_markup"] == markup

    @pytest.mark.asyncio
    async def test_reply_keyboard_recorded_not_echoed(self, server, private_chat) -> None:
        """The response sees the reply keyboard; the returned Message does not carry it."""
        markup = {"keyboard": [[{"text": "Yes"}, {"text": "No"}]], "resize_keyboard": True}
        response = BotResponse()

        result = await server.handle(
            "sendMessage",
            {"chat_id": private_chat.id, "text": "Sure?", "reply_markup": markup},
            response,
        )

        assert "reply_markup" not in result
        assert response.has_reply_keyboard()
        assert not response.has_inline_keyboard()
        assert response.keyboard["reply"][0][1]["text"] == "No"

    @pytest.mark.asyncio
    async def test_keyboard_removal_recorded(self, server, private_chat) -> None:
        response = BotResponse()

        await server.handle(
            "sendMessage",
            {"chat_id": private_chat.id, "text": "Done", "reply_markup": {"remove_keyboard": True}},
            response,
        )

        assert response.removes_reply_keyboard
        assert not response.has_reply_keyboard()

    @pytest.mark.asyncio
    async def test_reply_to_missing_message(self, server, private_chat) -> None:
        with pytest.raises(NotFoundError, match="message to be replied not found"):
            await server.handle(
                "sendMessage",
                {"chat_id": private_chat.id, "text": "hi", "reply_to_message_id": 999},
            )

    @pytest.mark.asyncio
    async def test_reply_allowed_without_target(self, server, private_chat) -> None:
        result = await server.handle(
            "sendMessage",
            {
                "chat_id": private_chat.id,
                "text": "hi",
                "reply_parameters": {"message_id": 999, "allow_sending_without_reply": True},
            },
        )

        assert "reply_to_message" not in result

    @pytest.mark.asyncio
    async def test_group_flood_limit(self, server, group_chat) -> None:
        """The 21st message within a minute in a group gets 429."""
        for i in range(20):
            await server.handle("sendMessage", {"chat_id": group_chat.id, "text": f"msg {i}"})

        with pytest.raises(RateLimitError) as exc_info:
            await server.handle("sendMessage", {"chat_id": group_chat.id, "text": "one too many"})

        error = exc_info.value
        assert error.error_code == 429
        assert error.to_response()["parameters"]["retry_after"] == error.retry_after

    @pytest.mark.asyncio
    async def test_flood_limit_resets_next_minute(self, server, group_chat) -> None:
        for i in range(20):
            await server.handle("sendMessage", {"chat_id": group_chat.id, "text": f"msg {i}"})
        server.advance_time(60)

        result = await server.handle("sendMessage", {"chat_id": group_chat.id, "text": "later"})
        assert result["text"] == "later"

    @pytest.mark.asyncio
    async def test_chat_permissions_block_bot(self, server, group_chat) -> None:
        """A non-admin bot obeys the chat's default permissions."""
        server.chats.set_permissions(group_chat.id, ChatPermissions(can_send_messages=False))

        with pytest.raises(PermissionDeniedError, match="not enough rights to send text messages"):
            await server.handle("sendMessage", {"chat_id": group_chat.id, "text": "hi"})

    @pytest.mark.asyncio
    async def test_admin_bot_ignores_chat_permissions(self, server, admin_group) -> None:
        server.chats.set_permissions(admin_group.id, ChatPermissions(can_send_messages=False))

        result = await server.handle("sendMessage", {"chat_id": admin_group.id, "text": "hi"})
        assert result["text"] == "hi"

    @pytest.mark.asyncio
    async def test_locked_chat(self, server, group_chat) -> None:
        """A locked chat rejects a non-admin bot until it is unlocked."""
        server.lock_chat(group_chat.id)

        with pytest.raises(PermissionDeniedError, match="not enough rights"):
            await server.handle("sendMessage", {"chat_id": group_chat.id, "text": "hi"})

        server.unlock_chat(group_chat.id)
        result = await server.handle("sendMessage", {"chat_id": group_chat.id, "text": "hi"})
        assert result["text"] == "hi"

    @pytest.mark.asyncio
    async def test_kicked_bot_forbidden(self, server, group_chat) -> None:
        server.members.ban(group_chat.id, server.bot_id)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await server.handle("sendMessage", {"chat_id": group_chat.id, "text": "hi"})
        assert exc_info.value.error_code == 403


class TestEditMessage:
    """Test editMessageText."""

    @pytest.mark.asyncio
    async def test_edit_updates_stored_message(self, server, private_chat) -> None:
        sent = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "Original"})
        server.advance_time(5)

        edited = await server.handle(
            "editMessageText",
            {"chat_id": private_chat.id, "message_id": sent["message_id"], "text": "Edited"},
        )

        assert edited["text"] == "Edited"
        assert edited["edit_date"] == server.clock.now()
        assert server.chats.get_message(private_chat.id, sent["message_id"]).text == "Edited"

    @pytest.mark.asyncio
    async def test_same_content_not_modified(self, server, private_chat) -> None:
        sent = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "Same"})

        with pytest.raises(ValidationError, match="message is not modified"):
            await server.handle(
                "editMessageText",
                {"chat_id": private_chat.id, "message_id": sent["message_id"], "text": "Same"},
            )

    @pytest.mark.asyncio
    async def test_cannot_edit_user_message(self, server, private_chat, user) -> None:
        update = server.simulate_message(private_chat.id, user, "mine")

        with pytest.raises(PermissionDeniedError, match="message can't be edited"):
            await server.handle(
                "editMessageText",
                {
                    "chat_id": private_chat.id,
                    "message_id": update["message"]["message_id"],
                    "text": "changed",
                },
            )

    @pytest.mark.asyncio
    async def test_inline_message_edit_returns_true(self, server) -> None:
        result = await server.handle("editMessageText", {"inline_message_id": "abc", "text": "x"})

        assert result is True


class TestDeleteMessage:
    """Test deleteMessage rights and the 48 hour window."""

    @pytest.mark.asyncio
    async def test_bot_deletes_own_message(self, server, group_chat) -> None:
        sent = await server.handle("sendMessage", {"chat_id": group_chat.id, "text": "bye"})

        result = await server.handle(
            "deleteMessage", {"chat_id": group_chat.id, "message_id": sent["message_id"]}
        )

        assert result is True
        assert server.chats.get_message(group_chat.id, sent["message_id"]) is None

    @pytest.mark.asyncio
    async def test_missing_message(self, server, private_chat) -> None:
        with pytest.raises(NotFoundError, match="message to delete not found"):
            await server.handle("deleteMessage", {"chat_id": private_chat.id, "message_id": 999})

    @pytest.mark.asyncio
    async def test_user_message_in_private_chat(self, server, private_chat, user) -> None:
        update = server.simulate_message(private_chat.id, user, "hello")

        result = await server.handle(
            "deleteMessage",
            {"chat_id": private_chat.id, "message_id": update["message"]["message_id"]},
        )
        assert result is True

    @pytest.mark.asyncio
    async def test_user_message_needs_right(self, server, group_chat, other_user) -> None:
        """A plain member bot cannot delete others' messages."""
        update = server.simulate_message(group_chat.id, other_user, "spam")

        with pytest.raises(PermissionDeniedError, match="not enough rights to delete messages"):
            await server.handle(
                "deleteMessage",
                {"chat_id": group_chat.id, "message_id": update["message"]["message_id"]},
            )

    @pytest.mark.asyncio
    async def test_old_message_without_right(self, server, group_chat, other_user) -> None:
        """Past 48 hours, a bot without can_delete_messages gets the window error."""
        update = server.simulate_message(group_chat.id, other_user, "old")
        server.advance_time(48 * 3600 + 1)

        with pytest.raises(PermissionDeniedError, match="message can't be deleted for everyone"):
            await server.handle(
                "deleteMessage",
                {"chat_id": group_chat.id, "message_id": update["message"]["message_id"]},
            )

    @pytest.mark.asyncio
    async def test_old_message_with_right(self, server, admin_group, other_user) -> None:
        """can_delete_messages lifts the 48 hour window."""
        update = server.simulate_message(admin_group.id, other_user, "old")
        server.advance_time(48 * 3600 + 1)

        result = await server.handle(
            "deleteMessage",
            {"chat_id": admin_group.id, "message_id": update["message"]["message_id"]},
        )
        assert result is True

    @pytest.mark.asyncio
    async def test_delete_messages_batch(self, server, private_chat) -> None:
        ids = []
        for text in ("a", "b"):
            sent = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": text})
            ids.append(sent["message_id"])

        result = await server.handle(
            "deleteMessages", {"chat_id": private_chat.id, "message_ids": ids + [999]}
        )

        assert result is True
        assert server.chats.get_conversation(private_chat.id) == []

    @pytest.mark.asyncio
    async def test_delete_stops_poll(self, server, private_chat) -> None:
        sent = await server.handle(
            "sendPoll",
            {"chat_id": private_chat.id, "question": "Q?", "options": ["a", "b"]},
        )

        await server.handle("deleteMessage", {"chat_id": private_chat.id, "message_id": sent["message_id"]})

        assert server.polls.is_closed(sent["poll"]["id"])


class TestOtherSends:
    """Test location, contact, dice and chat actions."""

    @pytest.mark.asyncio
    async def test_wrong_coordinates(self, server, private_chat) -> None:
        with pytest.raises(ValidationError, match="wrong coordinates"):
            await server.handle(
                "sendLocation", {"chat_id": private_chat.id, "latitude": 91, "longitude": 0}
            )

    @pytest.mark.asyncio
    async def test_dice_value_in_range(self, server, private_chat) -> None:
        result = await server.handle("sendDice", {"chat_id": private_chat.id, "emoji": "🏀"})

        assert 1 <= result["dice"]["value"] <= 5

    @pytest.mark.asyncio
    async def test_unknown_chat_action(self, server, private_chat) -> None:
        with pytest.raises(ValidationError):
            await server.handle("sendChatAction", {"chat_id": private_chat.id, "action": "dancing"})

    @pytest.mark.asyncio
    async def test_forward_origin(self, server, private_chat, group_chat, other_user) -> None:
        update = server.simulate_message(group_chat.id, other_user, "forward me")

        result = await server.handle(
            "forwardMessage",
            {
                "chat_id": private_chat.id,
                "from_chat_id": group_chat.id,
                "message_id": update["message"]["message_id"],
            },
        )

        assert result["text"] == "forward me"
        assert result["forward_origin"]["sender_user"]["id"] == other_user["id"]
