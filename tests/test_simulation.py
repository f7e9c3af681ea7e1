"""
Tests for simulated user actions and the updates they produce.
"""
import pytest

from tgsim.server import ButtonNotFoundError, NoMessagesError, SimulationError
from tgsim.state.member_state import ADMINISTRATOR, LEFT, MEMBER


async def _send_keyboard(server, chat_id: int, text: str = "Choose") -> dict:
    markup = {
        "inline_keyboard": [
            [
                {"text": "Yes", "callback_data": "answer:yes"},
                {"text": "Site", "url": "https://example.com"},
            ]
        ]
    }
    return await server.handle("sendMessage", {"chat_id": chat_id, "text": text, "reply_markup": markup})


class TestSimulateMessage:
    """Test incoming user messages."""

    def test_plain_message(self, server, private_chat, user) -> None:
        update = server.simulate_message(private_chat.id, user, "hello")

        message = update["message"]
        assert update["update_id"] == 1
        assert message["text"] == "hello"
        assert message["from"]["id"] == user["id"]
        assert message["chat"]["id"] == private_chat.id
        assert message["date"] == server.clock.now()
        assert "entities" not in message

    def test_command_gets_entity(self, server, private_chat, user) -> None:
        update = server.simulate_command(private_chat.id, user, "start", "ref_42")

        message = update["message"]
        assert message["text"] == "/start ref_42"
        assert message["entities"] == [{"type": "bot_command", "offset": 0, "length": 6}]

    def test_parse_mode(self, server, private_chat, user) -> None:
        update = server.simulate_message(private_chat.id, user, "<b>bold</b> text", parse_mode="HTML")

        message = update["message"]
        assert message["text"] == "bold text"
        assert message["entities"] == [{"type": "bold", "offset": 0, "length": 4}]

    def test_writing_in_group_makes_member(self, server, group_chat, other_user) -> None:
        server.simulate_message(group_chat.id, other_user, "hi all")

        assert server.members.get_status(group_chat.id, other_user["id"]) == MEMBER

    def test_banned_user_cannot_write(self, server, group_chat, other_user) -> None:
        server.members.ban(group_chat.id, other_user["id"])

        with pytest.raises(SimulationError):
            server.simulate_message(group_chat.id, other_user, "let me in")

    def test_channel_post(self, server, channel, user) -> None:
        """Channel messages arrive as channel_post signed by the channel."""
        update = server.simulate_message(channel.id, user, "news")

        post = update["channel_post"]
        assert post["sender_chat"]["id"] == channel.id
        assert "from" not in post

    def test_unknown_chat(self, server, user) -> None:
        with pytest.raises(SimulationError):
            server.simulate_message(-42, user, "hi")

    def test_edited_message(self, server, private_chat, user) -> None:
        update = server.simulate_message(private_chat.id, user, "typo")
        server.advance_time(5)

        edited = server.simulate_edited_message(private_chat.id, update["message"]["message_id"], "fixed")

        assert edited["edited_message"]["text"] == "fixed"
        assert edited["edited_message"]["edit_date"] == server.clock.now()

    def test_document_is_downloadable(self, server, private_chat, user) -> None:
        update = server.simulate_document(private_chat.id, user, content=b"data")

        document = update["message"]["document"]
        assert document["file_name"] == "document.pdf"
        assert server.files.get_file(document["file_id"]).content == b"data"


class TestSimulateCallback:
    """Test button presses."""

    @pytest.mark.asyncio
    async def test_click_by_text(self, server, private_chat, user) -> None:
        sent = await _send_keyboard(server, private_chat.id)

        update = server.simulate_button_click(private_chat.id, user, "Yes")

        query = update["callback_query"]
        assert query["data"] == "answer:yes"
        assert query["from"]["id"] == user["id"]
        assert query["message"]["message_id"] == sent["message_id"]

    @pytest.mark.asyncio
    async def test_callback_defaults_to_last_bot_message(self, server, private_chat, user) -> None:
        await _send_keyboard(server, private_chat.id, "first")
        second = await _send_keyboard(server, private_chat.id, "second")

        update = server.simulate_callback(private_chat.id, user, "answer:yes")

        assert update["callback_query"]["message"]["message_id"] == second["message_id"]

    def test_no_bot_messages(self, server, private_chat, user) -> None:
        with pytest.raises(NoMessagesError):
            server.simulate_callback(private_chat.id, user, "anything")

    @pytest.mark.asyncio
    async def test_unknown_button(self, server, private_chat, user) -> None:
        await _send_keyboard(server, private_chat.id)

        with pytest.raises(ButtonNotFoundError):
            server.simulate_button_click(private_chat.id, user, "No")

    @pytest.mark.asyncio
    async def test_url_button_has_no_callback(self, server, private_chat, user) -> None:
        await _send_keyboard(server, private_chat.id)

        with pytest.raises(ButtonNotFoundError):
            server.simulate_button_click(private_chat.id, user, "Site")


class TestSimulatePollAnswer:
    """Test votes in bot polls."""

    @pytest.mark.asyncio
    async def test_anonymous_vote_reports_tally(self, server, private_chat, user) -> None:
        sent = await server.handle(
            "sendPoll", {"chat_id": private_chat.id, "question": "Tea?", "options": ["Yes", "No"]}
        )

        update = server.simulate_poll_answer(sent["poll"]["id"], user, [0])

        assert update["poll"]["total_voter_count"] == 1
        assert update["poll"]["options"][0]["voter_count"] == 1

    @pytest.mark.asyncio
    async def test_public_vote_reports_voter(self, server, private_chat, user) -> None:
        sent = await server.handle(
            "sendPoll",
            {"chat_id": private_chat.id, "question": "Tea?", "options": ["Yes", "No"], "is_anonymous": False},
        )

        update = server.simulate_poll_answer(sent["poll"]["id"], user, [1])

        assert update["poll_answer"]["user"]["id"] == user["id"]
        assert update["poll_answer"]["option_ids"] == [1]

    @pytest.mark.asyncio
    async def test_vote_in_closed_poll_produces_nothing(self, server, private_chat, user) -> None:
        sent = await server.handle(
            "sendPoll", {"chat_id": private_chat.id, "question": "Tea?", "options": ["Yes", "No"]}
        )
        await server.handle("stopPoll", {"chat_id": private_chat.id, "message_id": sent["message_id"]})

        assert server.simulate_poll_answer(sent["poll"]["id"], user, [0]) is None

    def test_unknown_poll(self, server, user) -> None:
        with pytest.raises(SimulationError):
            server.simulate_poll_answer("404", user, [0])


class TestSimulateReaction:
    """Test reactions on messages."""

    @pytest.mark.asyncio
    async def test_reaction_replaces_previous(self, server, private_chat, user) -> None:
        sent = await server.handle("sendMessage", {"chat_id": private_chat.id, "text": "rate me"})
        server.simulate_reaction(private_chat.id, sent["message_id"], user, ["👍"])

        update = server.simulate_reaction(private_chat.id, sent["message_id"], user, ["🔥"])

        reaction = update["message_reaction"]
        assert reaction["old_reaction"] == [{"type": "emoji", "emoji": "👍"}]
        assert reaction["new_reaction"] == [{"type": "emoji", "emoji": "🔥"}]

    @pytest.mark.asyncio
    async def test_reaction_count(self, server, group_chat, user, other_user) -> None:
        sent = await server.handle("sendMessage", {"chat_id": group_chat.id, "text": "vote"})
        server.simulate_reaction(group_chat.id, sent["message_id"], user, ["👍"])
        server.simulate_reaction(group_chat.id, sent["message_id"], other_user, ["👍"])

        update = server.simulate_reaction_count(group_chat.id, sent["message_id"])

        assert update["message_reaction_count"]["reactions"] == [
            {"type": {"type": "emoji", "emoji": "👍"}, "total_count": 2}
        ]

    def test_missing_message(self, server, private_chat, user) -> None:
        with pytest.raises(SimulationError):
            server.simulate_reaction(private_chat.id, 999, user, ["👍"])


class TestSimulateMembership:
    """Test member changes caused by users."""

    def test_member_left(self, server, group_chat, other_user) -> None:
        server.set_member(group_chat.id, other_user)

        update = server.simulate_member_left(group_chat.id, other_user)

        assert update["chat_member"]["old_chat_member"]["status"] == MEMBER
        assert update["chat_member"]["new_chat_member"]["status"] == LEFT

    def test_absent_user_cannot_leave(self, server, group_chat, other_user) -> None:
        with pytest.raises(SimulationError):
            server.simulate_member_left(group_chat.id, other_user)

    def test_bot_added_as_admin(self, server, user) -> None:
        """Changes to the bot's own membership arrive as my_chat_member."""
        chat = server.create_chat("supergroup", user=user, bot_is_member=False)

        update = server.simulate_bot_added(chat.id, user, {"can_delete_messages": True})

        change = update["my_chat_member"]
        assert change["from"]["id"] == user["id"]
        assert change["old_chat_member"]["status"] == LEFT
        assert change["new_chat_member"]["status"] == ADMINISTRATOR
        assert change["new_chat_member"]["can_delete_messages"] is True


class TestSimulateBusinessAndPayments:
    """Test business connections and payments."""

    def test_business_message(self, server, user, other_user) -> None:
        connection = server.simulate_business_connection(user)["business_connection"]

        update = server.simulate_business_message(connection["id"], other_user, "Are you open?")

        message = update["business_message"]
        assert message["business_connection_id"] == connection["id"]
        assert message["text"] == "Are you open?"

    def test_unknown_business_connection(self, server, other_user) -> None:
        with pytest.raises(SimulationError):
            server.simulate_business_message("missing", other_user, "hi")

    def test_stars_payment_records_transaction(self, server, user) -> None:
        update = server.simulate_successful_payment(user, "XTR", 50, "premium")

        payment = update["message"]["successful_payment"]
        transactions = server.payments.get_user_transactions(user["id"])
        assert len(transactions) == 1
        assert transactions[0].amount == 50
        assert payment["telegram_payment_charge_id"] == transactions[0].telegram_payment_charge_id

    def test_fiat_payment_has_no_transaction(self, server, user) -> None:
        update = server.simulate_successful_payment(user, "USD", 999, "order_1")

        assert update["message"]["successful_payment"]["currency"] == "USD"
        assert server.payments.get_user_transactions(user["id"]) == []

    def test_update_ids_are_sequential(self, server, private_chat, user) -> None:
        first = server.simulate_message(private_chat.id, user, "a")
        second = server.simulate_pre_checkout(user, "XTR", 10, "p")

        assert second["update_id"] == first["update_id"] + 1


class TestSimulateSharedContent:
    """Test photos, contacts, places and Web App data sent by users."""

    def test_photo_sizes(self, server, private_chat, user) -> None:
        update = server.simulate_photo(private_chat.id, user, caption="Look")

        message = update["message"]
        assert message["caption"] == "Look"
        assert message["photo"][-1]["width"] == 1280
        assert message["photo"][0]["width"] < message["photo"][-1]["width"]
        assert server.files.has_file(message["photo"][-1]["file_id"])

    def test_own_contact(self, server, private_chat, user) -> None:
        update = server.simulate_contact(private_chat.id, user, "+15550001")

        contact = update["message"]["contact"]
        assert contact["first_name"] == "Alice"
        assert contact["user_id"] == user["id"]

    def test_location(self, server, private_chat, user) -> None:
        update = server.simulate_location(private_chat.id, user, 52.52, 13.405)

        assert update["message"]["location"] == {"latitude": 52.52, "longitude": 13.405}

    def test_venue_carries_location(self, server, private_chat, user) -> None:
        update = server.simulate_venue(private_chat.id, user, 52.52, 13.405, "Cafe", "Main St 1")

        message = update["message"]
        assert message["venue"]["title"] == "Cafe"
        assert message["location"] == message["venue"]["location"]

    def test_web_app_data_in_private_chat(self, server, user) -> None:
        update = server.simulate_web_app_data(user, '{"size": "L"}', "Order")

        message = update["message"]
        assert message["chat"]["id"] == user["id"]
        assert message["web_app_data"] == {"data": '{"size": "L"}', "button_text": "Order"}

    def test_unknown_chat(self, server, user) -> None:
        with pytest.raises(SimulationError):
            server.simulate_location(-42, user, 0.0, 0.0)


class TestSimulateInlineAndBoosts:
    """Test chosen inline results, boosts and passport data."""

    def test_chosen_inline_result(self, server, user) -> None:
        update = server.simulate_chosen_inline_result(user, "result_1", "cats", inline_message_id="im_1")

        chosen = update["chosen_inline_result"]
        assert chosen["result_id"] == "result_1"
        assert chosen["inline_message_id"] == "im_1"

    def test_boost_then_remove(self, server, group_chat, user) -> None:
        boost = server.simulate_boost(group_chat.id, user)["chat_boost"]["boost"]

        removed = server.simulate_removed_boost(group_chat.id, boost["boost_id"])

        assert removed["removed_chat_boost"]["boost_id"] == boost["boost_id"]
        with pytest.raises(SimulationError):
            server.simulate_removed_boost(group_chat.id, boost["boost_id"])

    def test_passport_data(self, server, user) -> None:
        data = [{"type": "email", "email": "alice@example.com", "hash": "h1"}]

        update = server.simulate_passport_data(user, data)

        assert update["message"]["passport_data"]["data"] == data
