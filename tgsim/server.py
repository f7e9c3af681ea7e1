"""
Simulated Telegram Bot API server.

TelegramServer owns every domain state manager, the shared Clock and the
id Sequencer. Bot API calls enter through handle() (raising ApiError) or
call() (returning the wire envelope); the simulate_* helpers build the
updates a real user action would produce and register the state that
action implies.
"""
import asyncio
import inspect
import logging
from typing import Any

from tgsim.bot_response import BotResponse
from tgsim.clock import Clock, Sequencer
from tgsim.config import Settings, get_settings
from tgsim.errors import ApiError, NotFoundError, PermissionDeniedError, ValidationError, bad_request
from tgsim.markup import parse_formatted_text, utf16_len
from tgsim.methods import METHODS, Handler
from tgsim.payload import Payload
from tgsim.permissions import ChatAdministratorRights
from tgsim.responses import make_ok_response
from tgsim.state import (
    BotState,
    BusinessState,
    ChatRecord,
    ChatState,
    FileState,
    MemberState,
    PassportState,
    PaymentState,
    PollState,
    QueryState,
    StickerState,
    StoredMessage,
)
from tgsim.state.member_state import KICKED, LEFT
from tgsim.state.payment_state import PRE_CHECKOUT, SHIPPING, STARS_CURRENCY
from tgsim.state.query_state import CALLBACK, INLINE
from tgsim.tracker import ApiCallRecord, RequestTracker
from tgsim.update_queue import UpdateQueue
from tgsim.updates import UpdateFactory, emoji_reactions, update_kind
from tgsim.utils.logger import log_api_call, log_api_error, log_clock, log_update

logger = logging.getLogger("tgsim.server")

DEFAULT_SHIPPING_ADDRESS = {
    "country_code": "US",
    "state": "NY",
    "city": "New York",
    "street_line1": "1 Test Street",
    "street_line2": "",
    "post_code": "10001",
}


class SimulationError(Exception):
    """A simulated user action that cannot happen in the current state."""


class ButtonNotFoundError(SimulationError):
    """Raised when a button cannot be found in the chat."""


class NoMessagesError(SimulationError):
    """Raised when trying to access messages in an empty chat."""


def command_entities(text: str | None) -> list[dict[str, Any]] | None:
    """bot_command entity for text that starts with a slash command."""
    if not text or not text.startswith("/") or len(text) < 2:
        return None
    command = text.split(maxsplit=1)[0]
    return [{"type": "bot_command", "offset": 0, "length": utf16_len(command)}]


class TelegramServer:
    """
    In-process Telegram Bot API.

    One instance is one isolated platform: nothing is shared between
    servers, so tests may run several side by side.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.clock = Clock(self.settings.start_time)
        self.sequencer = Sequencer()

        self.chats = ChatState(self.clock)
        self.members = MemberState(self.clock)
        self.polls = PollState(self.clock)
        self.files = FileState(self.clock)
        self.stickers = StickerState()
        self.business = BusinessState(self.clock)
        self.payments = PaymentState(self.clock)
        self.passport = PassportState()
        self.queries = QueryState()
        self.bot = BotState()

        self.tracker = RequestTracker()
        self.updates = UpdateFactory(self.sequencer, self.clock)
        self.update_queue = UpdateQueue()

        self.bot_user: dict[str, Any] = {
            "id": self.settings.bot_id,
            "is_bot": True,
            "first_name": self.settings.bot_first_name,
            "username": self.settings.bot_username,
        }
        self.members.register_user(self.bot_user)

        # user reactions by (chat_id, message_id, user_id)
        self._reactions: dict[tuple[int, int, int], list[str]] = {}
        self._handlers: dict[str, Handler] = dict(METHODS)
        self._lock = asyncio.Lock()

    @property
    def bot_id(self) -> int:
        return self.bot_user["id"]

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle(
        self,
        method: str,
        payload: dict[str, Any] | Payload | None = None,
        response: BotResponse | None = None,
    ) -> Any:
        """
        Execute one Bot API method and return its result.

        Rejected calls raise ApiError. Either way the call is recorded in the
        tracker and, when given, in the response accumulator.
        """
        data = payload if isinstance(payload, Payload) else Payload(payload)
        record = ApiCallRecord(method=method, payload=data.to_dict(), timestamp=self.clock.now())
        handler = self._handlers.get(method)

        try:
            if handler is None:
                result = self._handle_unknown_method(method)
            elif inspect.iscoroutinefunction(handler):
                # Long polls wait without holding the lock
                result = await handler(self, data, response)
            else:
                async with self._lock:
                    result = handler(self, data, response)
        except ApiError as e:
            record.error = e.to_response()
            self._record(record, response)
            logger.debug("%s failed: %s", method, e.description)
            if self.settings.trace_api:
                log_api_error(method, e.error_code, e.description)
            raise

        record.result = result
        self._record(record, response)
        if self.settings.trace_api:
            log_api_call(method, record.payload)
        return result

    async def call(
        self,
        method: str,
        payload: dict[str, Any] | Payload | None = None,
        response: BotResponse | None = None,
    ) -> dict[str, Any]:
        """Like handle(), but returns the {ok, result} or error envelope."""
        try:
            result = await self.handle(method, payload, response)
        except ApiError as e:
            return e.to_response()
        return make_ok_response(result)

    def _record(self, record: ApiCallRecord, response: BotResponse | None) -> None:
        self.tracker.add(record)
        if response is not None:
            response.add_api_call(record)

    def _handle_unknown_method(self, method: str) -> bool:
        logger.warning("Unknown API method: %s", method)
        return True

    # =========================================================================
    # Time and updates
    # =========================================================================

    def advance_time(self, seconds: int) -> int:
        """Move the shared clock forward; every manager sees it at once."""
        now = self.clock.advance(seconds)
        if self.settings.trace_api:
            log_clock(now, seconds)
        return now

    def enqueue(self, update: dict[str, Any] | None) -> None:
        """Make an update available to getUpdates."""
        if update is None:
            return
        self.update_queue.push(update)
        if self.settings.trace_api:
            log_update(update["update_id"], update_kind(update))

    def abort_updates(self) -> None:
        """Release every pending long poll with an empty result."""
        self.update_queue.abort()

    def file_url(self, file_path: str) -> str:
        """Download URL for a getFile file_path, as the platform forms it."""
        return f"{self.settings.file_base_url}{self.settings.bot_token}/{file_path}"

    def reset(self) -> None:
        """Clear all state, counters and tracked calls."""
        self.chats.clear()
        self.members.clear()
        self.polls.clear()
        self.files.clear()
        self.stickers.clear()
        self.business.clear()
        self.payments.clear()
        self.passport.clear()
        self.queries.clear()
        self.bot.clear()
        self.tracker.clear()
        self.sequencer.reset()
        self.update_queue.reset()
        self._reactions.clear()
        self.members.register_user(self.bot_user)
        logger.debug("Server reset")

    # =========================================================================
    # Actors
    # =========================================================================

    def create_user(
        self,
        first_name: str = "Test",
        last_name: str | None = None,
        username: str | None = None,
        language_code: str | None = "en",
        is_premium: bool = False,
        with_profile_photo: bool = False,
    ) -> dict[str, Any]:
        """Register a new human user with a fresh id."""
        user: dict[str, Any] = {
            "id": self.sequencer.next_user_id(),
            "is_bot": False,
            "first_name": first_name,
        }
        if last_name is not None:
            user["last_name"] = last_name
        if username is not None:
            user["username"] = username
        if language_code is not None:
            user["language_code"] = language_code
        if is_premium:
            self.members.set_premium(user["id"])
        user = self.members.register_user(user)
        if with_profile_photo:
            self.members.add_profile_photo(user["id"])
        return user

    def create_chat(
        self,
        chat_type: str = "private",
        user: dict[str, Any] | None = None,
        title: str | None = None,
        username: str | None = None,
        is_forum: bool = False,
        bot_is_member: bool = True,
    ) -> ChatRecord:
        """
        Create a chat. Private chats belong to user; other chats get a
        fresh negative id and the bot as a plain member.
        """
        if chat_type == "private":
            if user is None:
                raise SimulationError("private chat needs a user")
            return self.private_chat(user)
        if chat_type not in ("group", "supergroup", "channel"):
            raise SimulationError(f"unknown chat type {chat_type}")

        chat: dict[str, Any] = {
            "id": self.sequencer.next_chat_id(chat_type),
            "type": chat_type,
            "title": title or f"Test {chat_type}",
            "is_forum": is_forum,
        }
        if username is not None:
            chat["username"] = username
        record = self.chats.get_or_create(chat)
        if is_forum and not record.is_forum:
            raise SimulationError("only supergroups can be forums")
        if bot_is_member:
            self.members.set_member(record.id, self.bot_user)
        if user is not None:
            self.members.set_owner(record.id, user)
        return record

    def private_chat(self, user: dict[str, Any]) -> ChatRecord:
        chat = {"id": user["id"], "type": "private", "first_name": user.get("first_name")}
        for key in ("last_name", "username"):
            if user.get(key):
                chat[key] = user[key]
        return self.chats.get_or_create(chat)

    def set_owner(self, chat_id: int, user: dict[str, Any]) -> None:
        self.members.set_owner(chat_id, user)

    def set_admin(
        self,
        chat_id: int,
        user: dict[str, Any],
        rights: ChatAdministratorRights | dict[str, Any] | None = None,
        custom_title: str | None = None,
    ) -> None:
        if isinstance(rights, dict):
            rights = ChatAdministratorRights.model_validate(rights)
        self.members.set_admin(chat_id, user, rights, custom_title)

    def set_member(self, chat_id: int, user: dict[str, Any]) -> None:
        self.members.set_member(chat_id, user)

    def set_bot_admin(
        self,
        chat_id: int,
        rights: ChatAdministratorRights | dict[str, Any] | None = None,
    ) -> None:
        """Make the bot an administrator; all rights unless given."""
        self.set_admin(chat_id, self.bot_user, rights or ChatAdministratorRights.full())

    def set_bot_member(self, chat_id: int) -> None:
        self.members.set_member(chat_id, self.bot_user)

    def lock_chat(self, chat_id: int) -> None:
        """Only administrators may send to a locked chat."""
        if not self.chats.lock(chat_id):
            raise SimulationError(f"chat {chat_id} does not exist")

    def unlock_chat(self, chat_id: int) -> None:
        if not self.chats.unlock(chat_id):
            raise SimulationError(f"chat {chat_id} does not exist")

    def _require_chat(self, chat_id: int) -> ChatRecord:
        record = self.chats.get(chat_id)
        if record is None:
            raise SimulationError(f"chat {chat_id} does not exist")
        return record

    def _ensure_member(self, chat: ChatRecord, user: dict[str, Any]) -> None:
        """A user who writes in a group is a member of it."""
        self.members.register_user(user)
        if chat.is_private:
            return
        status = self.members.get_status(chat.id, user["id"])
        if status == KICKED:
            raise SimulationError(f"user {user['id']} is banned in chat {chat.id}")
        if status == LEFT:
            self.members.set_member(chat.id, user)

    # =========================================================================
    # Messages
    # =========================================================================

    def _user_message(
        self,
        chat: ChatRecord,
        user: dict[str, Any],
        text: str | None = None,
        entities: list[dict[str, Any]] | None = None,
        caption: str | None = None,
        content: dict[str, Any] | None = None,
        reply_to_message_id: int | None = None,
        message_thread_id: int | None = None,
        business_connection_id: str | None = None,
    ) -> StoredMessage:
        self._ensure_member(chat, user)
        content = dict(content or {})
        from_user: dict[str, Any] | None = self.members.get_user(user["id"])
        if chat.type == "channel":
            # Channel posts are signed by the channel itself
            content["sender_chat"] = chat.to_dict()
            from_user = None
        message = StoredMessage(
            message_id=self.sequencer.next_message_id(),
            chat_id=chat.id,
            date=self.clock.now(),
            from_user=from_user,
            text=text,
            entities=entities,
            caption=caption,
            content=content,
            reply_to_message_id=reply_to_message_id,
            message_thread_id=message_thread_id,
            business_connection_id=business_connection_id,
        )
        return self.chats.store_message(message)

    def _message_update(self, message: StoredMessage) -> dict[str, Any]:
        rendered = self.chats.render(message)
        if message.business_connection_id is not None:
            return self.updates.business_message(rendered)
        return self.updates.message(rendered)

    def simulate_message(
        self,
        chat_id: int,
        user: dict[str, Any],
        text: str,
        parse_mode: str | None = None,
        entities: list[dict[str, Any]] | None = None,
        reply_to_message_id: int | None = None,
        message_thread_id: int | None = None,
    ) -> dict[str, Any]:
        """
        User sends a text message.

        Slash commands get their bot_command entity automatically; with
        parse_mode the text is parsed the way a client would send it.
        """
        chat = self._require_chat(chat_id)
        if parse_mode:
            parsed = parse_formatted_text(text, parse_mode)
            text, entities = parsed.text, parsed.entities or None
        elif entities is None:
            entities = command_entities(text)
        message = self._user_message(
            chat,
            user,
            text=text,
            entities=entities,
            reply_to_message_id=reply_to_message_id,
            message_thread_id=message_thread_id,
        )
        logger.debug("User %d sent message %d to chat %d", user["id"], message.message_id, chat.id)
        return self._message_update(message)

    def simulate_command(
        self,
        chat_id: int,
        user: dict[str, Any],
        command: str,
        args: str | None = None,
    ) -> dict[str, Any]:
        text = "/" + command.lstrip("/")
        if args:
            text = f"{text} {args}"
        return self.simulate_message(chat_id, user, text)

    def simulate_edited_message(self, chat_id: int, message_id: int, text: str) -> dict[str, Any]:
        """User edits one of their own earlier messages."""
        chat = self._require_chat(chat_id)
        message = self.chats.get_message(chat.id, message_id)
        if message is None or message.is_bot:
            raise SimulationError(f"no user message {message_id} in chat {chat_id}")
        edited = self.chats.edit_message(chat.id, message_id, text=text, entities=command_entities(text))
        return self.updates.message(self.chats.render(edited), edited=True)

    def simulate_media(
        self,
        chat_id: int,
        user: dict[str, Any],
        kind: str,
        content: bytes | None = None,
        caption: str | None = None,
        **attributes: Any,
    ) -> dict[str, Any]:
        """User sends a photo, document, video, audio, voice or video note."""
        chat = self._require_chat(chat_id)
        if kind == "photo":
            media: Any = self.files.store_photo(
                width=attributes.get("width", 1280),
                height=attributes.get("height", 720),
                content=content,
            )
        else:
            stored = self.files.store_file(kind, content=content, **attributes)
            media = self.files.to_media(stored)
        message = self._user_message(chat, user, caption=caption, content={kind: media})
        return self._message_update(message)

    def simulate_photo(
        self,
        chat_id: int,
        user: dict[str, Any],
        caption: str | None = None,
        width: int = 1280,
        height: int = 720,
    ) -> dict[str, Any]:
        return self.simulate_media(chat_id, user, "photo", caption=caption, width=width, height=height)

    def simulate_document(
        self,
        chat_id: int,
        user: dict[str, Any],
        file_name: str = "document.pdf",
        content: bytes = b"%PDF-1.4 test",
        mime_type: str = "application/pdf",
        caption: str | None = None,
    ) -> dict[str, Any]:
        return self.simulate_media(
            chat_id,
            user,
            "document",
            content=content,
            caption=caption,
            file_name=file_name,
            mime_type=mime_type,
        )

    def simulate_contact(
        self,
        chat_id: int,
        user: dict[str, Any],
        phone_number: str,
        first_name: str | None = None,
    ) -> dict[str, Any]:
        """User shares a contact; defaults to their own."""
        contact = {
            "phone_number": phone_number,
            "first_name": first_name or user["first_name"],
            "user_id": user["id"],
        }
        message = self._user_message(self._require_chat(chat_id), user, content={"contact": contact})
        return self._message_update(message)

    def simulate_location(
        self,
        chat_id: int,
        user: dict[str, Any],
        latitude: float,
        longitude: float,
    ) -> dict[str, Any]:
        location = {"latitude": latitude, "longitude": longitude}
        message = self._user_message(self._require_chat(chat_id), user, content={"location": location})
        return self._message_update(message)

    def simulate_venue(
        self,
        chat_id: int,
        user: dict[str, Any],
        latitude: float,
        longitude: float,
        title: str,
        address: str,
    ) -> dict[str, Any]:
        location = {"latitude": latitude, "longitude": longitude}
        venue = {"location": location, "title": title, "address": address}
        message = self._user_message(
            self._require_chat(chat_id),
            user,
            content={"venue": venue, "location": location},
        )
        return self._message_update(message)

    def simulate_web_app_data(self, user: dict[str, Any], data: str, button_text: str) -> dict[str, Any]:
        """Data sent from a Web App opened through a keyboard button."""
        chat = self.private_chat(user)
        message = self._user_message(
            chat,
            user,
            content={"web_app_data": {"data": data, "button_text": button_text}},
        )
        return self._message_update(message)

    # =========================================================================
    # Queries
    # =========================================================================

    def _bot_message(self, chat_id: int, message_id: int | None) -> StoredMessage:
        if message_id is None:
            message = self.chats.get_last_bot_message(chat_id)
            if message is None:
                raise NoMessagesError("No bot messages in chat to click button on")
            return message
        message = self.chats.get_message(chat_id, message_id)
        if message is None:
            raise NoMessagesError(f"Message {message_id} not found")
        return message

    def simulate_callback(
        self,
        chat_id: int,
        user: dict[str, Any],
        data: str,
        message_id: int | None = None,
    ) -> dict[str, Any]:
        """User presses an inline button; defaults to the latest bot message."""
        message = self._bot_message(chat_id, message_id)
        query_id = self.sequencer.next_callback_query_id()
        self.members.register_user(user)
        self.queries.register(
            query_id,
            CALLBACK,
            user["id"],
            self.clock.now(),
            {"data": data, "chat_id": chat_id, "message_id": message.message_id},
        )
        return self.updates.callback_query(query_id, user, data, message=self.chats.render(message))

    def simulate_button_click(
        self,
        chat_id: int,
        user: dict[str, Any],
        button_text: str,
    ) -> dict[str, Any]:
        """Press the button labelled button_text on the newest message that has it."""
        message = self.chats.find_message_with_button(chat_id, button_text)
        if message is None:
            raise ButtonNotFoundError(f"No button with text '{button_text}' found in chat")
        data = message.get_button_callback_data(button_text)
        if data is None:
            raise ButtonNotFoundError(f"Button '{button_text}' found but has no callback_data")
        return self.simulate_callback(chat_id, user, data, message.message_id)

    def simulate_inline_query(
        self,
        user: dict[str, Any],
        query: str,
        offset: str = "",
        chat_type: str | None = None,
    ) -> dict[str, Any]:
        query_id = self.sequencer.next_inline_query_id()
        self.members.register_user(user)
        self.queries.register(query_id, INLINE, user["id"], self.clock.now(), {"query": query})
        return self.updates.inline_query(query_id, user, query, offset, chat_type)

    def simulate_chosen_inline_result(
        self,
        user: dict[str, Any],
        result_id: str,
        query: str,
        inline_message_id: str | None = None,
    ) -> dict[str, Any]:
        return self.updates.chosen_inline_result(result_id, user, query, inline_message_id)

    # =========================================================================
    # Polls and reactions
    # =========================================================================

    def simulate_poll_answer(
        self,
        poll_id: str,
        user: dict[str, Any],
        option_ids: list[int],
    ) -> dict[str, Any] | None:
        """
        User votes. Returns None when the vote is not accepted (closed poll
        or invalid options), as the platform sends nothing then.

        Anonymous polls report the new tally as a poll update; public ones
        report who voted as a poll_answer update.
        """
        if self.polls.get_poll(poll_id) is None:
            raise SimulationError(f"poll {poll_id} does not exist")
        poll = self.polls.vote(poll_id, user["id"], option_ids)
        if poll is None:
            logger.debug("Vote of user %d in poll %s rejected", user["id"], poll_id)
            return None

        message = self.chats.get_message(poll.chat_id, poll.message_id)
        if message is not None:
            message.content = {"poll": poll.to_dict()}
        if poll.is_anonymous:
            return self.updates.poll(poll.to_dict())
        return self.updates.poll_answer(poll_id, self.members.register_user(user), option_ids)

    def simulate_reaction(
        self,
        chat_id: int,
        message_id: int,
        user: dict[str, Any],
        emojis: list[str],
    ) -> dict[str, Any]:
        """User replaces their reactions on a message; an empty list clears them."""
        chat = self._require_chat(chat_id)
        if self.chats.get_message(chat.id, message_id) is None:
            raise SimulationError(f"message {message_id} not found in chat {chat_id}")
        key = (chat.id, message_id, user["id"])
        old = self._reactions.get(key, [])
        if emojis:
            self._reactions[key] = list(emojis)
        else:
            self._reactions.pop(key, None)
        return self.updates.message_reaction(
            chat.to_dict(),
            message_id,
            emoji_reactions(old),
            emoji_reactions(emojis),
            user=user,
        )

    def simulate_reaction_count(self, chat_id: int, message_id: int) -> dict[str, Any]:
        """Anonymous reaction totals of a message, from simulated reactions."""
        chat = self._require_chat(chat_id)
        counts: dict[str, int] = {}
        for (reaction_chat_id, reaction_message_id, _), emojis in self._reactions.items():
            if (reaction_chat_id, reaction_message_id) != (chat.id, message_id):
                continue
            for emoji in emojis:
                counts[emoji] = counts.get(emoji, 0) + 1
        return self.updates.message_reaction_count(chat.to_dict(), message_id, counts)

    # =========================================================================
    # Membership
    # =========================================================================

    def _member_update(
        self,
        chat: ChatRecord,
        actor: dict[str, Any],
        user: dict[str, Any],
        old_member: dict[str, Any],
        invite_link: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        new_member = self.members.to_chat_member(self.members.get_member(chat.id, user["id"]), user)
        return self.updates.chat_member(
            chat.to_dict(),
            actor,
            old_member,
            new_member,
            invite_link=invite_link,
            my_chat_member=user["id"] == self.bot_id,
        )

    def join_via_link(self, chat_id: int, user: dict[str, Any], invite_link: str) -> dict[str, Any]:
        """
        User opens an invite link.

        Links that create join requests yield a chat_join_request update;
        other valid links make the user a member and yield chat_member.
        """
        chat = self._require_chat(chat_id)
        link = self.chats.get_invite_link(chat.id, invite_link)
        if link is None:
            raise NotFoundError(bad_request("invite link expired or invalid"))
        reason = link.invalid_reason(self.clock.now())
        if reason is not None:
            raise ValidationError(bad_request(reason))
        status = self.members.get_status(chat.id, user["id"])
        if status == KICKED:
            raise PermissionDeniedError(bad_request("USER_BANNED_IN_CHANNEL"))
        if status != LEFT:
            raise ValidationError(bad_request("USER_ALREADY_PARTICIPANT"))
        user = self.members.register_user(user)

        if link.creates_join_request:
            self.chats.add_join_request(chat.id, invite_link, user)
            logger.debug("User %d requested to join chat %d", user["id"], chat.id)
            return self.updates.chat_join_request(chat.to_dict(), user, link.to_dict())

        old_member = self.members.to_chat_member(None, user)
        self.chats.use_invite_link(chat.id, invite_link, user["id"])
        self.members.set_member(chat.id, user)
        logger.debug("User %d joined chat %d via %s", user["id"], chat.id, invite_link)
        return self._member_update(chat, user, user, old_member, link.to_dict())

    def request_join(
        self,
        chat_id: int,
        user: dict[str, Any],
        invite_link: str,
    ) -> dict[str, Any]:
        """Join request through a link that requires admin approval."""
        link = self.chats.get_invite_link(chat_id, invite_link)
        if link is not None and not link.creates_join_request:
            raise SimulationError(f"{invite_link} does not create join requests")
        return self.join_via_link(chat_id, user, invite_link)

    def simulate_member_left(self, chat_id: int, user: dict[str, Any]) -> dict[str, Any]:
        chat = self._require_chat(chat_id)
        member = self.members.get_member(chat.id, user["id"])
        if member is None or not member.is_present:
            raise SimulationError(f"user {user['id']} is not in chat {chat_id}")
        old_member = self.members.to_chat_member(member, user)
        self.members.leave(chat.id, user["id"])
        return self._member_update(chat, user, user, old_member)

    def simulate_bot_added(
        self,
        chat_id: int,
        by_user: dict[str, Any],
        rights: ChatAdministratorRights | dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Someone adds the bot to a chat, as an administrator when rights are given."""
        chat = self._require_chat(chat_id)
        old_member = self.members.to_chat_member(self.members.get_member(chat.id, self.bot_id), self.bot_user)
        if rights is not None:
            self.set_bot_admin(chat.id, rights)
        else:
            self.set_bot_member(chat.id)
        return self._member_update(chat, by_user, self.bot_user, old_member)

    # =========================================================================
    # Boosts
    # =========================================================================

    def simulate_boost(self, chat_id: int, user: dict[str, Any]) -> dict[str, Any]:
        chat = self._require_chat(chat_id)
        boost = self.chats.add_boost(chat.id, {"source": "premium", "user": user})
        return self.updates.chat_boost(chat.to_dict(), boost.to_dict())

    def simulate_removed_boost(self, chat_id: int, boost_id: str) -> dict[str, Any]:
        chat = self._require_chat(chat_id)
        boost = self.chats.remove_boost(chat.id, boost_id)
        if boost is None:
            raise SimulationError(f"boost {boost_id} not found in chat {chat_id}")
        return self.updates.removed_chat_boost(chat.to_dict(), boost_id, boost.source)

    # =========================================================================
    # Business and passport
    # =========================================================================

    def simulate_business_connection(
        self,
        user: dict[str, Any],
        can_reply: bool = True,
        is_enabled: bool = True,
    ) -> dict[str, Any]:
        """A business account connects the bot."""
        user = self.members.register_user(user)
        self.private_chat(user)
        connection = self.business.create_connection(user, user["id"], can_reply, is_enabled)
        return self.updates.business_connection(connection.to_dict())

    def simulate_business_message(
        self,
        connection_id: str,
        customer: dict[str, Any],
        text: str,
    ) -> dict[str, Any]:
        """A customer writes to the connected business account."""
        connection = self.business.get_connection(connection_id)
        if connection is None:
            raise SimulationError(f"business connection {connection_id} does not exist")
        chat = self.private_chat(customer)
        message = self._user_message(
            chat,
            customer,
            text=text,
            entities=command_entities(text),
            business_connection_id=connection_id,
        )
        self.business.track_message(connection_id, message.message_id, chat.id)
        return self._message_update(message)

    def simulate_passport_data(
        self,
        user: dict[str, Any],
        data: list[dict[str, Any]],
        credentials: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        stored = self.passport.set_passport_data(user["id"], data, credentials)
        message = self._user_message(
            self.private_chat(user),
            user,
            content={"passport_data": stored.to_dict()},
        )
        return self._message_update(message)

    # =========================================================================
    # Payments
    # =========================================================================

    def simulate_pre_checkout(
        self,
        user: dict[str, Any],
        currency: str,
        total_amount: int,
        invoice_payload: str,
    ) -> dict[str, Any]:
        user = self.members.register_user(user)
        query = self.payments.open_query(PRE_CHECKOUT, user, invoice_payload, currency, total_amount)
        return self.updates.pre_checkout_query(query.id, user, currency, total_amount, invoice_payload)

    def simulate_shipping_query(
        self,
        user: dict[str, Any],
        invoice_payload: str,
        shipping_address: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        user = self.members.register_user(user)
        query = self.payments.open_query(SHIPPING, user, invoice_payload)
        return self.updates.shipping_query(
            query.id,
            user,
            invoice_payload,
            shipping_address or DEFAULT_SHIPPING_ADDRESS,
        )

    def simulate_successful_payment(
        self,
        user: dict[str, Any],
        currency: str,
        total_amount: int,
        invoice_payload: str,
    ) -> dict[str, Any]:
        """Payment service message; Stars payments are recorded as transactions."""
        chat = self.private_chat(user)
        if currency == STARS_CURRENCY:
            transaction = self.payments.create_transaction(
                self.members.register_user(user),
                total_amount,
                invoice_payload,
            )
            charge_id = transaction.telegram_payment_charge_id
        else:
            charge_id = f"charge_{self.sequencer.message_id}"
        payment = {
            "currency": currency,
            "total_amount": total_amount,
            "invoice_payload": invoice_payload,
            "telegram_payment_charge_id": charge_id,
            "provider_payment_charge_id": f"provider_{charge_id}",
        }
        message = self._user_message(chat, user, content={"successful_payment": payment})
        return self._message_update(message)
