"""
Stateful chat storage for the simulated Bot API.

Maintains every chat the way Telegram does: its message log, pins, invite
links, forum topics, boosts and chat-level settings. Chats are created on
first reference and live until an explicit reset.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from tgsim.clock import Clock
from tgsim.permissions import ChatPermissions

logger = logging.getLogger("tgsim.chat_state")

GENERAL_TOPIC_ID = 1
DEFAULT_TOPIC_COLOR = 0x6FB9F0
VALID_SLOW_MODE_DELAYS = (0, 10, 30, 60, 300, 900, 3600)
BOOST_DURATION = 30 * 24 * 60 * 60

GROUP_CHAT_TYPES = ("group", "supergroup")


@dataclass
class StoredMessage:
    """Message stored in chat state."""

    message_id: int
    chat_id: int
    date: int
    from_user: dict[str, Any] | None = None
    text: str | None = None
    entities: list[dict[str, Any]] | None = None
    caption: str | None = None
    caption_entities: list[dict[str, Any]] | None = None
    reply_markup: dict[str, Any] | None = None
    message_thread_id: int | None = None
    reply_to_message_id: int | None = None
    business_connection_id: str | None = None
    # Kind-specific payload: photo, document, poll, location, ...
    content: dict[str, Any] = field(default_factory=dict)
    edit_date: int | None = None
    is_pinned: bool = False
    is_deleted: bool = False
    reactions: list[dict[str, Any]] = field(default_factory=list)

    @property
    def from_user_id(self) -> int | None:
        return self.from_user["id"] if self.from_user else None

    @property
    def is_bot(self) -> bool:
        return bool(self.from_user and self.from_user.get("is_bot"))

    def has_inline_keyboard(self) -> bool:
        """Check if message has inline keyboard."""
        if self.reply_markup is None:
            return False
        return "inline_keyboard" in self.reply_markup

    def get_button_callback_data(self, button_text: str) -> str | None:
        """Find callback_data for button with given text."""
        if not self.has_inline_keyboard():
            return None

        for row in self.reply_markup.get("inline_keyboard", []):
            for button in row:
                if button_text in button.get("text", ""):
                    return button.get("callback_data")
        return None

    def to_dict(self, chat: dict[str, Any]) -> dict[str, Any]:
        """Wire representation as the Bot API returns it."""
        message: dict[str, Any] = {
            "message_id": self.message_id,
            "date": self.date,
            "chat": chat,
        }
        if self.from_user is not None:
            message["from"] = self.from_user
        if self.message_thread_id is not None:
            message["message_thread_id"] = self.message_thread_id
            if chat.get("is_forum"):
                message["is_topic_message"] = True
        if self.business_connection_id is not None:
            message["business_connection_id"] = self.business_connection_id
        if self.reply_to_message_id is not None:
            message["reply_to_message"] = {
                "message_id": self.reply_to_message_id,
                "date": self.date,
                "chat": chat,
            }
        if self.edit_date is not None:
            message["edit_date"] = self.edit_date
        if self.text is not None:
            message["text"] = self.text
        if self.entities:
            message["entities"] = self.entities
        message.update(self.content)
        if self.caption is not None:
            message["caption"] = self.caption
        if self.caption_entities:
            message["caption_entities"] = self.caption_entities
        # ReplyKeyboardMarkup is never echoed back by the API
        if self.has_inline_keyboard():
            message["reply_markup"] = self.reply_markup
        return message


@dataclass
class ForumTopic:
    """Forum topic stored in chat state."""

    message_thread_id: int
    chat_id: int
    name: str
    icon_color: int = DEFAULT_TOPIC_COLOR
    icon_custom_emoji_id: str | None = None
    is_closed: bool = False
    is_general: bool = False

    def to_dict(self) -> dict[str, Any]:
        topic: dict[str, Any] = {
            "message_thread_id": self.message_thread_id,
            "name": self.name,
            "icon_color": self.icon_color,
        }
        if self.icon_custom_emoji_id:
            topic["icon_custom_emoji_id"] = self.icon_custom_emoji_id
        return topic


@dataclass
class InviteLink:
    """Invite link with its usage accounting."""

    invite_link: str
    creator: dict[str, Any]
    creates_join_request: bool = False
    is_primary: bool = False
    is_revoked: bool = False
    name: str | None = None
    expire_date: int | None = None
    member_limit: int | None = None
    subscription_period: int | None = None
    subscription_price: int | None = None
    usage_count: int = 0
    joined_user_ids: set[int] = field(default_factory=set)
    # user_id -> user dict, in arrival order
    pending_requests: dict[int, dict[str, Any]] = field(default_factory=dict)

    def invalid_reason(self, now: int) -> str | None:
        """Why the link cannot be used right now, or None if it can."""
        if self.is_revoked:
            return "invite link revoked"
        if self.expire_date and self.expire_date <= now:
            return "invite link expired or invalid"
        if self.member_limit and self.usage_count >= self.member_limit:
            return "invite link member limit reached"
        return None

    def is_valid(self, now: int) -> bool:
        return self.invalid_reason(now) is None

    def to_dict(self) -> dict[str, Any]:
        link: dict[str, Any] = {
            "invite_link": self.invite_link,
            "creator": self.creator,
            "creates_join_request": self.creates_join_request,
            "is_primary": self.is_primary,
            "is_revoked": self.is_revoked,
        }
        optional = {
            "name": self.name,
            "expire_date": self.expire_date,
            "member_limit": self.member_limit,
            "subscription_period": self.subscription_period,
            "subscription_price": self.subscription_price,
        }
        link.update({k: v for k, v in optional.items() if v is not None})
        if self.creates_join_request:
            link["pending_join_request_count"] = len(self.pending_requests)
        return link


@dataclass
class ChatBoost:
    boost_id: str
    add_date: int
    expiration_date: int
    source: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "boost_id": self.boost_id,
            "add_date": self.add_date,
            "expiration_date": self.expiration_date,
            "source": self.source,
        }


@dataclass
class ChatRecord:
    """Everything the server knows about one chat."""

    id: int
    type: str
    title: str | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    description: str | None = None
    photo_file_id: str | None = None
    permissions: ChatPermissions = field(default_factory=ChatPermissions)
    slow_mode_delay: int = 0
    is_forum: bool = False
    is_locked: bool = False
    general_topic_hidden: bool = False
    # message_id -> StoredMessage, insertion ordered
    messages: dict[int, StoredMessage] = field(default_factory=dict)
    # Latest pin last
    pinned_message_ids: list[int] = field(default_factory=list)
    invite_links: dict[str, InviteLink] = field(default_factory=dict)
    primary_invite_link: str | None = None
    forum_topics: dict[int, ForumTopic] = field(default_factory=dict)
    boosts: dict[str, ChatBoost] = field(default_factory=dict)
    available_reactions: list[dict[str, Any]] | None = None

    @property
    def is_private(self) -> bool:
        return self.type == "private"

    @property
    def is_group_like(self) -> bool:
        return self.type in GROUP_CHAT_TYPES

    @property
    def has_photo(self) -> bool:
        return self.photo_file_id is not None

    def to_dict(self) -> dict[str, Any]:
        """Short Chat object embedded in messages and updates."""
        chat: dict[str, Any] = {"id": self.id, "type": self.type}
        for key in ("title", "username", "first_name", "last_name"):
            value = getattr(self, key)
            if value is not None:
                chat[key] = value
        if self.is_forum:
            chat["is_forum"] = True
        return chat


class ChatState:
    """
    Maintains chats like real Telegram.

    Stores all messages sent in chats, tracks edits, deletions, pins,
    invite links, forum topics and boosts. Provides query methods for
    testing assertions.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._chats: dict[int, ChatRecord] = {}
        self._invite_link_counter = 1
        self._topic_id_counter = GENERAL_TOPIC_ID
        self._boost_counter = 1

    # =========================================================================
    # Chats
    # =========================================================================

    def get_or_create(self, chat: dict[str, Any]) -> ChatRecord:
        """Register a chat from its wire form on first reference."""
        record = self._chats.get(chat["id"])
        if record is None:
            chat_type = chat.get("type", "private")
            record = ChatRecord(
                id=chat["id"],
                type=chat_type,
                title=chat.get("title"),
                username=chat.get("username"),
                first_name=chat.get("first_name"),
                last_name=chat.get("last_name"),
                permissions=ChatPermissions.default_for(chat_type),
            )
            self._chats[record.id] = record
            logger.debug("Created %s chat %d", chat_type, record.id)
            if chat.get("is_forum"):
                self.enable_forum(record.id)
        return record

    def get(self, chat_id: int) -> ChatRecord | None:
        return self._chats.get(chat_id)

    def has(self, chat_id: int) -> bool:
        return chat_id in self._chats

    def all_chats(self) -> list[ChatRecord]:
        return list(self._chats.values())

    def set_permissions(self, chat_id: int, permissions: ChatPermissions) -> bool:
        record = self._chats.get(chat_id)
        if record is None:
            return False
        record.permissions = record.permissions.merged(permissions)
        return True

    def set_slow_mode_delay(self, chat_id: int, delay: int) -> bool:
        """Set slow mode; only the platform's fixed delays are accepted."""
        record = self._chats.get(chat_id)
        if record is None or delay not in VALID_SLOW_MODE_DELAYS:
            return False
        record.slow_mode_delay = delay
        logger.debug("Slow mode in chat %d set to %ds", chat_id, delay)
        return True

    def lock(self, chat_id: int) -> bool:
        record = self._chats.get(chat_id)
        if record is None:
            return False
        record.is_locked = True
        record.permissions = record.permissions.model_copy(update={"can_send_messages": False})
        return True

    def unlock(self, chat_id: int) -> bool:
        record = self._chats.get(chat_id)
        if record is None:
            return False
        record.is_locked = False
        record.permissions = record.permissions.model_copy(update={"can_send_messages": True})
        return True

    # =========================================================================
    # Messages
    # =========================================================================

    def store_message(self, message: StoredMessage) -> StoredMessage:
        """Append a message to its chat's log."""
        record = self._chats.get(message.chat_id)
        if record is None:
            raise KeyError(f"chat {message.chat_id} is not registered")
        if message.message_id in record.messages:
            logger.error(
                "Duplicate message_id %d in chat %d - this should not happen",
                message.message_id,
                message.chat_id,
            )
        record.messages[message.message_id] = message
        logger.debug(
            "Added message %d to chat %d: %s",
            message.message_id,
            message.chat_id,
            message.text[:50] if message.text else "(no text)",
        )
        return message

    def get_message(
        self,
        chat_id: int,
        message_id: int,
        include_deleted: bool = False,
    ) -> StoredMessage | None:
        """Get message by ID."""
        record = self._chats.get(chat_id)
        if record is None:
            return None
        message = record.messages.get(message_id)
        if message is None or (message.is_deleted and not include_deleted):
            return None
        return message

    def edit_message(
        self,
        chat_id: int,
        message_id: int,
        **changes: Any,
    ) -> StoredMessage | None:
        """Apply overlay changes (text, caption, markup, content) to a message."""
        message = self.get_message(chat_id, message_id)
        if message is None:
            logger.warning(
                "Cannot edit message %d in chat %d - not found",
                message_id,
                chat_id,
            )
            return None

        content = changes.pop("content", None)
        if content is not None:
            message.content = content
        for key, value in changes.items():
            setattr(message, key, value)
        message.edit_date = self._clock.now()

        logger.debug("Edited message %d in chat %d: %s", message_id, chat_id, sorted(changes))
        return message

    def delete_message(self, chat_id: int, message_id: int) -> bool:
        """Mark message as deleted and drop any pin on it."""
        message = self.get_message(chat_id, message_id)
        if message is None:
            logger.warning(
                "Cannot delete message %d in chat %d - not found",
                message_id,
                chat_id,
            )
            return False

        message.is_deleted = True
        self.unpin_message(chat_id, message_id)
        logger.debug("Deleted message %d in chat %d", message_id, chat_id)
        return True

    def get_conversation(
        self,
        chat_id: int,
        include_deleted: bool = False,
    ) -> list[StoredMessage]:
        """Get all messages in chat in the order they were sent."""
        record = self._chats.get(chat_id)
        if record is None:
            return []
        messages = list(record.messages.values())
        if not include_deleted:
            messages = [m for m in messages if not m.is_deleted]
        return messages

    def get_thread_messages(
        self,
        chat_id: int,
        message_thread_id: int,
        include_deleted: bool = False,
    ) -> list[StoredMessage]:
        """Get all messages in a specific forum topic thread."""
        conversation = self.get_conversation(chat_id, include_deleted)
        return [m for m in conversation if m.message_thread_id == message_thread_id]

    def get_bot_messages(self, chat_id: int) -> list[StoredMessage]:
        return [m for m in self.get_conversation(chat_id) if m.is_bot]

    def get_user_messages(self, chat_id: int, user_id: int | None = None) -> list[StoredMessage]:
        """Messages sent by people, optionally by one user."""
        messages = [m for m in self.get_conversation(chat_id) if not m.is_bot]
        if user_id is not None:
            messages = [m for m in messages if m.from_user_id == user_id]
        return messages

    def find_message_with_button(
        self,
        chat_id: int,
        button_text: str,
    ) -> StoredMessage | None:
        """Find the most recent bot message containing a button with given text."""
        for message in reversed(self.get_bot_messages(chat_id)):
            if message.get_button_callback_data(button_text) is not None:
                return message
        return None

    def get_last_bot_message(self, chat_id: int) -> StoredMessage | None:
        bot_messages = self.get_bot_messages(chat_id)
        return bot_messages[-1] if bot_messages else None

    def render(self, message: StoredMessage) -> dict[str, Any]:
        """Wire form of a stored message with the chat's current header."""
        record = self._chats[message.chat_id]
        return message.to_dict(record.to_dict())

    # =========================================================================
    # Pins
    # =========================================================================

    def pin_message(self, chat_id: int, message_id: int) -> bool:
        message = self.get_message(chat_id, message_id)
        if message is None:
            return False
        record = self._chats[chat_id]
        if message_id in record.pinned_message_ids:
            record.pinned_message_ids.remove(message_id)
        record.pinned_message_ids.append(message_id)
        message.is_pinned = True
        logger.debug("Pinned message %d in chat %d", message_id, chat_id)
        return True

    def unpin_message(self, chat_id: int, message_id: int | None = None) -> bool:
        """Unpin one message, or the most recent pin when no id is given."""
        record = self._chats.get(chat_id)
        if record is None or not record.pinned_message_ids:
            return False
        if message_id is None:
            message_id = record.pinned_message_ids[-1]
        if message_id not in record.pinned_message_ids:
            return False
        record.pinned_message_ids.remove(message_id)
        message = record.messages.get(message_id)
        if message is not None:
            message.is_pinned = False
        return True

    def unpin_all(self, chat_id: int, message_thread_id: int | None = None) -> int:
        """Unpin everything, or only messages of one topic. Returns the count."""
        record = self._chats.get(chat_id)
        if record is None:
            return 0
        unpinned = 0
        for message_id in list(record.pinned_message_ids):
            message = record.messages.get(message_id)
            if message_thread_id is not None and (
                message is None or message.message_thread_id != message_thread_id
            ):
                continue
            self.unpin_message(chat_id, message_id)
            unpinned += 1
        return unpinned

    def get_pinned_message(self, chat_id: int) -> StoredMessage | None:
        """The most recently pinned message."""
        record = self._chats.get(chat_id)
        if record is None or not record.pinned_message_ids:
            return None
        return record.messages.get(record.pinned_message_ids[-1])

    # =========================================================================
    # Invite links
    # =========================================================================

    def create_invite_link(
        self,
        chat_id: int,
        creator: dict[str, Any],
        name: str | None = None,
        expire_date: int | None = None,
        member_limit: int | None = None,
        creates_join_request: bool = False,
        subscription_period: int | None = None,
        subscription_price: int | None = None,
    ) -> InviteLink | None:
        record = self._chats.get(chat_id)
        if record is None:
            return None
        url = f"https://t.me/+test_invite_{self._invite_link_counter}"
        self._invite_link_counter += 1
        link = InviteLink(
            invite_link=url,
            creator=creator,
            name=name,
            expire_date=expire_date,
            member_limit=member_limit,
            creates_join_request=creates_join_request,
            subscription_period=subscription_period,
            subscription_price=subscription_price,
        )
        record.invite_links[url] = link
        logger.debug("Created invite link %s in chat %d", url, chat_id)
        return link

    def edit_invite_link(self, chat_id: int, invite_link: str, **changes: Any) -> InviteLink | None:
        link = self.get_invite_link(chat_id, invite_link)
        if link is None or link.is_revoked:
            return None
        for key, value in changes.items():
            setattr(link, key, value)
        return link

    def revoke_invite_link(self, chat_id: int, invite_link: str) -> InviteLink | None:
        link = self.get_invite_link(chat_id, invite_link)
        if link is None:
            return None
        link.is_revoked = True
        record = self._chats[chat_id]
        if record.primary_invite_link == invite_link:
            record.primary_invite_link = None
        logger.debug("Revoked invite link %s in chat %d", invite_link, chat_id)
        return link

    def export_invite_link(self, chat_id: int, creator: dict[str, Any]) -> InviteLink | None:
        """Generate a new primary link, revoking the previous primary one."""
        record = self._chats.get(chat_id)
        if record is None:
            return None
        if record.primary_invite_link is not None:
            self.revoke_invite_link(chat_id, record.primary_invite_link)
        link = self.create_invite_link(chat_id, creator)
        link.is_primary = True
        record.primary_invite_link = link.invite_link
        return link

    def get_invite_link(self, chat_id: int, invite_link: str) -> InviteLink | None:
        record = self._chats.get(chat_id)
        if record is None:
            return None
        return record.invite_links.get(invite_link)

    def get_invite_links(self, chat_id: int) -> list[InviteLink]:
        record = self._chats.get(chat_id)
        return list(record.invite_links.values()) if record else []

    def use_invite_link(self, chat_id: int, invite_link: str, user_id: int) -> bool:
        """Count one join through the link if it is still valid."""
        link = self.get_invite_link(chat_id, invite_link)
        if link is None or not link.is_valid(self._clock.now()):
            return False
        link.usage_count += 1
        link.joined_user_ids.add(user_id)
        return True

    def add_join_request(self, chat_id: int, invite_link: str, user: dict[str, Any]) -> bool:
        link = self.get_invite_link(chat_id, invite_link)
        if link is None or link.is_revoked or not link.creates_join_request:
            return False
        link.pending_requests[user["id"]] = user
        return True

    def find_join_request(self, chat_id: int, user_id: int) -> InviteLink | None:
        """The link a pending join request from user_id came through."""
        for link in self.get_invite_links(chat_id):
            if user_id in link.pending_requests:
                return link
        return None

    def remove_join_request(self, chat_id: int, user_id: int) -> dict[str, Any] | None:
        """Drop a pending request; returns the requesting user."""
        link = self.find_join_request(chat_id, user_id)
        if link is None:
            return None
        return link.pending_requests.pop(user_id)

    # =========================================================================
    # Forum Topics
    # =========================================================================

    def enable_forum(self, chat_id: int) -> bool:
        """Turn a supergroup into a forum with its General topic."""
        record = self._chats.get(chat_id)
        if record is None or record.type != "supergroup":
            return False
        record.is_forum = True
        if GENERAL_TOPIC_ID not in record.forum_topics:
            record.forum_topics[GENERAL_TOPIC_ID] = ForumTopic(
                message_thread_id=GENERAL_TOPIC_ID,
                chat_id=chat_id,
                name="General",
                is_general=True,
            )
        return True

    def create_forum_topic(
        self,
        chat_id: int,
        name: str,
        icon_color: int | None = None,
        icon_custom_emoji_id: str | None = None,
    ) -> ForumTopic | None:
        """Create a forum topic in a chat."""
        record = self._chats.get(chat_id)
        if record is None or not record.is_forum:
            return None

        self._topic_id_counter += 1
        topic = ForumTopic(
            message_thread_id=self._topic_id_counter,
            chat_id=chat_id,
            name=name,
            icon_color=icon_color if icon_color is not None else DEFAULT_TOPIC_COLOR,
            icon_custom_emoji_id=icon_custom_emoji_id,
        )
        record.forum_topics[topic.message_thread_id] = topic
        logger.debug(
            "Created forum topic %d in chat %d: %s",
            topic.message_thread_id,
            chat_id,
            name,
        )
        return topic

    def get_forum_topic(self, chat_id: int, message_thread_id: int) -> ForumTopic | None:
        record = self._chats.get(chat_id)
        if record is None:
            return None
        return record.forum_topics.get(message_thread_id)

    def get_forum_topics(self, chat_id: int) -> list[ForumTopic]:
        record = self._chats.get(chat_id)
        return list(record.forum_topics.values()) if record else []

    def edit_forum_topic(
        self,
        chat_id: int,
        message_thread_id: int,
        name: str | None = None,
        icon_custom_emoji_id: str | None = None,
    ) -> bool:
        topic = self.get_forum_topic(chat_id, message_thread_id)
        if topic is None:
            return False
        if name is not None:
            topic.name = name
        if icon_custom_emoji_id is not None:
            topic.icon_custom_emoji_id = icon_custom_emoji_id or None
        logger.debug(
            "Edited forum topic %d in chat %d: name=%s, icon=%s",
            message_thread_id,
            chat_id,
            name,
            icon_custom_emoji_id,
        )
        return True

    def set_forum_topic_closed(self, chat_id: int, message_thread_id: int, closed: bool) -> bool:
        topic = self.get_forum_topic(chat_id, message_thread_id)
        if topic is None:
            return False
        topic.is_closed = closed
        logger.debug(
            "%s forum topic %d in chat %d",
            "Closed" if closed else "Reopened",
            message_thread_id,
            chat_id,
        )
        return True

    def delete_forum_topic(self, chat_id: int, message_thread_id: int) -> bool:
        """Delete a topic and its messages. The General topic stays."""
        record = self._chats.get(chat_id)
        if record is None or message_thread_id == GENERAL_TOPIC_ID:
            return False
        if record.forum_topics.pop(message_thread_id, None) is None:
            return False
        for message in self.get_thread_messages(chat_id, message_thread_id):
            self.delete_message(chat_id, message.message_id)
        return True

    def set_general_topic_hidden(self, chat_id: int, hidden: bool) -> bool:
        record = self._chats.get(chat_id)
        if record is None or not record.is_forum:
            return False
        record.general_topic_hidden = hidden
        if hidden:
            # Hiding also closes the General topic
            record.forum_topics[GENERAL_TOPIC_ID].is_closed = True
        return True

    # =========================================================================
    # Boosts
    # =========================================================================

    def add_boost(self, chat_id: int, source: dict[str, Any]) -> ChatBoost | None:
        record = self._chats.get(chat_id)
        if record is None:
            return None
        now = self._clock.now()
        boost = ChatBoost(
            boost_id=f"boost_{self._boost_counter}",
            add_date=now,
            expiration_date=now + BOOST_DURATION,
            source=source,
        )
        self._boost_counter += 1
        record.boosts[boost.boost_id] = boost
        logger.debug("Added %s in chat %d", boost.boost_id, chat_id)
        return boost

    def remove_boost(self, chat_id: int, boost_id: str) -> ChatBoost | None:
        record = self._chats.get(chat_id)
        if record is None:
            return None
        return record.boosts.pop(boost_id, None)

    def get_boosts(self, chat_id: int) -> list[ChatBoost]:
        """Active boosts; expired ones are dropped on read."""
        record = self._chats.get(chat_id)
        if record is None:
            return []
        now = self._clock.now()
        for boost_id, boost in list(record.boosts.items()):
            if boost.expiration_date <= now:
                del record.boosts[boost_id]
        return list(record.boosts.values())

    def boost_count(self, chat_id: int) -> int:
        return len(self.get_boosts(chat_id))

    # =========================================================================
    # State management
    # =========================================================================

    def clear(self, chat_id: int | None = None) -> None:
        """Clear one chat's log or all chats."""
        if chat_id is not None:
            record = self._chats.get(chat_id)
            if record is not None:
                record.messages.clear()
                record.pinned_message_ids.clear()
            logger.debug("Cleared chat %d", chat_id)
            return
        self._chats.clear()
        self._invite_link_counter = 1
        self._topic_id_counter = GENERAL_TOPIC_ID
        self._boost_counter = 1
        logger.debug("Cleared all chats")
