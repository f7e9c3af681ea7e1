"""
Forum topic API method handlers.

Handles: createForumTopic, editForumTopic, closeForumTopic, reopenForumTopic,
         deleteForumTopic, unpinAllForumTopicMessages, editGeneralForumTopic,
         closeGeneralForumTopic, reopenGeneralForumTopic,
         hideGeneralForumTopic, unhideGeneralForumTopic,
         unpinAllGeneralForumTopicMessages, getForumTopicIconStickers
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, ValidationError, bad_request
from tgsim.methods.common import new_message, publish_message, require_bot_permission, require_chat
from tgsim.payload import Payload
from tgsim.state.chat_state import GENERAL_TOPIC_ID, ChatRecord, ForumTopic

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.forum")

MAX_TOPIC_NAME_LENGTH = 128
TOPIC_ICON_COLORS = (0x6FB9F0, 0xFFD67E, 0xCB86DB, 0x8EEE98, 0xFF93B2, 0xFB6F5F)

# custom_emoji_id -> emoji offered as topic icons
TOPIC_ICON_EMOJI = {
    "5312536423851630001": "\U0001F4F0",
    "5312536423851630002": "\U0001F4A1",
    "5312536423851630003": "❓",
    "5312536423851630004": "\U0001F3AE",
    "5312536423851630005": "\U0001F4DA",
    "5312536423851630006": "\U0001F525",
}


def _forum_chat(server: "TelegramServer", payload: Payload, action: str = "manage topics") -> ChatRecord:
    chat = require_chat(server, payload)
    if not chat.is_forum:
        raise ValidationError(bad_request("chat is not a forum"))
    require_bot_permission(server, chat, "can_manage_topics", action)
    return chat


def _check_name(name: str | None) -> str:
    if not name:
        raise ValidationError(bad_request("TOPIC_TITLE_EMPTY"))
    if len(name) > MAX_TOPIC_NAME_LENGTH:
        raise ValidationError(bad_request("topic name is too long"))
    return name


def _require_topic(server: "TelegramServer", chat: ChatRecord, payload: Payload) -> ForumTopic:
    topic = server.chats.get_forum_topic(chat.id, payload.require_int("message_thread_id"))
    if topic is None or topic.is_general:
        raise NotFoundError(bad_request("topic not found"))
    return topic


def _general_topic(server: "TelegramServer", chat: ChatRecord) -> ForumTopic:
    return server.chats.get_forum_topic(chat.id, GENERAL_TOPIC_ID)


def _service_message(
    server: "TelegramServer",
    chat: ChatRecord,
    response: BotResponse | None,
    thread_id: int,
    content: dict[str, Any],
) -> None:
    message = new_message(server, chat, message_thread_id=thread_id, content=content)
    publish_message(server, message, response)


# =============================================================================
# Topics
# =============================================================================


def handle_create_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle createForumTopic API call."""
    chat = _forum_chat(server, payload, "create topics")
    name = _check_name(payload.get_str("name"))
    icon_color = payload.get_int("icon_color")
    if icon_color is not None and icon_color not in TOPIC_ICON_COLORS:
        raise ValidationError(bad_request("TOPIC_ICON_COLOR_INVALID"))
    icon_custom_emoji_id = payload.get_str("icon_custom_emoji_id")

    topic = server.chats.create_forum_topic(chat.id, name, icon_color, icon_custom_emoji_id or None)
    created: dict[str, Any] = {"name": topic.name, "icon_color": topic.icon_color}
    if topic.icon_custom_emoji_id:
        created["icon_custom_emoji_id"] = topic.icon_custom_emoji_id
    _service_message(server, chat, response, topic.message_thread_id, {"forum_topic_created": created})
    logger.debug("createForumTopic: chat=%d, thread=%d", chat.id, topic.message_thread_id)
    return topic.to_dict()


def handle_edit_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = _forum_chat(server, payload)
    topic = _require_topic(server, chat, payload)
    name = payload.get_str("name")
    if name is not None:
        _check_name(name)
    icon_custom_emoji_id = payload.get_str("icon_custom_emoji_id")
    if (name is None or name == topic.name) and (
        icon_custom_emoji_id is None or (icon_custom_emoji_id or None) == topic.icon_custom_emoji_id
    ):
        raise ValidationError(bad_request("TOPIC_NOT_MODIFIED"))

    server.chats.edit_forum_topic(chat.id, topic.message_thread_id, name, icon_custom_emoji_id)
    edited = {key: value for key, value in (("name", name), ("icon_custom_emoji_id", icon_custom_emoji_id)) if value is not None}
    _service_message(server, chat, response, topic.message_thread_id, {"forum_topic_edited": edited})
    return True


def _set_closed(server: "TelegramServer", payload: Payload, response: BotResponse | None, closed: bool) -> bool:
    chat = _forum_chat(server, payload)
    topic = _require_topic(server, chat, payload)
    if topic.is_closed == closed:
        raise ValidationError(bad_request("TOPIC_NOT_MODIFIED"))
    server.chats.set_forum_topic_closed(chat.id, topic.message_thread_id, closed)
    kind = "forum_topic_closed" if closed else "forum_topic_reopened"
    _service_message(server, chat, response, topic.message_thread_id, {kind: {}})
    return True


def handle_close_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    return _set_closed(server, payload, response, True)


def handle_reopen_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    return _set_closed(server, payload, response, False)


def handle_delete_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle deleteForumTopic API call. Topic messages go with it."""
    chat = _forum_chat(server, payload, "delete topics")
    thread_id = payload.require_int("message_thread_id")
    if thread_id == GENERAL_TOPIC_ID or not server.chats.delete_forum_topic(chat.id, thread_id):
        raise NotFoundError(bad_request("topic not found or is the general topic"))
    logger.debug("deleteForumTopic: chat=%d, thread=%d", chat.id, thread_id)
    return True


def handle_unpin_all_forum_topic_messages(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    if not chat.is_forum:
        raise ValidationError(bad_request("chat is not a forum"))
    require_bot_permission(server, chat, "can_pin_messages", "unpin messages")
    topic = _require_topic(server, chat, payload)
    server.chats.unpin_all(chat.id, topic.message_thread_id)
    return True


# =============================================================================
# General topic
# =============================================================================


def handle_edit_general_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = _forum_chat(server, payload)
    name = _check_name(payload.get_str("name"))
    general = _general_topic(server, chat)
    if general.name == name:
        raise ValidationError(bad_request("TOPIC_NOT_MODIFIED"))
    server.chats.edit_forum_topic(chat.id, GENERAL_TOPIC_ID, name=name)
    return True


def handle_close_general_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = _forum_chat(server, payload)
    if _general_topic(server, chat).is_closed:
        raise ValidationError(bad_request("TOPIC_NOT_MODIFIED"))
    server.chats.set_forum_topic_closed(chat.id, GENERAL_TOPIC_ID, True)
    return True


def handle_reopen_general_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Reopening the General topic also unhides it."""
    chat = _forum_chat(server, payload)
    if not _general_topic(server, chat).is_closed:
        raise ValidationError(bad_request("TOPIC_NOT_MODIFIED"))
    server.chats.set_forum_topic_closed(chat.id, GENERAL_TOPIC_ID, False)
    if chat.general_topic_hidden:
        server.chats.set_general_topic_hidden(chat.id, False)
    return True


def handle_hide_general_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = _forum_chat(server, payload)
    if chat.general_topic_hidden:
        raise ValidationError(bad_request("TOPIC_NOT_MODIFIED"))
    server.chats.set_general_topic_hidden(chat.id, True)
    return True


def handle_unhide_general_forum_topic(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = _forum_chat(server, payload)
    if not chat.general_topic_hidden:
        raise ValidationError(bad_request("TOPIC_NOT_MODIFIED"))
    server.chats.set_general_topic_hidden(chat.id, False)
    return True


def handle_unpin_all_general_forum_topic_messages(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    if not chat.is_forum:
        raise ValidationError(bad_request("chat is not a forum"))
    require_bot_permission(server, chat, "can_pin_messages", "unpin messages")
    server.chats.unpin_all(chat.id, GENERAL_TOPIC_ID)
    return True


def handle_get_forum_topic_icon_stickers(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> list[dict[str, Any]]:
    """Custom emoji stickers allowed as topic icons."""
    return [
        server.stickers.register_custom_emoji(custom_emoji_id, emoji)
        for custom_emoji_id, emoji in TOPIC_ICON_EMOJI.items()
    ]


METHODS = {
    "createForumTopic": handle_create_forum_topic,
    "editForumTopic": handle_edit_forum_topic,
    "closeForumTopic": handle_close_forum_topic,
    "reopenForumTopic": handle_reopen_forum_topic,
    "deleteForumTopic": handle_delete_forum_topic,
    "unpinAllForumTopicMessages": handle_unpin_all_forum_topic_messages,
    "editGeneralForumTopic": handle_edit_general_forum_topic,
    "closeGeneralForumTopic": handle_close_general_forum_topic,
    "reopenGeneralForumTopic": handle_reopen_general_forum_topic,
    "hideGeneralForumTopic": handle_hide_general_forum_topic,
    "unhideGeneralForumTopic": handle_unhide_general_forum_topic,
    "unpinAllGeneralForumTopicMessages": handle_unpin_all_general_forum_topic_messages,
    "getForumTopicIconStickers": handle_get_forum_topic_icon_stickers,
}
