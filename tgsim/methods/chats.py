"""
Chat-related API method handlers.

Handles: getChat, getChatMember, getChatAdministrators, getChatMemberCount,
         setChatPermissions, setChatSlowModeDelay, setChatTitle,
         setChatDescription, setChatPhoto, deleteChatPhoto, leaveChat,
         pinChatMessage, unpinChatMessage, unpinAllChatMessages
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import ValidationError, bad_request
from tgsim.methods.common import (
    parse_permissions,
    require_bot_permission,
    require_chat,
    require_message,
    resolve_photo,
)
from tgsim.payload import Payload
from tgsim.state.chat_state import VALID_SLOW_MODE_DELAYS, ChatRecord
from tgsim.state.member_state import MEMBER

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.chats")

MAX_TITLE_LENGTH = 128
MAX_DESCRIPTION_LENGTH = 255
MAX_REACTION_COUNT = 11


def _accepted_gift_types() -> dict[str, bool]:
    return {
        "unlimited_gifts": False,
        "limited_gifts": False,
        "unique_gifts": False,
        "premium_subscription": False,
        "gifts_from_channels": False,
    }


def _chat_photo(server: "TelegramServer", chat: ChatRecord) -> dict[str, str] | None:
    if chat.photo_file_id is None:
        return None
    sizes = server.files.get_photo_family(chat.photo_file_id)
    if not sizes:
        return None
    small, big = sizes[0], sizes[-1]
    return {
        "small_file_id": small["file_id"],
        "small_file_unique_id": small["file_unique_id"],
        "big_file_id": big["file_id"],
        "big_file_unique_id": big["file_unique_id"],
    }


def full_chat_info(server: "TelegramServer", chat: ChatRecord) -> dict[str, Any]:
    """ChatFullInfo wire object."""
    info = chat.to_dict()
    info.update({
        "accent_color_id": 0,
        "max_reaction_count": MAX_REACTION_COUNT,
        "accepted_gift_types": _accepted_gift_types(),
    })
    if chat.description:
        info["description" if not chat.is_private else "bio"] = chat.description
    photo = _chat_photo(server, chat)
    if photo is not None:
        info["photo"] = photo
    if not chat.is_private:
        info["permissions"] = chat.permissions.to_dict(fill=True)
        if chat.primary_invite_link:
            info["invite_link"] = chat.primary_invite_link
    if chat.slow_mode_delay:
        info["slow_mode_delay"] = chat.slow_mode_delay
    if chat.available_reactions is not None:
        info["available_reactions"] = chat.available_reactions
    pinned = server.chats.get_pinned_message(chat.id)
    if pinned is not None:
        info["pinned_message"] = server.chats.render(pinned)
    return info


# =============================================================================
# Reading
# =============================================================================


def handle_get_chat(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle getChat API call."""
    return full_chat_info(server, require_chat(server, payload))


def handle_get_chat_member(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle getChatMember API call. Unknown users are reported as left."""
    chat = require_chat(server, payload)
    user_id = payload.require_int("user_id")
    member = server.members.get_member(chat.id, user_id)
    if member is None:
        user = server.members.user_or_stub(user_id)
        if chat.is_private and user_id in (chat.id, server.bot_id):
            return {"status": MEMBER, "user": user}
        return server.members.to_chat_member(None, user)
    return server.members.to_chat_member(member)


def handle_get_chat_administrators(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> list[dict[str, Any]]:
    chat = require_chat(server, payload)
    if chat.is_private:
        raise ValidationError(bad_request("there are no administrators in the private chat"))
    return [server.members.to_chat_member(m) for m in server.members.get_administrators(chat.id)]


def handle_get_chat_member_count(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> int:
    """Members present in the chat; left and kicked users are not counted."""
    chat = require_chat(server, payload)
    if chat.is_private:
        return 2
    return server.members.count(chat.id)


# =============================================================================
# Settings
# =============================================================================


def handle_set_chat_permissions(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle setChatPermissions API call."""
    chat = require_chat(server, payload)
    if not chat.is_group_like:
        raise ValidationError(bad_request("method is available only for groups and supergroups"))
    require_bot_permission(server, chat, "can_restrict_members", "change chat permissions")
    permissions = parse_permissions(payload)

    server.chats.set_permissions(chat.id, permissions)
    logger.debug("setChatPermissions: chat=%d, %s", chat.id, permissions.to_dict())
    return True


def handle_set_chat_slow_mode_delay(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    if chat.is_private:
        raise ValidationError(bad_request("method is available only for supergroups"))
    require_bot_permission(server, chat, "can_restrict_members", "change chat slow mode")
    delay = payload.get_int("slow_mode_delay") or 0
    if delay not in VALID_SLOW_MODE_DELAYS:
        raise ValidationError(bad_request("SLOW_MODE_DELAY_INVALID"))

    server.chats.set_slow_mode_delay(chat.id, delay)
    return True


def handle_set_chat_title(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    if chat.is_private:
        raise ValidationError(bad_request("can't set title for private chat"))
    require_bot_permission(server, chat, "can_change_info", "change chat title")
    title = (payload.get_str("title") or "").strip()
    if not title:
        raise ValidationError(bad_request("chat title is empty"))
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(bad_request("chat title is too long"))
    if title == chat.title:
        raise ValidationError(bad_request("chat title is not modified"))

    chat.title = title
    logger.debug("setChatTitle: chat=%d, title=%s", chat.id, title)
    return True


def handle_set_chat_description(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    require_bot_permission(server, chat, "can_change_info", "change chat description")
    description = payload.get_str("description") or ""
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(bad_request("chat description is too long"))
    if description == (chat.description or ""):
        raise ValidationError(bad_request("chat description is not modified"))

    chat.description = description or None
    return True


def handle_set_chat_photo(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    if chat.is_private:
        raise ValidationError(bad_request("can't change photo of private chat"))
    require_bot_permission(server, chat, "can_change_info", "change chat photo")
    sizes = resolve_photo(server, payload, payload.get("photo"))

    chat.photo_file_id = sizes[-1]["file_id"]
    return True


def handle_delete_chat_photo(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    require_bot_permission(server, chat, "can_change_info", "delete chat photo")
    if not chat.has_photo:
        raise ValidationError(bad_request("CHAT_NOT_MODIFIED"))

    chat.photo_file_id = None
    return True


def handle_leave_chat(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle leaveChat API call. The bot ends up left."""
    chat = require_chat(server, payload)
    if chat.is_private:
        raise ValidationError(bad_request("chat member status can't be changed in private chats"))
    server.members.leave(chat.id, server.bot_id)
    logger.debug("Bot left chat %d", chat.id)
    return True


# =============================================================================
# Pins
# =============================================================================


def handle_pin_chat_message(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle pinChatMessage API call."""
    chat = require_chat(server, payload)
    require_bot_permission(server, chat, "can_pin_messages", "pin messages")
    message = require_message(server, chat, payload.require_int("message_id"))

    server.chats.pin_message(chat.id, message.message_id)
    logger.debug("pinChatMessage: chat=%d, message=%d", chat.id, message.message_id)
    return True


def handle_unpin_chat_message(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Unpin one message, or the most recent pin when no message_id is given."""
    chat = require_chat(server, payload)
    require_bot_permission(server, chat, "can_pin_messages", "unpin messages")
    server.chats.unpin_message(chat.id, payload.get_int("message_id"))
    return True


def handle_unpin_all_chat_messages(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    require_bot_permission(server, chat, "can_pin_messages", "unpin messages")
    count = server.chats.unpin_all(chat.id)
    logger.debug("unpinAllChatMessages: chat=%d, unpinned=%d", chat.id, count)
    return True


METHODS = {
    "getChat": handle_get_chat,
    "getChatMember": handle_get_chat_member,
    "getChatAdministrators": handle_get_chat_administrators,
    "getChatMemberCount": handle_get_chat_member_count,
    "setChatPermissions": handle_set_chat_permissions,
    "setChatSlowModeDelay": handle_set_chat_slow_mode_delay,
    "setChatTitle": handle_set_chat_title,
    "setChatDescription": handle_set_chat_description,
    "setChatPhoto": handle_set_chat_photo,
    "deleteChatPhoto": handle_delete_chat_photo,
    "leaveChat": handle_leave_chat,
    "pinChatMessage": handle_pin_chat_message,
    "unpinChatMessage": handle_unpin_chat_message,
    "unpinAllChatMessages": handle_unpin_all_chat_messages,
}
