"""
Member management API method handlers.

Handles: banChatMember, unbanChatMember, restrictChatMember,
         promoteChatMember, setChatAdministratorCustomTitle
"""
import logging
from typing import TYPE_CHECKING

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, PermissionDeniedError, ValidationError, bad_request
from tgsim.methods.common import (
    normalize_until_date,
    parse_admin_rights,
    parse_permissions,
    require_bot_permission,
    require_chat,
    require_user_id,
)
from tgsim.payload import Payload
from tgsim.permissions import ChatAdministratorRights
from tgsim.state.chat_state import ChatRecord
from tgsim.state.member_state import CREATOR, KICKED

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.members")

MAX_CUSTOM_TITLE_LENGTH = 16


def _require_group_like(chat: ChatRecord) -> None:
    if chat.is_private:
        raise ValidationError(bad_request("chat member status can't be changed in private chats"))


def _bot_is_creator(server: "TelegramServer", chat: ChatRecord) -> bool:
    return server.members.get_status(chat.id, server.bot_id) == CREATOR


def handle_ban_chat_member(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle banChatMember API call."""
    chat = require_chat(server, payload)
    _require_group_like(chat)
    user_id = require_user_id(payload)
    require_bot_permission(server, chat, "can_restrict_members", "restrict/unrestrict chat member")

    target = server.members.get_member(chat.id, user_id)
    if target is not None and target.status == CREATOR:
        raise PermissionDeniedError(bad_request("can't ban this user"))
    if target is not None and target.is_admin and not _bot_is_creator(server, chat):
        raise PermissionDeniedError(bad_request("can't restrict self-administrator"))
    until_date = normalize_until_date(server, payload.get_int("until_date"))

    if not server.members.ban(chat.id, user_id, until_date):
        raise PermissionDeniedError(bad_request("can't ban this user"))
    if payload.get_bool("revoke_messages"):
        for message in server.chats.get_user_messages(chat.id, user_id):
            server.chats.delete_message(chat.id, message.message_id)
    logger.debug("banChatMember: chat=%d, user=%d, until=%s", chat.id, user_id, until_date)
    return True


def handle_unban_chat_member(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """
    Handle unbanChatMember API call.

    Without only_if_banned a present member is removed from the chat too,
    which is how the platform behaves.
    """
    chat = require_chat(server, payload)
    _require_group_like(chat)
    user_id = require_user_id(payload)
    require_bot_permission(server, chat, "can_restrict_members", "restrict/unrestrict chat member")

    member = server.members.get_member(chat.id, user_id)
    if member is None:
        return True
    if member.status == KICKED:
        server.members.unban(chat.id, user_id)
        logger.debug("unbanChatMember: chat=%d, user=%d", chat.id, user_id)
        return True
    if payload.get_bool("only_if_banned"):
        return True
    if member.status == CREATOR:
        raise PermissionDeniedError(bad_request("can't remove chat owner"))
    if member.is_admin and not _bot_is_creator(server, chat):
        raise PermissionDeniedError(bad_request("can't restrict self-administrator"))
    server.members.leave(chat.id, user_id)
    return True


def handle_restrict_chat_member(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle restrictChatMember API call."""
    chat = require_chat(server, payload)
    if not chat.is_group_like:
        raise ValidationError(bad_request("method is available only for supergroups"))
    user_id = require_user_id(payload)
    require_bot_permission(server, chat, "can_restrict_members", "restrict/unrestrict chat member")

    target = server.members.get_member(chat.id, user_id)
    if target is not None and target.status == CREATOR:
        raise PermissionDeniedError(bad_request("can't restrict this user"))
    if target is not None and target.is_admin:
        raise PermissionDeniedError(bad_request("can't restrict self-administrator"))
    permissions = parse_permissions(payload)
    until_date = normalize_until_date(server, payload.get_int("until_date"))

    server.members.restrict(chat.id, user_id, permissions, until_date)
    logger.debug("restrictChatMember: chat=%d, user=%d, until=%s", chat.id, user_id, until_date)
    return True


def handle_promote_chat_member(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle promoteChatMember API call. Granting no rights demotes."""
    chat = require_chat(server, payload)
    _require_group_like(chat)
    user_id = require_user_id(payload)
    require_bot_permission(server, chat, "can_promote_members", "promote new admins")

    target = server.members.get_member(chat.id, user_id)
    if target is None or not target.is_present:
        raise NotFoundError(bad_request("user not found"))
    if target.status == CREATOR:
        raise PermissionDeniedError(bad_request("can't promote chat owner"))
    rights = parse_admin_rights({
        key: payload.get_bool(key)
        for key in ("is_anonymous", *(name for name in _right_names() if payload.has(name)))
    })

    bot = server.members.get_member(chat.id, server.bot_id)
    if bot is not None and bot.status != CREATOR and bot.rights is not None:
        for name in _right_names():
            if rights.grants(name) and not bot.rights.grants(name):
                raise PermissionDeniedError(bad_request("RIGHT_FORBIDDEN"))

    if not rights.has_any_right():
        server.members.demote(chat.id, user_id)
        logger.debug("promoteChatMember: demoted user %d in chat %d", user_id, chat.id)
        return True
    server.members.set_admin(chat.id, target.user, rights, target.custom_title)
    logger.debug("promoteChatMember: chat=%d, user=%d, %s", chat.id, user_id, rights.to_dict())
    return True


def _right_names() -> list[str]:
    return [name for name in ChatAdministratorRights.model_fields if name.startswith("can_")]


def handle_set_chat_administrator_custom_title(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = require_chat(server, payload)
    if chat.type != "supergroup":
        raise ValidationError(bad_request("method is available only for supergroups"))
    user_id = require_user_id(payload)
    title = payload.get_str("custom_title") or ""
    if len(title) > MAX_CUSTOM_TITLE_LENGTH:
        raise ValidationError(bad_request("ADMIN_RANK_INVALID: custom title is too long"))
    require_bot_permission(server, chat, "can_promote_members", "change administrator custom title")

    if not server.members.set_custom_title(chat.id, user_id, title):
        raise ValidationError(bad_request("user is not an administrator"))
    return True


METHODS = {
    "banChatMember": handle_ban_chat_member,
    "kickChatMember": handle_ban_chat_member,
    "unbanChatMember": handle_unban_chat_member,
    "restrictChatMember": handle_restrict_chat_member,
    "promoteChatMember": handle_promote_chat_member,
    "setChatAdministratorCustomTitle": handle_set_chat_administrator_custom_title,
}
