"""
Invite link and join request API method handlers.

Handles: exportChatInviteLink, createChatInviteLink, editChatInviteLink,
         createChatSubscriptionInviteLink, editChatSubscriptionInviteLink,
         revokeChatInviteLink, approveChatJoinRequest, declineChatJoinRequest
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, ValidationError, bad_request
from tgsim.methods.common import require_bot_permission, require_chat, require_user_id
from tgsim.payload import Payload
from tgsim.state.chat_state import ChatRecord, InviteLink

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.invites")

MAX_LINK_NAME_LENGTH = 32
MAX_MEMBER_LIMIT = 99999
SUBSCRIPTION_PERIOD = 30 * 24 * 60 * 60
MAX_SUBSCRIPTION_PRICE = 2500


def _invite_chat(server: "TelegramServer", payload: Payload) -> ChatRecord:
    chat = require_chat(server, payload)
    if chat.is_private:
        raise ValidationError(bad_request("can't invite members to a private chat"))
    require_bot_permission(server, chat, "can_invite_users", "manage invite links")
    return chat


def _require_link(server: "TelegramServer", chat: ChatRecord, payload: Payload) -> InviteLink:
    url = payload.require_str("invite_link")
    link = server.chats.get_invite_link(chat.id, url)
    if link is None:
        raise NotFoundError(bad_request("INVITE_HASH_EXPIRED"))
    return link


def _link_options(server: "TelegramServer", payload: Payload) -> dict[str, Any]:
    """Validated optional link fields present in the request."""
    options: dict[str, Any] = {}
    if payload.has("name"):
        name = payload.get_str("name")
        if len(name) > MAX_LINK_NAME_LENGTH:
            raise ValidationError(bad_request("invite link name is too long"))
        options["name"] = name or None
    if payload.has("expire_date"):
        expire_date = payload.get_int("expire_date")
        if expire_date and expire_date <= server.clock.now():
            raise ValidationError(bad_request("EXPIRE_DATE_INVALID"))
        options["expire_date"] = expire_date or None
    if payload.has("member_limit"):
        member_limit = payload.get_int("member_limit")
        if not 1 <= member_limit <= MAX_MEMBER_LIMIT:
            raise ValidationError(bad_request("USAGE_LIMIT_INVALID"))
        options["member_limit"] = member_limit
    if payload.has("creates_join_request"):
        options["creates_join_request"] = payload.get_bool("creates_join_request")
    if options.get("creates_join_request") and options.get("member_limit"):
        raise ValidationError(bad_request("member_limit can't be specified for links requiring administrator approval"))
    return options


def _report(response: BotResponse | None, link: InviteLink) -> dict[str, Any]:
    result = link.to_dict()
    if response is not None:
        response.invite_link = result
    return result


# =============================================================================
# Links
# =============================================================================


def handle_export_chat_invite_link(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> str:
    """Handle exportChatInviteLink API call. The previous primary link is revoked."""
    chat = _invite_chat(server, payload)
    link = server.chats.export_invite_link(chat.id, server.bot_user)
    logger.debug("exportChatInviteLink: chat=%d, link=%s", chat.id, link.invite_link)
    return link.invite_link


def handle_create_chat_invite_link(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle createChatInviteLink API call."""
    chat = _invite_chat(server, payload)
    options = _link_options(server, payload)

    link = server.chats.create_invite_link(chat.id, server.bot_user, **options)
    logger.debug("createChatInviteLink: chat=%d, link=%s", chat.id, link.invite_link)
    return _report(response, link)


def handle_edit_chat_invite_link(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    chat = _invite_chat(server, payload)
    link = _require_link(server, chat, payload)
    if link.subscription_period is not None:
        raise ValidationError(bad_request("can't edit subscription invite link"))
    options = _link_options(server, payload)
    creates_join_request = options.get("creates_join_request", link.creates_join_request)
    member_limit = options.get("member_limit", link.member_limit)
    if creates_join_request and member_limit:
        raise ValidationError(bad_request("member_limit can't be specified for links requiring administrator approval"))

    edited = server.chats.edit_invite_link(chat.id, link.invite_link, **options)
    if edited is None:
        raise ValidationError(bad_request("invite link revoked"))
    return _report(response, edited)


def handle_create_chat_subscription_invite_link(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle createChatSubscriptionInviteLink API call. Channels only."""
    chat = require_chat(server, payload)
    if chat.type != "channel":
        raise ValidationError(bad_request("subscription links can be created only in channels"))
    require_bot_permission(server, chat, "can_invite_users", "manage invite links")
    if payload.get_int("subscription_period") != SUBSCRIPTION_PERIOD:
        raise ValidationError(bad_request("SUBSCRIPTION_PERIOD_INVALID"))
    price = payload.get_int("subscription_price")
    if price is None or not 1 <= price <= MAX_SUBSCRIPTION_PRICE:
        raise ValidationError(bad_request("SUBSCRIPTION_PRICE_INVALID"))
    name = payload.get_str("name")
    if name is not None and len(name) > MAX_LINK_NAME_LENGTH:
        raise ValidationError(bad_request("invite link name is too long"))

    link = server.chats.create_invite_link(
        chat.id,
        server.bot_user,
        name=name or None,
        subscription_period=SUBSCRIPTION_PERIOD,
        subscription_price=price,
    )
    return _report(response, link)


def handle_edit_chat_subscription_invite_link(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Only the name of a subscription link can change."""
    chat = _invite_chat(server, payload)
    link = _require_link(server, chat, payload)
    if link.subscription_period is None:
        raise ValidationError(bad_request("invite link is not a subscription link"))
    name = payload.get_str("name")
    if name is not None and len(name) > MAX_LINK_NAME_LENGTH:
        raise ValidationError(bad_request("invite link name is too long"))

    edited = server.chats.edit_invite_link(chat.id, link.invite_link, name=name or None)
    if edited is None:
        raise ValidationError(bad_request("invite link revoked"))
    return _report(response, edited)


def handle_revoke_chat_invite_link(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """
    Handle revokeChatInviteLink API call.

    Revoking the primary link generates a new primary one, as the
    platform does.
    """
    chat = _invite_chat(server, payload)
    link = _require_link(server, chat, payload)
    was_primary = link.is_primary and not link.is_revoked

    revoked = server.chats.revoke_invite_link(chat.id, link.invite_link)
    if was_primary:
        server.chats.export_invite_link(chat.id, server.bot_user)
    logger.debug("revokeChatInviteLink: chat=%d, link=%s", chat.id, link.invite_link)
    return _report(response, revoked)


# =============================================================================
# Join requests
# =============================================================================


def handle_approve_chat_join_request(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle approveChatJoinRequest API call. The user becomes a member."""
    chat = _invite_chat(server, payload)
    user_id = require_user_id(payload)
    link = server.chats.find_join_request(chat.id, user_id)
    if link is None:
        raise NotFoundError(bad_request("user has no join request"))

    user = server.chats.remove_join_request(chat.id, user_id)
    link.usage_count += 1
    link.joined_user_ids.add(user_id)
    server.members.set_member(chat.id, user)
    logger.debug("approveChatJoinRequest: chat=%d, user=%d", chat.id, user_id)
    return True


def handle_decline_chat_join_request(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    chat = _invite_chat(server, payload)
    user_id = require_user_id(payload)
    if server.chats.remove_join_request(chat.id, user_id) is None:
        raise NotFoundError(bad_request("user has no join request"))
    logger.debug("declineChatJoinRequest: chat=%d, user=%d", chat.id, user_id)
    return True


METHODS = {
    "exportChatInviteLink": handle_export_chat_invite_link,
    "createChatInviteLink": handle_create_chat_invite_link,
    "editChatInviteLink": handle_edit_chat_invite_link,
    "createChatSubscriptionInviteLink": handle_create_chat_subscription_invite_link,
    "editChatSubscriptionInviteLink": handle_edit_chat_subscription_invite_link,
    "revokeChatInviteLink": handle_revoke_chat_invite_link,
    "approveChatJoinRequest": handle_approve_chat_join_request,
    "declineChatJoinRequest": handle_decline_chat_join_request,
}
