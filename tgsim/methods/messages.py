"""
Message-related API method handlers.

Handles: sendMessage, forwardMessage(s), copyMessage(s), editMessageText,
         editMessageCaption, editMessageReplyMarkup, deleteMessage(s),
         sendLocation, sendVenue, sendContact, sendDice, sendChatAction,
         sendGame, setMessageReaction
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, PermissionDeniedError, ValidationError, bad_request
from tgsim.methods.common import (
    MESSAGE_DELETE_WINDOW,
    check_bot_permission,
    check_caption,
    check_text,
    ensure_modified,
    find_edit_target,
    inline_markup,
    new_message,
    parse_text,
    payload_text,
    prepare_send,
    publish_edit,
    publish_message,
    require_bot_permission,
    require_chat,
    require_message,
    resolve_placement,
)
from tgsim.payload import Payload
from tgsim.state.chat_state import ChatRecord, StoredMessage

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.messages")

DICE_FACES = {
    "🎲": 6,
    "🎯": 6,
    "🎳": 6,
    "🏀": 5,
    "⚽": 5,
    "🎰": 64,
}

CHAT_ACTIONS = frozenset({
    "typing",
    "upload_photo",
    "record_video",
    "upload_video",
    "record_voice",
    "upload_voice",
    "upload_document",
    "choose_sticker",
    "find_location",
    "record_video_note",
    "upload_video_note",
})

REACTION_TYPES = ("emoji", "custom_emoji", "paid")
MAX_BOT_REACTIONS = 1
MAX_BATCH_SIZE = 100


# =============================================================================
# Sending
# =============================================================================


def handle_send_message(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle sendMessage API call."""
    raw_text = check_text(payload.get_str("text"))
    chat = prepare_send(server, payload, "can_send_messages", "text messages")
    text, entities = parse_text(raw_text, payload.get_str("parse_mode"), payload.get_list("entities"))

    message = new_message(server, chat, payload, text=text, entities=entities)
    logger.debug(
        "sendMessage to chat %d: message_id=%d, text=%s",
        chat.id,
        message.message_id,
        text[:50],
    )
    return publish_message(server, message, response)


def _forward_origin(server: "TelegramServer", source_chat: ChatRecord, source: StoredMessage) -> dict[str, Any]:
    if source_chat.type == "channel":
        return {
            "type": "channel",
            "date": source.date,
            "chat": source_chat.to_dict(),
            "message_id": source.message_id,
        }
    if source.from_user is not None:
        return {"type": "user", "date": source.date, "sender_user": source.from_user}
    return {"type": "hidden_user", "date": source.date, "sender_user_name": "Unknown"}


def _copy_fields(source: StoredMessage) -> dict[str, Any]:
    return {
        "text": source.text,
        "entities": source.entities,
        "caption": source.caption,
        "caption_entities": source.caption_entities,
        "content": dict(source.content),
    }


def _forward_one(
    server: "TelegramServer",
    chat: ChatRecord,
    source_chat: ChatRecord,
    message_id: int,
    payload: Payload,
    response: BotResponse | None,
) -> dict[str, Any]:
    source = require_message(server, source_chat, message_id, "message to forward not found")
    fields = _copy_fields(source)
    fields["content"]["forward_origin"] = _forward_origin(server, source_chat, source)
    message = new_message(
        server,
        chat,
        message_thread_id=payload.get_int("message_thread_id"),
        **fields,
    )
    return publish_message(server, message, response)


def handle_forward_message(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle forwardMessage API call."""
    chat = prepare_send(server, payload, "can_send_messages", "messages")
    source_chat = require_chat(server, payload, "from_chat_id")
    return _forward_one(server, chat, source_chat, payload.require_int("message_id"), payload, response)


def handle_forward_messages(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> list[dict[str, int]]:
    """Handle forwardMessages API call. Missing source messages are skipped."""
    chat = prepare_send(server, payload, "can_send_messages", "messages")
    source_chat = require_chat(server, payload, "from_chat_id")
    message_ids = _batch_ids(payload)
    forwarded = []
    for message_id in message_ids:
        if server.chats.get_message(source_chat.id, message_id) is None:
            continue
        message = _forward_one(server, chat, source_chat, message_id, payload, response)
        forwarded.append({"message_id": message["message_id"]})
    return forwarded


def _copy_source(server: "TelegramServer", source_chat: ChatRecord, message_id: int) -> StoredMessage:
    source = require_message(server, source_chat, message_id, "message to copy not found")
    if "poll" in source.content and source.content["poll"].get("type") == "quiz":
        raise ValidationError(bad_request("quiz polls can't be copied"))
    return source


def _copy_overrides(payload: Payload) -> dict[str, Any]:
    """Caption fields the request replaces on every copy."""
    overrides: dict[str, Any] = {}
    if payload.has("caption"):
        check_caption(payload.get_str("caption"))
        overrides["caption"], overrides["caption_entities"] = payload_text(
            payload, "caption", "parse_mode", "caption_entities"
        )
    if payload.get_bool("remove_caption"):
        overrides["caption"], overrides["caption_entities"] = None, None
    return overrides


def _copy_one(
    server: "TelegramServer",
    chat: ChatRecord,
    source: StoredMessage,
    overrides: dict[str, Any],
    payload: Payload,
    response: BotResponse | None,
) -> StoredMessage:
    fields = _copy_fields(source)
    fields.update(overrides)
    reply_markup = inline_markup(payload)
    if reply_markup is None and source.has_inline_keyboard():
        reply_markup = source.reply_markup
    message = new_message(
        server,
        chat,
        message_thread_id=payload.get_int("message_thread_id"),
        reply_markup=reply_markup,
        **fields,
    )
    publish_message(server, message, response)
    return message


def handle_copy_message(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, int]:
    """Handle copyMessage API call. Returns only the new MessageId."""
    chat = prepare_send(server, payload, "can_send_messages", "messages")
    source_chat = require_chat(server, payload, "from_chat_id")
    source = _copy_source(server, source_chat, payload.require_int("message_id"))
    message = _copy_one(server, chat, source, _copy_overrides(payload), payload, response)
    return {"message_id": message.message_id}


def handle_copy_messages(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> list[dict[str, int]]:
    """Handle copyMessages API call. Every source is checked before the first copy is sent."""
    chat = prepare_send(server, payload, "can_send_messages", "messages")
    source_chat = require_chat(server, payload, "from_chat_id")
    overrides = _copy_overrides(payload)
    sources = [
        _copy_source(server, source_chat, message_id)
        for message_id in _batch_ids(payload)
        if server.chats.get_message(source_chat.id, message_id) is not None
    ]
    copied = []
    for source in sources:
        message = _copy_one(server, chat, source, overrides, payload, response)
        copied.append({"message_id": message.message_id})
    return copied


def handle_send_location(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    latitude = payload.require_float("latitude")
    longitude = payload.require_float("longitude")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise ValidationError(bad_request("wrong coordinates"))
    chat = prepare_send(server, payload, "can_send_other_messages", "locations")

    location: dict[str, Any] = {"latitude": latitude, "longitude": longitude}
    for key in ("horizontal_accuracy", "live_period", "heading", "proximity_alert_radius"):
        if payload.has(key):
            location[key] = payload.get_float(key) if key == "horizontal_accuracy" else payload.get_int(key)
    message = new_message(server, chat, payload, content={"location": location})
    return publish_message(server, message, response)


def handle_send_venue(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    latitude = payload.require_float("latitude")
    longitude = payload.require_float("longitude")
    title = payload.require_str("title")
    address = payload.require_str("address")
    chat = prepare_send(server, payload, "can_send_other_messages", "venues")

    location = {"latitude": latitude, "longitude": longitude}
    venue: dict[str, Any] = {"location": location, "title": title, "address": address}
    for key in ("foursquare_id", "foursquare_type", "google_place_id", "google_place_type"):
        if payload.has(key):
            venue[key] = payload.get_str(key)
    message = new_message(server, chat, payload, content={"venue": venue, "location": location})
    return publish_message(server, message, response)


def handle_send_contact(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    phone_number = payload.require_str("phone_number")
    first_name = payload.require_str("first_name")
    chat = prepare_send(server, payload, "can_send_other_messages", "contacts")

    contact: dict[str, Any] = {"phone_number": phone_number, "first_name": first_name}
    for key in ("last_name", "vcard"):
        if payload.has(key):
            contact[key] = payload.get_str(key)
    message = new_message(server, chat, payload, content={"contact": contact})
    return publish_message(server, message, response)


def handle_send_dice(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle sendDice API call. The value is derived from the message id."""
    emoji = payload.get_str("emoji") or "🎲"
    faces = DICE_FACES.get(emoji)
    if faces is None:
        raise ValidationError(bad_request("invalid dice emoji"))
    chat = prepare_send(server, payload, "can_send_other_messages", "dice")

    message = new_message(server, chat, payload)
    message.content = {"dice": {"emoji": emoji, "value": message.message_id % faces + 1}}
    return publish_message(server, message, response)


def handle_send_chat_action(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    action = payload.require_str("action")
    chat = require_chat(server, payload)
    if action not in CHAT_ACTIONS:
        raise ValidationError(bad_request("wrong parameter action in request"))
    logger.debug("sendChatAction: chat=%d, action=%s", chat.id, action)
    return True


def handle_send_game(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    short_name = payload.require_str("game_short_name")
    chat = prepare_send(server, payload, "can_send_other_messages", "games")
    if chat.type == "channel":
        raise ValidationError(bad_request("games can't be sent to channel chats"))
    placement = resolve_placement(server, chat, payload)

    photo = server.files.store_photo(width=640, height=480)
    game = {"title": short_name, "description": f"Game: {short_name}", "photo": photo}
    message = new_message(server, chat, content={"game": game}, **placement)
    return publish_message(server, message, response)


# =============================================================================
# Editing
# =============================================================================


def handle_edit_message_text(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any] | bool:
    """Handle editMessageText API call."""
    raw_text = check_text(payload.get_str("text"))
    text, entities = parse_text(raw_text, payload.get_str("parse_mode"), payload.get_list("entities"))
    message = find_edit_target(server, payload)
    if message is None:
        return True
    if message.text is None:
        raise ValidationError(bad_request("there is no text in the message to edit"))

    reply_markup = inline_markup(payload)
    ensure_modified(message, text=text, entities=entities, reply_markup=reply_markup)
    logger.debug(
        "editMessageText: chat=%d, message=%d, text=%s",
        message.chat_id,
        message.message_id,
        text[:50],
    )
    return publish_edit(server, message, response, text=text, entities=entities, reply_markup=reply_markup)


def handle_edit_message_caption(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any] | bool:
    """Handle editMessageCaption API call."""
    check_caption(payload.get_str("caption"))
    caption, caption_entities = payload_text(payload, "caption", "parse_mode", "caption_entities")
    message = find_edit_target(server, payload)
    if message is None:
        return True
    if message.text is not None:
        raise ValidationError(bad_request("there is no caption in the message to edit"))

    reply_markup = inline_markup(payload)
    ensure_modified(message, caption=caption, caption_entities=caption_entities, reply_markup=reply_markup)
    return publish_edit(
        server,
        message,
        response,
        caption=caption,
        caption_entities=caption_entities,
        reply_markup=reply_markup,
    )


def handle_edit_message_reply_markup(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any] | bool:
    """Handle editMessageReplyMarkup API call."""
    message = find_edit_target(server, payload)
    if message is None:
        return True

    reply_markup = inline_markup(payload)
    ensure_modified(message, reply_markup=reply_markup)
    logger.debug("editMessageReplyMarkup: chat=%d, message=%d", message.chat_id, message.message_id)
    return publish_edit(server, message, response, reply_markup=reply_markup)


# =============================================================================
# Deleting
# =============================================================================


def _batch_ids(payload: Payload) -> list[int]:
    message_ids = payload.int_list("message_ids")
    if not 1 <= len(message_ids) <= MAX_BATCH_SIZE:
        raise ValidationError(bad_request("message_ids must contain 1-100 identifiers"))
    return message_ids


def _check_deletable(server: "TelegramServer", chat: ChatRecord, message: StoredMessage) -> None:
    """
    Bots delete their own messages freely. Messages of others need
    can_delete_messages in groups and channels, and without it anything
    older than 48 hours cannot be deleted at all.
    """
    if message.from_user_id == server.bot_id or chat.is_private:
        return
    can_delete = check_bot_permission(server, chat, "can_delete_messages")
    age = server.clock.now() - message.date
    if chat.is_group_like and age > MESSAGE_DELETE_WINDOW and not can_delete:
        raise PermissionDeniedError(bad_request("message can't be deleted for everyone"))
    require_bot_permission(server, chat, "can_delete_messages", "delete messages")


def _delete(server: "TelegramServer", chat: ChatRecord, message_id: int, response: BotResponse | None) -> None:
    server.chats.delete_message(chat.id, message_id)
    server.polls.stop_poll_by_message(chat.id, message_id)
    if response is not None:
        response.add_deleted_message_id(message_id)


def handle_delete_message(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle deleteMessage API call."""
    chat = require_chat(server, payload)
    message_id = payload.require_int("message_id")
    message = server.chats.get_message(chat.id, message_id)
    if message is None:
        raise NotFoundError(bad_request("message to delete not found"))
    _check_deletable(server, chat, message)

    _delete(server, chat, message_id, response)
    logger.debug("deleteMessage: chat=%d, message=%d", chat.id, message_id)
    return True


def handle_delete_messages(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle deleteMessages API call (batch delete). Missing ids are skipped."""
    chat = require_chat(server, payload)
    message_ids = _batch_ids(payload)

    targets = []
    for message_id in message_ids:
        message = server.chats.get_message(chat.id, message_id)
        if message is None:
            continue
        _check_deletable(server, chat, message)
        targets.append(message_id)

    for message_id in targets:
        _delete(server, chat, message_id, response)
    logger.debug("deleteMessages: chat=%d, messages=%s", chat.id, targets)
    return True


# =============================================================================
# Reactions
# =============================================================================


def handle_set_message_reaction(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle setMessageReaction API call. Replaces the bot's reactions."""
    chat = require_chat(server, payload)
    message = require_message(server, chat, payload.require_int("message_id"))
    reaction = payload.get_list("reaction") or []

    if len(reaction) > MAX_BOT_REACTIONS:
        raise ValidationError(bad_request("REACTIONS_TOO_MANY"))
    for item in reaction:
        if not isinstance(item, dict) or item.get("type") not in REACTION_TYPES:
            raise ValidationError(bad_request("REACTION_INVALID"))
        if (
            item["type"] == "emoji"
            and chat.available_reactions is not None
            and item not in chat.available_reactions
        ):
            raise ValidationError(bad_request("REACTION_INVALID"))

    message.reactions = list(reaction)
    logger.debug("setMessageReaction: chat=%d, message=%d, %s", chat.id, message.message_id, reaction)
    return True


METHODS = {
    "sendMessage": handle_send_message,
    "forwardMessage": handle_forward_message,
    "forwardMessages": handle_forward_messages,
    "copyMessage": handle_copy_message,
    "copyMessages": handle_copy_messages,
    "sendLocation": handle_send_location,
    "sendVenue": handle_send_venue,
    "sendContact": handle_send_contact,
    "sendDice": handle_send_dice,
    "sendChatAction": handle_send_chat_action,
    "sendGame": handle_send_game,
    "editMessageText": handle_edit_message_text,
    "editMessageCaption": handle_edit_message_caption,
    "editMessageReplyMarkup": handle_edit_message_reply_markup,
    "deleteMessage": handle_delete_message,
    "deleteMessages": handle_delete_messages,
    "setMessageReaction": handle_set_message_reaction,
}
