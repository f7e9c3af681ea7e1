"""
Shared building blocks for API method handlers.

Every handler has the signature handler(server, payload, response) and
returns the wire result. Helpers here resolve referenced entities, check
the bot's rights, and publish messages, raising ApiError subclasses with
the platform's wording. Checks never mutate state; publish_message is the
single step that does.
"""
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pydantic

from tgsim.bot_response import BotResponse
from tgsim.errors import (
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
    bad_request,
)
from tgsim.markup import parse_formatted_text, utf16_len
from tgsim.payload import Payload, UploadedFile
from tgsim.permissions import ChatAdministratorRights, ChatPermissions
from tgsim.state.chat_state import ChatRecord, StoredMessage
from tgsim.state.file_state import StoredFile, max_file_size
from tgsim.state.member_state import ADMINISTRATOR, CREATOR, KICKED, RESTRICTED

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.common")

Handler = Callable[["TelegramServer", Payload, BotResponse | None], Any]

MAX_MESSAGE_LENGTH = 4096
MAX_CAPTION_LENGTH = 1024
MESSAGE_DELETE_WINDOW = 48 * 60 * 60

ATTACH_PREFIX = "attach://"

# Legacy umbrella permission expanded when independent permissions are off
MEDIA_PERMISSIONS = (
    "can_send_audios",
    "can_send_documents",
    "can_send_photos",
    "can_send_videos",
    "can_send_video_notes",
    "can_send_voice_notes",
)


# =============================================================================
# Entities
# =============================================================================


def resolve_chat_id(server: "TelegramServer", value: Any) -> int | None:
    """Numeric id, or the id of a chat known by its @username."""
    if value is None:
        return None
    if isinstance(value, str) and value.startswith("@"):
        username = value[1:].lower()
        for record in server.chats.all_chats():
            if record.username and record.username.lower() == username:
                return record.id
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def require_chat(server: "TelegramServer", payload: Payload, key: str = "chat_id") -> ChatRecord:
    """Chat referenced by payload[key], or "chat not found"."""
    if not payload.has(key):
        raise ValidationError(bad_request(f"{key} is required"))
    chat_id = resolve_chat_id(server, payload.get(key))
    record = server.chats.get(chat_id) if chat_id is not None else None
    if record is None:
        raise NotFoundError(bad_request("chat not found"))
    return record


def require_message(
    server: "TelegramServer",
    chat: ChatRecord,
    message_id: int,
    reason: str = "message not found",
) -> StoredMessage:
    message = server.chats.get_message(chat.id, message_id)
    if message is None:
        raise NotFoundError(bad_request(reason))
    return message


def require_user_id(payload: Payload, key: str = "user_id") -> int:
    return payload.require_int(key)


# =============================================================================
# Rights
# =============================================================================


def check_bot_permission(server: "TelegramServer", chat: ChatRecord, right: str) -> bool:
    """
    Whether the bot may use an administrative right in chat.

    Private chats pass. The creator holds every right; an administrator
    only the ones granted; anyone else none.
    """
    if chat.is_private:
        return True
    member = server.members.get_member(chat.id, server.bot_id)
    if member is None:
        return False
    if member.status == CREATOR:
        return True
    if member.status == ADMINISTRATOR:
        return member.rights is not None and member.rights.grants(right)
    return False


def require_bot_permission(server: "TelegramServer", chat: ChatRecord, right: str, action: str) -> None:
    if not check_bot_permission(server, chat, right):
        logger.debug("Bot lacks %s in chat %d", right, chat.id)
        raise PermissionDeniedError(bad_request(f"not enough rights to {action}"))


def require_bot_in_chat(server: "TelegramServer", chat: ChatRecord) -> None:
    """A bot kicked from a group can no longer act in it."""
    if chat.is_private:
        return
    if server.members.get_status(chat.id, server.bot_id) == KICKED:
        kind = "channel chat" if chat.type == "channel" else "group chat"
        raise PermissionDeniedError(f"Forbidden: bot was kicked from the {kind}", error_code=403)


def require_send_permission(
    server: "TelegramServer",
    chat: ChatRecord,
    permission: str,
    what: str,
) -> None:
    """Check that the bot may post this kind of content as a non-admin."""
    if chat.is_private or chat.type == "channel":
        return
    member = server.members.get_member(chat.id, server.bot_id)
    if member is not None and member.is_admin:
        return
    permissions = chat.permissions
    if member is not None and member.status == RESTRICTED and member.permissions is not None:
        permissions = member.permissions
    if chat.is_locked or getattr(permissions, permission) is False:
        raise PermissionDeniedError(bad_request(f"not enough rights to send {what} to the chat"))


def enforce_rate_limit(server: "TelegramServer", chat: ChatRecord) -> None:
    """Raise 429 when the bot would exceed slow mode or flood limits."""
    retry_after = server.members.check_rate_limit(
        chat.id,
        server.bot_id,
        chat.type,
        chat.slow_mode_delay,
    )
    if retry_after is not None:
        logger.debug("Rate limited in chat %d for %ds", chat.id, retry_after)
        raise RateLimitError(retry_after)


def parse_permissions(payload: Payload, key: str = "permissions") -> ChatPermissions:
    """ChatPermissions from the payload, expanding the legacy media flag."""
    data = payload.get_dict(key)
    if data is None:
        raise ValidationError(bad_request(f"{key} is required"))
    data = dict(data)
    media = data.pop("can_send_media_messages", None)
    if media is not None and not payload.get_bool("use_independent_chat_permissions"):
        for name in MEDIA_PERMISSIONS:
            data.setdefault(name, media)
    try:
        return ChatPermissions.model_validate(data)
    except pydantic.ValidationError:
        raise ValidationError(bad_request(f"invalid {key}")) from None


def parse_admin_rights(data: dict[str, Any] | None) -> ChatAdministratorRights:
    try:
        return ChatAdministratorRights.model_validate(data or {})
    except pydantic.ValidationError:
        raise ValidationError(bad_request("invalid rights")) from None


def normalize_until_date(server: "TelegramServer", until_date: int | None) -> int | None:
    """Dates under 30 seconds or over 366 days away mean forever."""
    if not until_date:
        return None
    delta = until_date - server.clock.now()
    if delta < 30 or delta > 366 * 24 * 60 * 60:
        return None
    return until_date


# =============================================================================
# Text
# =============================================================================


def check_text(text: str | None) -> str:
    if not text:
        raise ValidationError(bad_request("message text is empty"))
    if utf16_len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(bad_request("message is too long"))
    return text


def check_caption(caption: str | None) -> None:
    if caption and utf16_len(caption) > MAX_CAPTION_LENGTH:
        raise ValidationError(bad_request("message caption is too long"))


def parse_text(
    text: str,
    parse_mode: str | None,
    entities: list[dict[str, Any]] | None,
) -> tuple[str, list[dict[str, Any]] | None]:
    """Apply parse_mode, or keep the explicit entities when there is none."""
    if not parse_mode:
        return text, entities or None
    try:
        parsed = parse_formatted_text(text, parse_mode)
    except ValueError:
        raise ValidationError(bad_request(f"unsupported parse_mode {parse_mode}")) from None
    return parsed.text, parsed.entities or None


def payload_text(
    payload: Payload,
    key: str = "text",
    parse_mode_key: str = "parse_mode",
    entities_key: str = "entities",
) -> tuple[str | None, list[dict[str, Any]] | None]:
    text = payload.get_str(key)
    if text is None:
        return None, None
    return parse_text(text, payload.get_str(parse_mode_key), payload.get_list(entities_key))


def inline_markup(payload: Payload) -> dict[str, Any] | None:
    return payload.get_dict("reply_markup")


# =============================================================================
# Message placement
# =============================================================================


def resolve_reply(server: "TelegramServer", chat: ChatRecord, payload: Payload) -> int | None:
    """Id of the message being replied to, checked to exist."""
    parameters = payload.get_dict("reply_parameters") or {}
    reply_to = parameters.get("message_id", payload.get_int("reply_to_message_id"))
    if reply_to is None:
        return None
    allow_without = parameters.get(
        "allow_sending_without_reply",
        payload.get_bool("allow_sending_without_reply"),
    )
    if server.chats.get_message(chat.id, int(reply_to)) is None:
        if allow_without:
            return None
        raise NotFoundError(bad_request("message to be replied not found"))
    return int(reply_to)


def resolve_thread(server: "TelegramServer", chat: ChatRecord, payload: Payload) -> int | None:
    """Forum topic to post in; closed topics accept only topic managers."""
    thread_id = payload.get_int("message_thread_id")
    if thread_id is None or not chat.is_forum:
        return thread_id
    topic = server.chats.get_forum_topic(chat.id, thread_id)
    if topic is None:
        raise NotFoundError(bad_request("message thread not found"))
    if topic.is_closed and not check_bot_permission(server, chat, "can_manage_topics"):
        raise PermissionDeniedError(bad_request("TOPIC_CLOSED"))
    return thread_id


def resolve_business_connection(server: "TelegramServer", payload: Payload) -> str | None:
    connection_id = payload.get_str("business_connection_id")
    if connection_id is None:
        return None
    connection = server.business.get_connection(connection_id)
    if connection is None or not connection.is_enabled:
        raise NotFoundError(bad_request("business connection not found"))
    if not connection.can_reply:
        raise PermissionDeniedError(bad_request("BUSINESS_PEER_INVALID"))
    return connection_id


def prepare_send(server: "TelegramServer", payload: Payload, permission: str, what: str) -> ChatRecord:
    """Checks shared by every send method, in platform order."""
    chat = require_chat(server, payload)
    require_bot_in_chat(server, chat)
    enforce_rate_limit(server, chat)
    require_send_permission(server, chat, permission, what)
    return chat


def resolve_placement(server: "TelegramServer", chat: ChatRecord, payload: Payload) -> dict[str, Any]:
    """Thread, reply, keyboard and business fields for a new message. Only checks."""
    return {
        "message_thread_id": resolve_thread(server, chat, payload),
        "reply_to_message_id": resolve_reply(server, chat, payload),
        "reply_markup": inline_markup(payload),
        "business_connection_id": resolve_business_connection(server, payload),
    }


def new_message(
    server: "TelegramServer",
    chat: ChatRecord,
    payload: Payload | None = None,
    **fields: Any,
) -> StoredMessage:
    """Bot message with a fresh id; placement fields come from the payload."""
    placement: dict[str, Any] = {}
    if payload is not None:
        placement = resolve_placement(server, chat, payload)
    placement.update(fields)
    return StoredMessage(
        message_id=server.sequencer.next_message_id(),
        chat_id=chat.id,
        date=server.clock.now(),
        from_user=server.bot_user,
        **placement,
    )


def publish_message(
    server: "TelegramServer",
    message: StoredMessage,
    response: BotResponse | None,
) -> dict[str, Any]:
    """Store a bot message, account it for throttling and report it."""
    server.chats.store_message(message)
    server.members.record_send(message.chat_id, server.bot_id)
    if message.business_connection_id is not None:
        server.business.track_message(message.business_connection_id, message.message_id, message.chat_id)
    rendered = server.chats.render(message)
    if response is not None:
        response.add_message(rendered, message.reply_markup)
    return rendered


# =============================================================================
# Edits
# =============================================================================


def find_edit_target(server: "TelegramServer", payload: Payload) -> StoredMessage | None:
    """
    The message an edit method addresses.

    Returns None for inline messages, which the bot cannot read back.
    """
    if payload.has("inline_message_id") and not payload.has("chat_id"):
        return None
    chat = require_chat(server, payload)
    message = require_message(server, chat, payload.require_int("message_id"))
    if not message.is_bot or message.from_user_id != server.bot_id:
        raise PermissionDeniedError(bad_request("message can't be edited"))
    return message


def ensure_modified(message: StoredMessage, **changes: Any) -> None:
    current = {key: getattr(message, key) for key in changes}
    if current == changes:
        raise ValidationError(
            bad_request(
                "message is not modified: specified new message content and reply markup "
                "are exactly the same as a current content and reply markup of the message"
            )
        )


def publish_edit(
    server: "TelegramServer",
    message: StoredMessage,
    response: BotResponse | None,
    **changes: Any,
) -> dict[str, Any]:
    edited = server.chats.edit_message(message.chat_id, message.message_id, **changes)
    rendered = server.chats.render(edited)
    if response is not None:
        response.add_edited_message(rendered)
    return rendered


# =============================================================================
# Files
# =============================================================================


def _upload_from(payload: Payload, value: Any) -> UploadedFile | None:
    if isinstance(value, UploadedFile):
        return value
    if isinstance(value, (bytes, bytearray)):
        return UploadedFile(filename=None, content=bytes(value))
    if isinstance(value, str) and value.startswith(ATTACH_PREFIX):
        attached = payload.get(value[len(ATTACH_PREFIX):])
        if attached is None:
            raise ValidationError(bad_request(f"file {value} not found in request"))
        return _upload_from(payload, attached)
    return None


def check_input_file(payload: Payload, value: Any, file_type: str) -> None:
    """Validate an InputFile reference without storing anything."""
    if value is None:
        raise ValidationError(bad_request(f"there is no {file_type} in the request"))
    upload = _upload_from(payload, value)
    if upload is not None:
        if upload.size > max_file_size(file_type):
            raise ValidationError(bad_request("file is too big"))
        return
    if not isinstance(value, str) or not value:
        if file_type == "photo":
            raise ValidationError(bad_request("there is no photo in the request"))
        raise ValidationError(bad_request(f"wrong remote file identifier specified: {value!r}"))


def resolve_input_file(
    server: "TelegramServer",
    payload: Payload,
    value: Any,
    file_type: str,
    **attributes: Any,
) -> StoredFile:
    """
    Turn an InputFile reference into a stored file.

    Uploads are size-checked and stored with their bytes. Known file ids
    are reused; any other string (a URL or a foreign id) is registered
    as a new file.
    """
    check_input_file(payload, value, file_type)
    upload = _upload_from(payload, value)
    if upload is not None:
        if upload.content_type and upload.content_type != "application/octet-stream":
            attributes["mime_type"] = upload.content_type
        if upload.filename:
            attributes["file_name"] = upload.filename
        return server.files.store_file(file_type, content=upload.content, **attributes)

    stored = server.files.get_file(value)
    if stored is not None:
        return stored
    if value.startswith(("http://", "https://")):
        name = value.rstrip("/").rsplit("/", 1)[-1]
        if name:
            attributes["file_name"] = name
        return server.files.store_file(file_type, **attributes)
    return server.files.store_file(file_type, file_id=value, **attributes)


def resolve_photo(server: "TelegramServer", payload: Payload, value: Any) -> list[dict[str, Any]]:
    """PhotoSize list for an uploaded, known or remote photo."""
    check_input_file(payload, value, "photo")
    upload = _upload_from(payload, value)
    if upload is not None:
        return server.files.store_photo(
            width=payload.get_int("width") or 800,
            height=payload.get_int("height") or 600,
            content=upload.content,
        )
    if server.files.has_file(value):
        return server.files.get_photo_family(value)
    return server.files.store_photo(width=800, height=600)
