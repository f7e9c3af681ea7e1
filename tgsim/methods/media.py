"""
Media-related API method handlers.

Handles: sendPhoto, sendDocument, sendVideo, sendAudio, sendVoice,
         sendVideoNote, sendAnimation, sendSticker, sendMediaGroup,
         editMessageMedia, getFile
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, ValidationError, bad_request
from tgsim.methods.common import (
    check_caption,
    check_input_file,
    find_edit_target,
    inline_markup,
    new_message,
    parse_text,
    payload_text,
    prepare_send,
    publish_edit,
    publish_message,
    resolve_input_file,
    resolve_photo,
    resolve_placement,
)
from tgsim.payload import Payload

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.media")

# kind -> (send permission, wording in "not enough rights to send ...")
MEDIA_KINDS: dict[str, tuple[str, str]] = {
    "photo": ("can_send_photos", "photos"),
    "document": ("can_send_documents", "documents"),
    "video": ("can_send_videos", "videos"),
    "audio": ("can_send_audios", "audio files"),
    "voice": ("can_send_voice_notes", "voice notes"),
    "video_note": ("can_send_video_notes", "video notes"),
    "animation": ("can_send_other_messages", "animations"),
    "sticker": ("can_send_other_messages", "stickers"),
}

# Attributes a remote file gets when the request does not say otherwise
MEDIA_DEFAULTS: dict[str, dict[str, Any]] = {
    "video": {"width": 1920, "height": 1080, "duration": 60},
    "audio": {"duration": 180},
    "voice": {"duration": 30},
    "video_note": {"width": 240, "duration": 15},
    "animation": {"width": 320, "height": 240, "duration": 5},
    "document": {"file_name": "document.pdf", "mime_type": "application/pdf"},
}

MEDIA_GROUP_KINDS = ("photo", "video", "document", "audio")
MIN_MEDIA_GROUP = 2
MAX_MEDIA_GROUP = 10


def _file_attributes(kind: str, source: dict[str, Any] | Payload) -> dict[str, Any]:
    attributes = dict(MEDIA_DEFAULTS.get(kind, {}))
    for key in ("width", "height", "duration"):
        value = source.get(key)
        if value is not None:
            attributes[key] = int(value)
    if kind == "video_note" and source.get("length") is not None:
        attributes["width"] = int(source.get("length"))
    metadata = {key: source.get(key) for key in ("performer", "title") if source.get(key)}
    if metadata:
        attributes["metadata"] = metadata
    return attributes


def build_media_content(
    server: "TelegramServer",
    payload: Payload,
    kind: str,
    value: Any,
    source: dict[str, Any] | Payload | None = None,
) -> dict[str, Any]:
    """Message content ({kind: ...}) for one media item."""
    source = payload if source is None else source
    if kind == "photo":
        return {"photo": resolve_photo(server, payload, value)}
    if kind == "sticker":
        return {"sticker": _resolve_sticker(server, payload, value, source)}

    stored = resolve_input_file(server, payload, value, kind, **_file_attributes(kind, source))
    content: dict[str, Any] = {kind: server.files.to_media(stored)}
    if kind == "animation":
        # Clients that predate animations read them as documents
        content["document"] = server.files.to_media(stored)
    return content


def _resolve_sticker(
    server: "TelegramServer",
    payload: Payload,
    value: Any,
    source: dict[str, Any] | Payload,
) -> dict[str, Any]:
    if isinstance(value, str):
        sticker_set = server.stickers.find_set_by_sticker(value)
        if sticker_set is not None:
            return next(s for s in sticker_set.stickers if s["file_id"] == value)
    stored = resolve_input_file(server, payload, value, "sticker", width=512, height=512)
    sticker: dict[str, Any] = {
        "file_id": stored.file_id,
        "file_unique_id": stored.file_unique_id,
        "type": "regular",
        "width": stored.width or 512,
        "height": stored.height or 512,
        "is_animated": False,
        "is_video": False,
    }
    if source.get("emoji"):
        sticker["emoji"] = source.get("emoji")
    if stored.file_size is not None:
        sticker["file_size"] = stored.file_size
    return sticker


def _send_media(server: "TelegramServer", payload: Payload, response: BotResponse | None, kind: str) -> dict[str, Any]:
    caption_source = payload.get_str("caption")
    check_caption(caption_source)
    permission, wording = MEDIA_KINDS[kind]
    chat = prepare_send(server, payload, permission, wording)
    caption, caption_entities = payload_text(payload, "caption", "parse_mode", "caption_entities")
    placement = resolve_placement(server, chat, payload)
    check_input_file(payload, payload.get(kind), kind)

    content = build_media_content(server, payload, kind, payload.get(kind))
    if payload.get_bool("has_spoiler") and kind in ("photo", "video", "animation"):
        content["has_media_spoiler"] = True
    message = new_message(
        server,
        chat,
        caption=caption if kind != "sticker" else None,
        caption_entities=caption_entities if kind != "sticker" else None,
        content=content,
        **placement,
    )
    logger.debug("send %s to chat %d: message_id=%d", kind, chat.id, message.message_id)
    return publish_message(server, message, response)


def handle_send_photo(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle sendPhoto API call."""
    return _send_media(server, payload, response, "photo")


def handle_send_document(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle sendDocument API call."""
    return _send_media(server, payload, response, "document")


def handle_send_video(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle sendVideo API call."""
    return _send_media(server, payload, response, "video")


def handle_send_audio(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    return _send_media(server, payload, response, "audio")


def handle_send_voice(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    return _send_media(server, payload, response, "voice")


def handle_send_video_note(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle sendVideoNote API call."""
    return _send_media(server, payload, response, "video_note")


def handle_send_animation(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    return _send_media(server, payload, response, "animation")


def handle_send_sticker(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    return _send_media(server, payload, response, "sticker")


def handle_send_media_group(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> list[dict[str, Any]]:
    """
    Handle sendMediaGroup API call. Every item becomes its own message.

    All items are checked before the first one is stored, so a bad item
    rejects the whole album.
    """
    media = payload.get_list("media") or []
    if not MIN_MEDIA_GROUP <= len(media) <= MAX_MEDIA_GROUP:
        raise ValidationError(bad_request("media must include 2-10 items"))
    kinds = set()
    for item in media:
        if not isinstance(item, dict) or item.get("type") not in MEDIA_GROUP_KINDS:
            raise ValidationError(bad_request("invalid media type in media group"))
        check_caption(item.get("caption"))
        kinds.add(item["type"])
    if len(kinds) > 1 and kinds & {"document", "audio"}:
        raise ValidationError(bad_request("documents and audio files can't be mixed with other media types"))
    chat = prepare_send(server, payload, MEDIA_KINDS[media[0]["type"]][0], "media")
    placement = resolve_placement(server, chat, payload)
    placement["reply_markup"] = None

    captions = []
    for item in media:
        check_input_file(payload, item.get("media"), item["type"])
        caption = item.get("caption")
        caption_entities = None
        if caption is not None:
            caption, caption_entities = parse_text(caption, item.get("parse_mode"), item.get("caption_entities"))
        captions.append((caption, caption_entities))

    media_group_id = None
    messages = []
    for item, (caption, caption_entities) in zip(media, captions):
        content = build_media_content(server, payload, item["type"], item.get("media"), item)
        message = new_message(server, chat, caption=caption, caption_entities=caption_entities, **placement)
        media_group_id = media_group_id or str(message.message_id)
        content["media_group_id"] = media_group_id
        message.content = content
        messages.append(publish_message(server, message, response))

    logger.debug("sendMediaGroup to chat %d: %d items", chat.id, len(messages))
    return messages


def handle_edit_message_media(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any] | bool:
    """Handle editMessageMedia API call."""
    media = payload.get_dict("media")
    if media is None or media.get("type") not in ("photo", "video", "document", "audio", "animation"):
        raise ValidationError(bad_request("media is required"))
    check_caption(media.get("caption"))
    message = find_edit_target(server, payload)
    if message is None:
        return True
    if message.text is not None:
        raise ValidationError(bad_request("there is no media in the message to edit"))

    caption = media.get("caption")
    caption_entities = None
    if caption is not None:
        caption, caption_entities = parse_text(caption, media.get("parse_mode"), media.get("caption_entities"))
    content = build_media_content(server, payload, media["type"], media.get("media"), media)
    if message.content.get("media_group_id"):
        content["media_group_id"] = message.content["media_group_id"]
    return publish_edit(
        server,
        message,
        response,
        content=content,
        caption=caption,
        caption_entities=caption_entities,
        reply_markup=inline_markup(payload),
    )


def handle_get_file(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle getFile API call."""
    file_id = payload.require_str("file_id")
    stored = server.files.get_file(file_id)
    if stored is None:
        raise NotFoundError(bad_request("invalid file_id"))
    logger.debug("getFile: %s -> %s", file_id, stored.file_path)
    return stored.to_file()


METHODS = {
    "sendPhoto": handle_send_photo,
    "sendDocument": handle_send_document,
    "sendVideo": handle_send_video,
    "sendAudio": handle_send_audio,
    "sendVoice": handle_send_voice,
    "sendVideoNote": handle_send_video_note,
    "sendAnimation": handle_send_animation,
    "sendSticker": handle_send_sticker,
    "sendMediaGroup": handle_send_media_group,
    "editMessageMedia": handle_edit_message_media,
    "getFile": handle_get_file,
}
