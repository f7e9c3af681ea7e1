"""
Sticker set API method handlers.

Handles: getStickerSet, getCustomEmojiStickers, uploadStickerFile,
         createNewStickerSet, addStickerToSet, deleteStickerFromSet,
         setStickerPositionInSet, deleteStickerSet, setStickerSetTitle
"""
import logging
import re
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, ValidationError, bad_request
from tgsim.methods.common import require_user_id, resolve_input_file
from tgsim.payload import Payload
from tgsim.state.sticker_state import MAX_STICKERS_PER_SET, STICKER_TYPES, StoredStickerSet

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.stickers")

MAX_CUSTOM_EMOJI_IDS = 200
MAX_SET_TITLE_LENGTH = 64
MAX_SET_NAME_LENGTH = 64
MAX_INITIAL_STICKERS = 50
STICKER_FORMATS = ("static", "animated", "video")

SET_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def _require_set(server: "TelegramServer", name: str | None) -> StoredStickerSet:
    sticker_set = server.stickers.get_sticker_set(name) if name else None
    if sticker_set is None:
        raise NotFoundError(bad_request("STICKERSET_INVALID"))
    return sticker_set


def _check_title(title: str | None) -> str:
    if not title or len(title) > MAX_SET_TITLE_LENGTH:
        raise ValidationError(bad_request("STICKERSET_TITLE_INVALID"))
    return title


def _input_sticker(server: "TelegramServer", payload: Payload, item: Any) -> dict[str, Any]:
    """Keyword arguments for StickerState.add_sticker_to_set from an InputSticker."""
    if not isinstance(item, dict):
        raise ValidationError(bad_request("invalid sticker"))
    emoji_list = item.get("emoji_list") or []
    if not emoji_list:
        raise ValidationError(bad_request("STICKER_EMOJI_INVALID"))
    stored = resolve_input_file(server, payload, item.get("sticker"), "sticker", width=512, height=512)
    return {"emoji": emoji_list[0], "file_id": stored.file_id}


def handle_get_sticker_set(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle getStickerSet API call."""
    return _require_set(server, payload.get_str("name")).to_dict()


def handle_get_custom_emoji_stickers(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> list[dict[str, Any]]:
    ids = [str(i) for i in payload.get_list("custom_emoji_ids") or []]
    if len(ids) > MAX_CUSTOM_EMOJI_IDS:
        raise ValidationError(bad_request("too many custom emoji identifiers specified"))
    return server.stickers.get_custom_emoji_stickers(ids)


def handle_upload_sticker_file(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle uploadStickerFile API call. Returns the File for later use."""
    require_user_id(payload)
    sticker_format = payload.get_str("sticker_format") or "static"
    if sticker_format not in STICKER_FORMATS:
        raise ValidationError(bad_request("STICKER_FORMAT_INVALID"))
    stored = resolve_input_file(server, payload, payload.get("sticker"), "sticker", width=512, height=512)
    logger.debug("uploadStickerFile: %s (%s bytes)", stored.file_id, stored.file_size)
    return stored.to_file()


def handle_create_new_sticker_set(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """
    Handle createNewStickerSet API call.

    Set names must end with _by_<bot username> and be unused.
    """
    user_id = require_user_id(payload)
    name = payload.get_str("name") or ""
    suffix = f"_by_{server.bot_user['username']}"
    if (
        len(name) > MAX_SET_NAME_LENGTH
        or not SET_NAME_RE.match(name)
        or not name.lower().endswith(suffix.lower())
        or "__" in name
    ):
        raise ValidationError(bad_request("STICKERSET_NAME_INVALID"))
    if server.stickers.has_sticker_set(name):
        raise ValidationError(bad_request("sticker set name is already occupied"))
    title = _check_title(payload.get_str("title"))
    sticker_type = payload.get_str("sticker_type") or "regular"
    if sticker_type not in STICKER_TYPES:
        raise ValidationError(bad_request("STICKER_TYPE_INVALID"))
    items = payload.get_list("stickers") or []
    if not 1 <= len(items) <= MAX_INITIAL_STICKERS:
        raise ValidationError(bad_request("STICKERS_EMPTY" if not items else "STICKERS_TOO_MUCH"))
    stickers = [_input_sticker(server, payload, item) for item in items]

    server.stickers.create_sticker_set(name, title, sticker_type, stickers, owner_id=user_id)
    logger.debug("createNewStickerSet: %s with %d stickers", name, len(stickers))
    return True


def handle_add_sticker_to_set(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    require_user_id(payload)
    sticker_set = _require_set(server, payload.get_str("name"))
    if len(sticker_set.stickers) >= MAX_STICKERS_PER_SET:
        raise ValidationError(bad_request("STICKERS_TOO_MUCH"))
    sticker = _input_sticker(server, payload, payload.get_dict("sticker"))

    server.stickers.add_sticker_to_set(sticker_set.name, **sticker)
    return True


def _require_sticker_in_set(server: "TelegramServer", payload: Payload) -> str:
    file_id = payload.require_str("sticker")
    if server.stickers.find_set_by_sticker(file_id) is None:
        raise NotFoundError(bad_request("STICKER_INVALID"))
    return file_id


def handle_delete_sticker_from_set(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    file_id = _require_sticker_in_set(server, payload)
    server.stickers.delete_sticker_from_set(file_id)
    return True


def handle_set_sticker_position_in_set(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    file_id = _require_sticker_in_set(server, payload)
    if not server.stickers.set_sticker_position(file_id, payload.require_int("position")):
        raise ValidationError(bad_request("STICKER_POSITION_INVALID"))
    return True


def handle_delete_sticker_set(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    sticker_set = _require_set(server, payload.get_str("name"))
    server.stickers.delete_sticker_set(sticker_set.name)
    return True


def handle_set_sticker_set_title(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    sticker_set = _require_set(server, payload.get_str("name"))
    server.stickers.set_title(sticker_set.name, _check_title(payload.get_str("title")))
    return True


METHODS = {
    "getStickerSet": handle_get_sticker_set,
    "getCustomEmojiStickers": handle_get_custom_emoji_stickers,
    "uploadStickerFile": handle_upload_sticker_file,
    "createNewStickerSet": handle_create_new_sticker_set,
    "addStickerToSet": handle_add_sticker_to_set,
    "deleteStickerFromSet": handle_delete_sticker_from_set,
    "setStickerPositionInSet": handle_set_sticker_position_in_set,
    "deleteStickerSet": handle_delete_sticker_set,
    "setStickerSetTitle": handle_set_sticker_set_title,
}
