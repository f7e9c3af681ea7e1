"""
User, boost, business and passport API method handlers.

Handles: getUserProfilePhotos, getUserChatBoosts, getBusinessConnection,
         setPassportDataErrors
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, ValidationError, bad_request
from tgsim.methods.common import require_chat, require_user_id
from tgsim.payload import Payload

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.users")

MAX_PHOTOS_LIMIT = 100
PASSPORT_ERROR_SOURCES = (
    "data",
    "front_side",
    "reverse_side",
    "selfie",
    "file",
    "files",
    "translation_file",
    "translation_files",
    "unspecified",
)


def handle_get_user_profile_photos(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle getUserProfilePhotos API call. Newest photo first."""
    user_id = require_user_id(payload)
    offset = payload.get_int("offset") or 0
    limit = payload.get_int("limit") or MAX_PHOTOS_LIMIT
    if offset < 0 or not 1 <= limit <= MAX_PHOTOS_LIMIT:
        raise ValidationError(bad_request("invalid offset or limit"))
    total, photos = server.members.get_profile_photos(user_id, offset, limit)
    return {"total_count": total, "photos": photos}


def handle_get_user_chat_boosts(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Active boosts the user gave the chat."""
    chat = require_chat(server, payload)
    user_id = require_user_id(payload)
    boosts = [
        boost.to_dict()
        for boost in server.chats.get_boosts(chat.id)
        if boost.source.get("user", {}).get("id") == user_id
    ]
    return {"boosts": boosts}


def handle_get_business_connection(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    connection_id = payload.require_str("business_connection_id")
    connection = server.business.get_connection(connection_id)
    if connection is None:
        raise NotFoundError(bad_request("business connection not found"))
    return connection.to_dict()


def handle_set_passport_data_errors(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle setPassportDataErrors API call. An empty list clears errors."""
    user_id = require_user_id(payload)
    errors = payload.get_list("errors")
    if errors is None:
        raise ValidationError(bad_request("errors is required"))
    for error in errors:
        if not isinstance(error, dict) or error.get("source") not in PASSPORT_ERROR_SOURCES:
            raise ValidationError(bad_request("invalid passport element error"))
        if not error.get("type") or not error.get("message"):
            raise ValidationError(bad_request("invalid passport element error"))

    server.passport.set_errors(user_id, errors)
    logger.debug("setPassportDataErrors: user=%d, %d errors", user_id, len(errors))
    return True


METHODS = {
    "getUserProfilePhotos": handle_get_user_profile_photos,
    "getUserChatBoosts": handle_get_user_chat_boosts,
    "getBusinessConnection": handle_get_business_connection,
    "setPassportDataErrors": handle_set_passport_data_errors,
}
