"""
Bot settings API method handlers.

Handles: setMyCommands, getMyCommands, deleteMyCommands, setMyName, getMyName,
         setMyDescription, getMyDescription, setMyShortDescription,
         getMyShortDescription, setChatMenuButton, getChatMenuButton,
         setMyDefaultAdministratorRights, getMyDefaultAdministratorRights
"""
import logging
import re
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import ValidationError, bad_request
from tgsim.methods.common import parse_admin_rights, resolve_chat_id
from tgsim.payload import Payload

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.bot_settings")

MAX_COMMANDS = 100
MAX_COMMAND_LENGTH = 32
MAX_COMMAND_DESCRIPTION_LENGTH = 256
MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 512
MAX_SHORT_DESCRIPTION_LENGTH = 120

COMMAND_RE = re.compile(r"^[a-z0-9_]+$")
SCOPE_TYPES = (
    "default",
    "all_private_chats",
    "all_group_chats",
    "all_chat_administrators",
    "chat",
    "chat_administrators",
    "chat_member",
)
MENU_BUTTON_TYPES = ("default", "commands", "web_app")


def _scope(payload: Payload) -> dict[str, Any] | None:
    scope = payload.get_dict("scope")
    if scope is not None and scope.get("type") not in SCOPE_TYPES:
        raise ValidationError(bad_request("BOT_COMMAND_SCOPE_INVALID"))
    return scope


def _language(payload: Payload) -> str | None:
    language_code = payload.get_str("language_code")
    if language_code and len(language_code) != 2:
        raise ValidationError(bad_request("LANG_CODE_INVALID"))
    return language_code or None


# =============================================================================
# Commands
# =============================================================================


def handle_set_my_commands(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle setMyCommands API call."""
    commands = payload.get_list("commands")
    if commands is None:
        raise ValidationError(bad_request("commands is required"))
    if len(commands) > MAX_COMMANDS:
        raise ValidationError(bad_request("too many commands"))
    for command in commands:
        name = command.get("command", "") if isinstance(command, dict) else ""
        if not 1 <= len(name) <= MAX_COMMAND_LENGTH or not COMMAND_RE.match(name):
            raise ValidationError(bad_request("BOT_COMMAND_INVALID"))
        description = command.get("description", "")
        if not 1 <= len(description) <= MAX_COMMAND_DESCRIPTION_LENGTH:
            raise ValidationError(bad_request("BOT_COMMAND_DESCRIPTION_INVALID"))
    scope = _scope(payload)
    language_code = _language(payload)

    server.bot.set_commands(
        [{"command": c["command"], "description": c["description"]} for c in commands],
        scope,
        language_code,
    )
    return True


def handle_get_my_commands(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> list[dict[str, Any]]:
    return server.bot.get_commands(_scope(payload), _language(payload))


def handle_delete_my_commands(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    server.bot.delete_commands(_scope(payload), _language(payload))
    return True


# =============================================================================
# Profile texts
# =============================================================================


def _text(payload: Payload, key: str, limit: int, reason: str) -> str | None:
    value = payload.get_str(key)
    if value is not None and len(value) > limit:
        raise ValidationError(bad_request(reason))
    return value


def handle_set_my_name(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """An empty name falls back to the bot's own first name."""
    name = _text(payload, "name", MAX_NAME_LENGTH, "name is too long")
    server.bot.set_name(name, _language(payload))
    return True


def handle_get_my_name(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, str]:
    name = server.bot.get_name(_language(payload))
    return {"name": name if name is not None else server.bot_user["first_name"]}


def handle_set_my_description(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    description = _text(payload, "description", MAX_DESCRIPTION_LENGTH, "description is too long")
    server.bot.set_description(description, _language(payload))
    return True


def handle_get_my_description(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, str]:
    return {"description": server.bot.get_description(_language(payload))}


def handle_set_my_short_description(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    short_description = _text(
        payload,
        "short_description",
        MAX_SHORT_DESCRIPTION_LENGTH,
        "short description is too long",
    )
    server.bot.set_short_description(short_description, _language(payload))
    return True


def handle_get_my_short_description(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, str]:
    return {"short_description": server.bot.get_short_description(_language(payload))}


# =============================================================================
# Menu button and default rights
# =============================================================================


def _menu_chat_id(server: "TelegramServer", payload: Payload) -> int | None:
    if not payload.has("chat_id"):
        return None
    chat_id = resolve_chat_id(server, payload.get("chat_id"))
    if chat_id is None:
        raise ValidationError(bad_request("chat not found"))
    return chat_id


def handle_set_chat_menu_button(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle setChatMenuButton API call."""
    chat_id = _menu_chat_id(server, payload)
    menu_button = payload.get_dict("menu_button")
    if menu_button is not None:
        if menu_button.get("type") not in MENU_BUTTON_TYPES:
            raise ValidationError(bad_request("BUTTON_TYPE_INVALID"))
        if menu_button["type"] == "web_app" and not (menu_button.get("text") and menu_button.get("web_app")):
            raise ValidationError(bad_request("BUTTON_TEXT_INVALID"))
    server.bot.set_menu_button(menu_button, chat_id)
    return True


def handle_get_chat_menu_button(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    return server.bot.get_menu_button(_menu_chat_id(server, payload))


def handle_set_my_default_administrator_rights(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    rights = payload.get_dict("rights")
    server.bot.set_default_rights(
        parse_admin_rights(rights) if rights is not None else None,
        payload.get_bool("for_channels"),
    )
    return True


def handle_get_my_default_administrator_rights(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    rights = server.bot.get_default_rights(payload.get_bool("for_channels"))
    return rights.to_dict()


METHODS = {
    "setMyCommands": handle_set_my_commands,
    "getMyCommands": handle_get_my_commands,
    "deleteMyCommands": handle_delete_my_commands,
    "setMyName": handle_set_my_name,
    "getMyName": handle_get_my_name,
    "setMyDescription": handle_set_my_description,
    "getMyDescription": handle_get_my_description,
    "setMyShortDescription": handle_set_my_short_description,
    "getMyShortDescription": handle_get_my_short_description,
    "setChatMenuButton": handle_set_chat_menu_button,
    "getChatMenuButton": handle_get_chat_menu_button,
    "setMyDefaultAdministratorRights": handle_set_my_default_administrator_rights,
    "getMyDefaultAdministratorRights": handle_get_my_default_administrator_rights,
}
