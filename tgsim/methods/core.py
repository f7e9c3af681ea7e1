"""
Bot identity, update delivery and webhook API method handlers.

Handles: getMe, getUpdates, setWebhook, deleteWebhook, getWebhookInfo,
         logOut, close
"""
import logging
import re
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import ApiError, ValidationError, bad_request
from tgsim.payload import Payload
from tgsim.update_queue import MAX_LIMIT

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.core")

MAX_WEBHOOK_CONNECTIONS = 100
SECRET_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{1,256}$")


def handle_get_me(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle getMe API call."""
    return {
        **server.bot_user,
        "can_join_groups": True,
        "can_read_all_group_messages": False,
        "supports_inline_queries": True,
        "can_connect_to_business": False,
        "has_main_web_app": False,
    }


async def handle_get_updates(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> list[dict[str, Any]]:
    """
    Handle getUpdates API call.

    Runs outside the dispatch lock: a long poll may wait up to timeout
    seconds for the next update.
    """
    if server.bot.has_webhook:
        raise ApiError(
            "Conflict: can't use getUpdates method while webhook is active; "
            "use deleteWebhook to delete the webhook first",
            error_code=409,
        )
    offset = payload.get_int("offset") or 0
    limit = payload.get_int("limit") or MAX_LIMIT
    if not 1 <= limit <= MAX_LIMIT:
        raise ValidationError(bad_request("invalid limit"))
    timeout = payload.get_int("timeout") or 0
    if timeout < 0:
        raise ValidationError(bad_request("invalid timeout"))
    timeout = min(timeout, server.settings.long_poll_max_timeout)

    updates = await server.update_queue.get_updates(max(offset, 0), limit, timeout)
    logger.debug("getUpdates offset=%d: %d updates", offset, len(updates))
    return updates


def handle_set_webhook(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle setWebhook API call. An empty url removes the webhook."""
    url = payload.get_str("url") or ""
    if url and not url.startswith("https://"):
        raise ValidationError(bad_request("bad webhook: HTTPS url must be provided for webhook"))
    secret_token = payload.get_str("secret_token")
    if secret_token is not None and not SECRET_TOKEN_RE.match(secret_token):
        raise ValidationError(bad_request("secret token contains unallowed characters"))
    max_connections = payload.get_int("max_connections") or 40
    if not 1 <= max_connections <= MAX_WEBHOOK_CONNECTIONS:
        raise ValidationError(bad_request("invalid max_connections"))

    if payload.get_bool("drop_pending_updates"):
        server.update_queue.drop_pending()
    if not url:
        server.bot.delete_webhook()
        return True
    server.bot.set_webhook(
        url,
        secret_token=secret_token,
        max_connections=max_connections,
        allowed_updates=payload.get_list("allowed_updates"),
        ip_address=payload.get_str("ip_address"),
        has_custom_certificate=payload.has("certificate"),
    )
    # Long polls cannot coexist with a webhook
    server.update_queue.abort()
    server.update_queue.resume()
    return True


def handle_delete_webhook(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    if payload.get_bool("drop_pending_updates"):
        dropped = server.update_queue.drop_pending()
        logger.debug("deleteWebhook dropped %d pending updates", dropped)
    server.bot.delete_webhook()
    return True


def handle_get_webhook_info(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    return server.bot.webhook.to_info(server.update_queue.pending_count)


def handle_log_out(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    logger.debug("logOut")
    return True


def handle_close(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    logger.debug("close")
    return True


METHODS = {
    "getMe": handle_get_me,
    "getUpdates": handle_get_updates,
    "setWebhook": handle_set_webhook,
    "deleteWebhook": handle_delete_webhook,
    "getWebhookInfo": handle_get_webhook_info,
    "logOut": handle_log_out,
    "close": handle_close,
}
