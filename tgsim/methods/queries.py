"""
Query answer API method handlers.

Handles: answerCallbackQuery, answerInlineQuery, answerWebAppQuery
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, ValidationError, bad_request
from tgsim.payload import Payload
from tgsim.state.query_state import CALLBACK, INLINE, PendingQuery

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.queries")

MAX_CALLBACK_TEXT_LENGTH = 200
MAX_INLINE_RESULTS = 50
MAX_RESULT_ID_LENGTH = 64


def _pending_query(server: "TelegramServer", query_id: str | None, kind: str) -> PendingQuery:
    query = server.queries.get(query_id, kind) if query_id else None
    if query is None:
        raise NotFoundError(bad_request("query is too old and response timeout expired or query ID is invalid"))
    if query.answered:
        raise ValidationError(bad_request("query is already answered"))
    return query


def handle_answer_callback_query(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle answerCallbackQuery API call."""
    query = _pending_query(server, payload.get_str("callback_query_id"), CALLBACK)
    text = payload.get_str("text")
    if text is not None and len(text) > MAX_CALLBACK_TEXT_LENGTH:
        raise ValidationError(bad_request("MESSAGE_TOO_LONG"))

    answer: dict[str, Any] = {
        "text": text,
        "show_alert": payload.get_bool("show_alert"),
        "url": payload.get_str("url"),
        "cache_time": payload.get_int("cache_time"),
    }
    server.queries.answer(query.id, query.kind, answer)
    if response is not None:
        response.callback_answer = answer
    logger.debug("answerCallbackQuery %s: text=%r", query.id, text)
    return True


def handle_answer_inline_query(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle answerInlineQuery API call."""
    query = _pending_query(server, payload.get_str("inline_query_id"), INLINE)
    results = payload.get_list("results")
    if results is None:
        raise ValidationError(bad_request("results is required"))
    if len(results) > MAX_INLINE_RESULTS:
        raise ValidationError(bad_request("RESULTS_TOO_MUCH"))
    seen: set[str] = set()
    for result in results:
        if not isinstance(result, dict) or not result.get("type"):
            raise ValidationError(bad_request("RESULT_TYPE_INVALID"))
        result_id = str(result.get("id") or "")
        if not result_id or len(result_id) > MAX_RESULT_ID_LENGTH:
            raise ValidationError(bad_request("RESULT_ID_INVALID"))
        if result_id in seen:
            raise ValidationError(bad_request("RESULT_ID_DUPLICATE"))
        seen.add(result_id)

    answer = {
        "results": results,
        "cache_time": payload.get_int("cache_time"),
        "is_personal": payload.get_bool("is_personal"),
        "next_offset": payload.get_str("next_offset"),
        "button": payload.get_dict("button"),
    }
    server.queries.answer(query.id, query.kind, answer)
    if response is not None:
        response.inline_results = results
    logger.debug("answerInlineQuery %s: %d results", query.id, len(results))
    return True


def handle_answer_web_app_query(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, str]:
    """Results of a Web App query become an inline message."""
    query_id = payload.get_str("web_app_query_id")
    if not query_id:
        raise ValidationError(bad_request("web_app_query_id is required"))
    if payload.get_dict("result") is None:
        raise ValidationError(bad_request("result is required"))
    inline_message_id = f"webapp_result_{server.sequencer.next_inline_query_id()}"
    logger.debug("answerWebAppQuery %s -> %s", query_id, inline_message_id)
    return {"inline_message_id": inline_message_id}


METHODS = {
    "answerCallbackQuery": handle_answer_callback_query,
    "answerInlineQuery": handle_answer_inline_query,
    "answerWebAppQuery": handle_answer_web_app_query,
}
