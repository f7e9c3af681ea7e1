"""
Poll API method handlers.

Handles: sendPoll, stopPoll
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, ValidationError, bad_request
from tgsim.methods.common import (
    inline_markup,
    new_message,
    parse_text,
    prepare_send,
    publish_edit,
    publish_message,
    require_chat,
)
from tgsim.payload import Payload
from tgsim.state.poll_state import validate_poll

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.polls")

POLL_TYPES = ("regular", "quiz")


def _option_texts(payload: Payload) -> list[str]:
    """Options arrive as plain strings or InputPollOption objects."""
    options = payload.get_list("options")
    if options is None:
        raise ValidationError(bad_request("POLL_OPTIONS_COUNT_INVALID"))
    texts = []
    for option in options:
        if isinstance(option, dict):
            option = option.get("text")
        texts.append("" if option is None else str(option))
    return texts


def handle_send_poll(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """
    Handle sendPoll API call.

    The poll is validated in full before a message id is taken, so a
    rejected poll leaves no trace.
    """
    question = payload.require_str("question")
    options = _option_texts(payload)
    poll_type = payload.get_str("type") or "regular"
    if poll_type not in POLL_TYPES:
        raise ValidationError(bad_request("POLL_TYPE_INVALID"))
    correct_option_id = payload.get_int("correct_option_id")
    explanation = payload.get_str("explanation")
    open_period = payload.get_int("open_period")
    validate_poll(question, options, poll_type, correct_option_id, explanation, open_period)
    if open_period is not None and payload.has("close_date"):
        raise ValidationError(bad_request("open_period and close_date can't be used together"))

    chat = prepare_send(server, payload, "can_send_polls", "polls")
    is_anonymous = payload.get_bool("is_anonymous", True)
    if chat.type == "channel" and not is_anonymous:
        raise ValidationError(bad_request("non-anonymous polls can't be sent to channel chats"))
    allows_multiple_answers = payload.get_bool("allows_multiple_answers")
    if poll_type == "quiz" and allows_multiple_answers:
        raise ValidationError(bad_request("quiz poll can't allow multiple answers"))
    if explanation:
        explanation, _ = parse_text(explanation, payload.get_str("explanation_parse_mode"), payload.get_list("explanation_entities"))

    message = new_message(server, chat, payload)
    poll = server.polls.create_poll(
        chat.id,
        message.message_id,
        server.bot_id,
        question,
        options,
        poll_type=poll_type,
        is_anonymous=is_anonymous,
        allows_multiple_answers=allows_multiple_answers,
        correct_option_id=correct_option_id,
        explanation=explanation,
        open_period=open_period,
        close_date=payload.get_int("close_date"),
    )
    if payload.get_bool("is_closed"):
        server.polls.stop_poll(poll.id)
    message.content = {"poll": poll.to_dict()}
    if response is not None:
        response.poll = poll.to_dict()
    logger.debug("sendPoll to chat %d: poll=%s, message_id=%d", chat.id, poll.id, message.message_id)
    return publish_message(server, message, response)


def handle_stop_poll(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle stopPoll API call. Returns the final poll."""
    chat = require_chat(server, payload)
    message_id = payload.require_int("message_id")
    poll = server.polls.get_poll_by_message(chat.id, message_id)
    if poll is None or server.polls.is_closed(poll.id) or server.chats.get_message(chat.id, message_id) is None:
        raise NotFoundError(bad_request("poll not found or already stopped"))
    message = server.chats.get_message(chat.id, message_id)
    if message.from_user_id != server.bot_id:
        raise ValidationError(bad_request("poll can't be stopped"))

    server.polls.stop_poll(poll.id)
    final = poll.to_dict()
    changes: dict[str, Any] = {"content": {"poll": final}}
    markup = inline_markup(payload)
    if markup is not None:
        changes["reply_markup"] = markup
    publish_edit(server, message, response, **changes)
    if response is not None:
        response.poll = final
    logger.debug("stopPoll: chat=%d, poll=%s", chat.id, poll.id)
    return final


METHODS = {
    "sendPoll": handle_send_poll,
    "stopPoll": handle_stop_poll,
}
