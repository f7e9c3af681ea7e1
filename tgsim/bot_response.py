"""
Per-invocation response accumulator.

A BotResponse collects everything the bot did while handling one update:
messages it sent, edited and deleted, the answers it gave to queries, and
every raw API call. Tests assert on it instead of on the tracker.

Usage:
    response = BotResponse()
    await server.handle("sendMessage", {"chat_id": 1, "text": "hi"}, response)
    response.text          # "hi"
    response.api_calls[0]  # ApiCallRecord(method="sendMessage", ...)
"""
from dataclasses import dataclass, field
from typing import Any

from tgsim.tracker import ApiCallRecord


@dataclass
class BotResponse:
    """Everything one bot invocation produced."""

    messages: list[dict[str, Any]] = field(default_factory=list)
    # Markup each sent message was requested with; reply keyboards are not echoed on the wire
    reply_markups: list[dict[str, Any] | None] = field(default_factory=list)
    edited_messages: list[dict[str, Any]] = field(default_factory=list)
    deleted_message_ids: list[int] = field(default_factory=list)
    api_calls: list[ApiCallRecord] = field(default_factory=list)
    callback_answer: dict[str, Any] | None = None
    inline_results: list[dict[str, Any]] | None = None
    poll: dict[str, Any] | None = None
    invite_link: dict[str, Any] | None = None
    invoice: dict[str, Any] | None = None
    pre_checkout_answer: dict[str, Any] | None = None
    shipping_answer: dict[str, Any] | None = None
    error: dict[str, Any] | None = None

    # =========================================================================
    # Recording
    # =========================================================================

    def add_message(self, message: dict[str, Any], reply_markup: dict[str, Any] | None = None) -> None:
        self.messages.append(message)
        self.reply_markups.append(reply_markup if reply_markup is not None else message.get("reply_markup"))

    def add_edited_message(self, message: dict[str, Any]) -> None:
        self.edited_messages.append(message)

    def add_deleted_message_id(self, message_id: int) -> None:
        self.deleted_message_ids.append(message_id)

    def add_api_call(self, record: ApiCallRecord) -> None:
        self.api_calls.append(record)
        if record.error is not None:
            self.error = record.error

    # =========================================================================
    # Messages
    # =========================================================================

    @property
    def sent_message(self) -> dict[str, Any] | None:
        return self.messages[-1] if self.messages else None

    @property
    def texts(self) -> list[str]:
        return [m["text"] for m in self.messages if isinstance(m.get("text"), str)]

    @property
    def text(self) -> str | None:
        """Text of the last text message sent."""
        texts = self.texts
        return texts[-1] if texts else None

    @property
    def edited_text(self) -> str | None:
        for message in reversed(self.edited_messages):
            if message.get("text"):
                return message["text"]
        return None

    @property
    def entities(self) -> list[dict[str, Any]] | None:
        for message in reversed(self.messages):
            if message.get("entities"):
                return message["entities"]
        return None

    @property
    def caption_entities(self) -> list[dict[str, Any]] | None:
        for message in reversed(self.messages):
            if message.get("caption_entities"):
                return message["caption_entities"]
        return None

    @property
    def deleted_messages(self) -> list[dict[str, int]]:
        return [{"message_id": message_id} for message_id in self.deleted_message_ids]

    def has_text(self, text: str) -> bool:
        return text in self.texts

    def has_text_containing(self, substring: str) -> bool:
        return any(substring in t for t in self.texts)

    def has_entity(self, entity_type: str) -> bool:
        return bool(self.get_entities_of_type(entity_type))

    def get_entities_of_type(self, entity_type: str) -> list[dict[str, Any]]:
        return [
            entity
            for message in self.messages
            for entity in message.get("entities") or []
            if entity["type"] == entity_type
        ]

    # =========================================================================
    # Keyboards
    # =========================================================================

    @property
    def keyboard(self) -> dict[str, list[list[dict[str, Any]]]] | None:
        """Keyboards attached to the last sent message."""
        if not self.reply_markups:
            return None
        markup = self.reply_markups[-1]
        if not isinstance(markup, dict):
            return None
        keyboard = {}
        if "inline_keyboard" in markup:
            keyboard["inline"] = markup["inline_keyboard"]
        if "keyboard" in markup:
            keyboard["reply"] = markup["keyboard"]
        return keyboard or None

    def has_inline_keyboard(self) -> bool:
        return bool(self.keyboard and "inline" in self.keyboard)

    def has_reply_keyboard(self) -> bool:
        return bool(self.keyboard and "reply" in self.keyboard)

    @property
    def removes_reply_keyboard(self) -> bool:
        markup = self.reply_markups[-1] if self.reply_markups else None
        return bool(isinstance(markup, dict) and markup.get("remove_keyboard"))

    def get_all_inline_buttons(self) -> list[dict[str, Any]]:
        if not self.has_inline_keyboard():
            return []
        return [button for row in self.keyboard["inline"] for button in row]

    def get_inline_button(self, text_or_data: str) -> dict[str, Any] | None:
        """Find a button by its text, then by its callback_data."""
        buttons = self.get_all_inline_buttons()
        for button in buttons:
            if button.get("text") == text_or_data:
                return button
        return self.get_inline_button_by_data(text_or_data)

    def get_inline_button_by_data(self, callback_data: str) -> dict[str, Any] | None:
        for button in self.get_all_inline_buttons():
            if button.get("callback_data") == callback_data:
                return button
        return None

    # =========================================================================
    # Errors and calls
    # =========================================================================

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def is_rate_limited(self) -> bool:
        return self.error is not None and self.error.get("error_code") == 429

    @property
    def retry_after(self) -> int | None:
        if self.error is None:
            return None
        return (self.error.get("parameters") or {}).get("retry_after")

    def has_api_call(self, method: str) -> bool:
        return any(c.method == method for c in self.api_calls)

    def get_api_calls_by_method(self, method: str) -> list[ApiCallRecord]:
        return [c for c in self.api_calls if c.method == method]

    def get_last_api_call(self, method: str) -> ApiCallRecord | None:
        calls = self.get_api_calls_by_method(method)
        return calls[-1] if calls else None
