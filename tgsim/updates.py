"""
Build update envelopes for simulating user actions.

Every envelope is a plain dict shaped like the Bot API's Update object:
an update_id plus exactly one payload kind. aiogram's
Dispatcher.feed_raw_update accepts these directly.
"""
import logging
from typing import Any

from tgsim.clock import Clock, Sequencer

logger = logging.getLogger("tgsim.updates")

UPDATE_KINDS = (
    "message",
    "edited_message",
    "channel_post",
    "edited_channel_post",
    "business_connection",
    "business_message",
    "edited_business_message",
    "deleted_business_messages",
    "message_reaction",
    "message_reaction_count",
    "inline_query",
    "chosen_inline_result",
    "callback_query",
    "shipping_query",
    "pre_checkout_query",
    "poll",
    "poll_answer",
    "my_chat_member",
    "chat_member",
    "chat_join_request",
    "chat_boost",
    "removed_chat_boost",
)


def update_kind(update: dict[str, Any]) -> str:
    """The payload kind carried by an envelope."""
    kinds = [k for k in update if k != "update_id"]
    if len(kinds) != 1 or kinds[0] not in UPDATE_KINDS:
        raise ValueError(f"Malformed update envelope: {sorted(update)}")
    return kinds[0]


def emoji_reactions(emojis: list[str] | None) -> list[dict[str, Any]]:
    return [{"type": "emoji", "emoji": emoji} for emoji in emojis or []]


class UpdateFactory:
    """Builds update envelopes, drawing ids from the server's Sequencer."""

    def __init__(self, sequencer: Sequencer, clock: Clock) -> None:
        self._sequencer = sequencer
        self._clock = clock

    def envelope(self, kind: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Wrap one payload into an update with a fresh update_id."""
        if kind not in UPDATE_KINDS:
            raise ValueError(f"Unknown update kind: {kind}")
        update = {"update_id": self._sequencer.next_update_id(), kind: payload}
        logger.debug("Built %s update %d", kind, update["update_id"])
        return update

    # =========================================================================
    # Messages
    # =========================================================================

    def message(self, message: dict[str, Any], edited: bool = False) -> dict[str, Any]:
        """Message update; channel chats produce channel posts."""
        is_channel = message["chat"].get("type") == "channel"
        if is_channel:
            kind = "edited_channel_post" if edited else "channel_post"
        else:
            kind = "edited_message" if edited else "message"
        return self.envelope(kind, message)

    def business_message(self, message: dict[str, Any], edited: bool = False) -> dict[str, Any]:
        return self.envelope("edited_business_message" if edited else "business_message", message)

    # =========================================================================
    # Queries
    # =========================================================================

    def callback_query(
        self,
        query_id: str,
        user: dict[str, Any],
        data: str | None,
        message: dict[str, Any] | None = None,
        inline_message_id: str | None = None,
    ) -> dict[str, Any]:
        chat_id = message["chat"]["id"] if message else user["id"]
        payload: dict[str, Any] = {
            "id": query_id,
            "from": user,
            "chat_instance": str(chat_id),
        }
        if message is not None:
            payload["message"] = message
        if inline_message_id is not None:
            payload["inline_message_id"] = inline_message_id
        if data is not None:
            payload["data"] = data
        return self.envelope("callback_query", payload)

    def inline_query(
        self,
        query_id: str,
        user: dict[str, Any],
        query: str,
        offset: str = "",
        chat_type: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": query_id, "from": user, "query": query, "offset": offset}
        if chat_type is not None:
            payload["chat_type"] = chat_type
        return self.envelope("inline_query", payload)

    def chosen_inline_result(
        self,
        result_id: str,
        user: dict[str, Any],
        query: str,
        inline_message_id: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"result_id": result_id, "from": user, "query": query}
        if inline_message_id is not None:
            payload["inline_message_id"] = inline_message_id
        return self.envelope("chosen_inline_result", payload)

    def pre_checkout_query(
        self,
        query_id: str,
        user: dict[str, Any],
        currency: str,
        total_amount: int,
        invoice_payload: str,
    ) -> dict[str, Any]:
        return self.envelope(
            "pre_checkout_query",
            {
                "id": query_id,
                "from": user,
                "currency": currency,
                "total_amount": total_amount,
                "invoice_payload": invoice_payload,
            },
        )

    def shipping_query(
        self,
        query_id: str,
        user: dict[str, Any],
        invoice_payload: str,
        shipping_address: dict[str, Any],
    ) -> dict[str, Any]:
        return self.envelope(
            "shipping_query",
            {
                "id": query_id,
                "from": user,
                "invoice_payload": invoice_payload,
                "shipping_address": shipping_address,
            },
        )

    # =========================================================================
    # Polls and reactions
    # =========================================================================

    def poll(self, poll: dict[str, Any]) -> dict[str, Any]:
        return self.envelope("poll", poll)

    def poll_answer(self, poll_id: str, user: dict[str, Any], option_ids: list[int]) -> dict[str, Any]:
        return self.envelope(
            "poll_answer",
            {
                "poll_id": poll_id,
                "user": user,
                "option_ids": option_ids,
                "option_persistent_ids": [str(option_id) for option_id in option_ids],
            },
        )

    def message_reaction(
        self,
        chat: dict[str, Any],
        message_id: int,
        old_reaction: list[dict[str, Any]],
        new_reaction: list[dict[str, Any]],
        user: dict[str, Any] | None = None,
        actor_chat: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Reaction change by a user, or anonymously on behalf of actor_chat."""
        payload: dict[str, Any] = {
            "chat": chat,
            "message_id": message_id,
            "date": self._clock.now(),
            "old_reaction": old_reaction,
            "new_reaction": new_reaction,
        }
        if user is not None:
            payload["user"] = user
        if actor_chat is not None:
            payload["actor_chat"] = actor_chat
        return self.envelope("message_reaction", payload)

    def message_reaction_count(
        self,
        chat: dict[str, Any],
        message_id: int,
        counts: dict[str, int],
    ) -> dict[str, Any]:
        return self.envelope(
            "message_reaction_count",
            {
                "chat": chat,
                "message_id": message_id,
                "date": self._clock.now(),
                "reactions": [
                    {"type": {"type": "emoji", "emoji": emoji}, "total_count": count}
                    for emoji, count in counts.items()
                ],
            },
        )

    # =========================================================================
    # Membership
    # =========================================================================

    def chat_member(
        self,
        chat: dict[str, Any],
        actor: dict[str, Any],
        old_member: dict[str, Any],
        new_member: dict[str, Any],
        invite_link: dict[str, Any] | None = None,
        my_chat_member: bool = False,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "chat": chat,
            "from": actor,
            "date": self._clock.now(),
            "old_chat_member": old_member,
            "new_chat_member": new_member,
        }
        if invite_link is not None:
            payload["invite_link"] = invite_link
        return self.envelope("my_chat_member" if my_chat_member else "chat_member", payload)

    def chat_join_request(
        self,
        chat: dict[str, Any],
        user: dict[str, Any],
        invite_link: dict[str, Any] | None = None,
        bio: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "chat": chat,
            "from": user,
            "user_chat_id": user["id"],
            "date": self._clock.now(),
        }
        if invite_link is not None:
            payload["invite_link"] = invite_link
        if bio is not None:
            payload["bio"] = bio
        return self.envelope("chat_join_request", payload)

    # =========================================================================
    # Boosts and business
    # =========================================================================

    def chat_boost(self, chat: dict[str, Any], boost: dict[str, Any]) -> dict[str, Any]:
        return self.envelope("chat_boost", {"chat": chat, "boost": boost})

    def removed_chat_boost(
        self,
        chat: dict[str, Any],
        boost_id: str,
        source: dict[str, Any],
    ) -> dict[str, Any]:
        return self.envelope(
            "removed_chat_boost",
            {
                "chat": chat,
                "boost_id": boost_id,
                "remove_date": self._clock.now(),
                "source": source,
            },
        )

    def business_connection(self, connection: dict[str, Any]) -> dict[str, Any]:
        return self.envelope("business_connection", connection)

    def deleted_business_messages(
        self,
        connection_id: str,
        chat: dict[str, Any],
        message_ids: list[int],
    ) -> dict[str, Any]:
        return self.envelope(
            "deleted_business_messages",
            {"business_connection_id": connection_id, "chat": chat, "message_ids": message_ids},
        )
