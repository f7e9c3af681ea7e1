"""
Telegram API method handlers.

Each module handles a group of related API methods and exports them in a
METHODS table keyed by Bot API method name.
"""
from tgsim.methods import (
    bot_settings,
    chats,
    core,
    forum,
    invites,
    media,
    members,
    messages,
    payments,
    polls,
    queries,
    stickers,
    users,
)
from tgsim.methods.common import Handler

METHODS: dict[str, Handler] = {
    # Identity and updates
    **core.METHODS,
    # Messages
    **messages.METHODS,
    **media.METHODS,
    **polls.METHODS,
    # Queries
    **queries.METHODS,
    # Chats
    **chats.METHODS,
    **members.METHODS,
    **invites.METHODS,
    **forum.METHODS,
    # Payments
    **payments.METHODS,
    # Stickers
    **stickers.METHODS,
    # Bot settings
    **bot_settings.METHODS,
    # Users, business and passport
    **users.METHODS,
}

__all__ = [
    "METHODS",
    "Handler",
]
