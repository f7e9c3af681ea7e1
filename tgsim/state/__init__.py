"""
Domain state managers.

Each manager owns one slice of platform state and shares the server's Clock
by reference.
"""
from tgsim.state.bot_state import BotState, WebhookRegistration
from tgsim.state.business_state import BusinessState, StoredBusinessConnection
from tgsim.state.chat_state import ChatBoost, ChatRecord, ChatState, ForumTopic, InviteLink, StoredMessage
from tgsim.state.file_state import FileState, StoredFile
from tgsim.state.member_state import MemberState, StoredMember
from tgsim.state.passport_state import PassportState, StoredPassportData
from tgsim.state.payment_state import PaymentQuery, PaymentState, StoredStarTransaction
from tgsim.state.poll_state import PollState, StoredPoll, StoredVote
from tgsim.state.query_state import PendingQuery, QueryState
from tgsim.state.sticker_state import StickerState, StoredStickerSet

__all__ = [
    # Chats and members
    "ChatState",
    "ChatRecord",
    "StoredMessage",
    "InviteLink",
    "ForumTopic",
    "ChatBoost",
    "MemberState",
    "StoredMember",
    # Content
    "PollState",
    "StoredPoll",
    "StoredVote",
    "FileState",
    "StoredFile",
    "StickerState",
    "StoredStickerSet",
    # Queries and payments
    "QueryState",
    "PendingQuery",
    "PaymentState",
    "PaymentQuery",
    "StoredStarTransaction",
    # Bot settings
    "BotState",
    "WebhookRegistration",
    # Business and passport
    "BusinessState",
    "StoredBusinessConnection",
    "PassportState",
    "StoredPassportData",
]
