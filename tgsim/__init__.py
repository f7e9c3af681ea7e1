"""
Simulated Telegram Bot API for offline bot testing.

Models the platform itself: chats, memberships, polls, invite links, files,
payments and business connections, with the validation, permission checks
and time-dependent behavior of the real service.

Usage:
    from tgsim import SimulatedBot

    @pytest.mark.asyncio
    async def test_bot_greets():
        dp = Dispatcher()
        dp.include_router(router)

        async with SimulatedBot(dp) as sim:
            user = sim.create_user("Alice")
            chat = sim.create_chat("private", user=user)
            response = await sim.send_command(chat.id, user, "start")
            assert response.has_text_containing("Welcome")
"""
from tgsim.bot_response import BotResponse
from tgsim.client import SimulatedBot
from tgsim.clock import Clock, Sequencer
from tgsim.config import Settings, get_settings
from tgsim.errors import (
    ApiError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)
from tgsim.markup import escape_html, escape_markdown_v2, format_text, parse_formatted_text
from tgsim.payload import Payload, UploadedFile
from tgsim.server import ButtonNotFoundError, NoMessagesError, SimulationError, TelegramServer
from tgsim.tracker import ApiCallRecord, RequestTracker
from tgsim.web import TelegramWebApp

__all__ = [
    # Main entry points
    "TelegramServer",
    "SimulatedBot",
    "TelegramWebApp",
    "BotResponse",
    # Errors
    "ApiError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "RateLimitError",
    "SimulationError",
    "ButtonNotFoundError",
    "NoMessagesError",
    # Markup
    "parse_formatted_text",
    "format_text",
    "escape_markdown_v2",
    "escape_html",
    # Internals (for advanced use)
    "Clock",
    "Sequencer",
    "Payload",
    "UploadedFile",
    "RequestTracker",
    "ApiCallRecord",
    "Settings",
    "get_settings",
]
