"""
High-level test client for bots built on aiogram.

Starts the simulated Bot API behind an aiohttp TestServer, points a real
aiogram Bot at it and feeds simulated user actions through a Dispatcher.
Every trigger returns the BotResponse collected while the bot handled it.
"""
import logging
from typing import Any

from aiohttp.test_utils import TestServer
from aiogram import Bot, Dispatcher
from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.client.telegram import TelegramAPIServer
from aiogram.fsm.storage.memory import MemoryStorage

from tgsim.bot_response import BotResponse
from tgsim.config import Settings
from tgsim.permissions import ChatAdministratorRights
from tgsim.server import TelegramServer
from tgsim.state import ChatRecord, StoredMessage
from tgsim.tracker import RequestTracker
from tgsim.updates import update_kind
from tgsim.utils.logger import log_update
from tgsim.web import TelegramWebApp

logger = logging.getLogger("tgsim.client")


class SimulatedBot:
    """
    Test client for integration tests.

    Simulates user interactions and captures bot responses. Triggers run
    one at a time; each one binds a fresh BotResponse for its duration.
    """

    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        settings: Settings | None = None,
        server: TelegramServer | None = None,
    ) -> None:
        self.dispatcher = dispatcher or Dispatcher(storage=MemoryStorage())
        self.server = server or TelegramServer(settings)
        self.web = TelegramWebApp(self.server)
        self._test_server: TestServer | None = None
        self._bot: Bot | None = None

    async def __aenter__(self) -> "SimulatedBot":
        """Start the HTTP transport and create the bot."""
        self._test_server = TestServer(self.web.app)
        await self._test_server.start_server()

        server_url = f"http://{self._test_server.host}:{self._test_server.port}"

        local_api = TelegramAPIServer.from_base(server_url)
        session = AiohttpSession(api=local_api)
        self._bot = Bot(token=self.server.settings.bot_token, session=session)

        logger.debug("SimulatedBot started at %s", server_url)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Stop the transport and close the bot session."""
        self.server.abort_updates()
        if self._bot is not None:
            await self._bot.session.close()
        if self._test_server is not None:
            await self._test_server.close()
        logger.debug("SimulatedBot stopped")

    @property
    def bot(self) -> Bot:
        """Get the bot instance."""
        if self._bot is None:
            raise RuntimeError("SimulatedBot not started. Use 'async with' context.")
        return self._bot

    @property
    def tracker(self) -> RequestTracker:
        return self.server.tracker

    async def feed(self, update: dict[str, Any] | None) -> BotResponse:
        """
        Deliver one update to the dispatcher and collect what the bot did.

        A None update (an action the platform ignores) yields an empty
        response without running the bot.
        """
        response = BotResponse()
        if update is None:
            return response
        if self.server.settings.trace_api:
            log_update(update["update_id"], update_kind(update))

        self.web.bind(response)
        try:
            await self.dispatcher.feed_raw_update(self.bot, update)
        finally:
            self.web.unbind()
        logger.debug("Update %d produced %d messages", update["update_id"], len(response.messages))
        return response

    # =========================================================================
    # Setup
    # =========================================================================

    def create_user(self, first_name: str = "Test", **kwargs: Any) -> dict[str, Any]:
        return self.server.create_user(first_name, **kwargs)

    def create_chat(self, chat_type: str = "private", **kwargs: Any) -> ChatRecord:
        return self.server.create_chat(chat_type, **kwargs)

    def set_owner(self, chat_id: int, user: dict[str, Any]) -> None:
        self.server.set_owner(chat_id, user)

    def set_admin(
        self,
        chat_id: int,
        user: dict[str, Any],
        rights: ChatAdministratorRights | dict[str, Any] | None = None,
    ) -> None:
        self.server.set_admin(chat_id, user, rights)

    def set_member(self, chat_id: int, user: dict[str, Any]) -> None:
        self.server.set_member(chat_id, user)

    def set_bot_admin(self, chat_id: int, rights: ChatAdministratorRights | dict[str, Any] | None = None) -> None:
        self.server.set_bot_admin(chat_id, rights)

    def set_bot_member(self, chat_id: int) -> None:
        self.server.set_bot_member(chat_id)

    def advance_time(self, seconds: int) -> int:
        return self.server.advance_time(seconds)

    # =========================================================================
    # User Actions
    # =========================================================================

    async def send_message(
        self,
        chat_id: int,
        user: dict[str, Any],
        text: str,
        parse_mode: str | None = None,
        reply_to_message_id: int | None = None,
    ) -> BotResponse:
        """Simulate user sending a text message."""
        update = self.server.simulate_message(
            chat_id,
            user,
            text,
            parse_mode=parse_mode,
            reply_to_message_id=reply_to_message_id,
        )
        return await self.feed(update)

    async def send_command(
        self,
        chat_id: int,
        user: dict[str, Any],
        command: str,
        args: str | None = None,
    ) -> BotResponse:
        return await self.feed(self.server.simulate_command(chat_id, user, command, args))

    async def click_button(
        self,
        chat_id: int,
        user: dict[str, Any],
        callback_data: str | None = None,
        button_text: str | None = None,
        message_id: int | None = None,
    ) -> BotResponse:
        """Simulate user clicking an inline button by callback_data or visible text."""
        if button_text is not None:
            update = self.server.simulate_button_click(chat_id, user, button_text)
        elif callback_data is not None:
            update = self.server.simulate_callback(chat_id, user, callback_data, message_id)
        else:
            raise ValueError("Either callback_data or button_text is required")
        return await self.feed(update)

    async def edit_user_message(self, chat_id: int, message_id: int, text: str) -> BotResponse:
        return await self.feed(self.server.simulate_edited_message(chat_id, message_id, text))

    async def send_inline_query(self, user: dict[str, Any], query: str, offset: str = "") -> BotResponse:
        return await self.feed(self.server.simulate_inline_query(user, query, offset))

    async def choose_inline_result(self, user: dict[str, Any], result_id: str, query: str) -> BotResponse:
        return await self.feed(self.server.simulate_chosen_inline_result(user, result_id, query))

    async def vote(self, poll_id: str, user: dict[str, Any], option_ids: list[int]) -> BotResponse:
        return await self.feed(self.server.simulate_poll_answer(poll_id, user, option_ids))

    async def react(
        self,
        chat_id: int,
        message_id: int,
        user: dict[str, Any],
        emojis: list[str],
    ) -> BotResponse:
        return await self.feed(self.server.simulate_reaction(chat_id, message_id, user, emojis))

    async def send_photo(
        self,
        chat_id: int,
        user: dict[str, Any],
        caption: str | None = None,
    ) -> BotResponse:
        """Simulate user sending a photo."""
        return await self.feed(self.server.simulate_photo(chat_id, user, caption=caption))

    async def send_document(
        self,
        chat_id: int,
        user: dict[str, Any],
        file_name: str = "document.pdf",
        content: bytes = b"%PDF-1.4 test",
        caption: str | None = None,
    ) -> BotResponse:
        """Simulate user sending a document."""
        update = self.server.simulate_document(
            chat_id,
            user,
            file_name=file_name,
            content=content,
            caption=caption,
        )
        return await self.feed(update)

    async def join_via_link(self, chat_id: int, user: dict[str, Any], invite_link: str) -> BotResponse:
        return await self.feed(self.server.join_via_link(chat_id, user, invite_link))

    async def request_join(self, chat_id: int, user: dict[str, Any], invite_link: str) -> BotResponse:
        return await self.feed(self.server.request_join(chat_id, user, invite_link))

    async def pre_checkout(
        self,
        user: dict[str, Any],
        currency: str,
        total_amount: int,
        invoice_payload: str,
    ) -> BotResponse:
        update = self.server.simulate_pre_checkout(user, currency, total_amount, invoice_payload)
        return await self.feed(update)

    async def successful_payment(
        self,
        user: dict[str, Any],
        currency: str,
        total_amount: int,
        invoice_payload: str,
    ) -> BotResponse:
        update = self.server.simulate_successful_payment(user, currency, total_amount, invoice_payload)
        return await self.feed(update)

    # =========================================================================
    # Stateful Chat Access
    # =========================================================================

    def get_conversation(self, chat_id: int) -> list[StoredMessage]:
        """Get full conversation history ordered by time."""
        return self.server.chats.get_conversation(chat_id)

    def get_bot_messages(self, chat_id: int) -> list[StoredMessage]:
        return self.server.chats.get_bot_messages(chat_id)

    def get_last_bot_message(self, chat_id: int) -> StoredMessage | None:
        return self.server.chats.get_last_bot_message(chat_id)

    def clear(self) -> None:
        """Reset the whole simulated platform."""
        self.server.reset()
        logger.debug("Cleared all state")
