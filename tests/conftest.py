"""
Test configuration and shared fixtures for tgsim.

Provides fixtures for:
- Settings with a fixed start time
- A fresh TelegramServer per test
- Users and chats of every type
- A Dispatcher for SimulatedBot tests
"""
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# =============================================================================
# LOAD TEST ENVIRONMENT (.env.test)
# =============================================================================

env_test_path = Path(__file__).parent.parent / ".env.test"
if env_test_path.exists():
    load_dotenv(env_test_path, override=True)

import pytest
from aiogram import Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from tgsim.config import Settings
from tgsim.server import TelegramServer
from tgsim.state import ChatRecord

START_TIME = 1_700_000_000


# =============================================================================
# SERVER
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with a fixed clock so dates are predictable."""
    return Settings(start_time=START_TIME, trace_api=False)


@pytest.fixture
def server(settings: Settings) -> TelegramServer:
    """A fresh, isolated simulated platform."""
    return TelegramServer(settings)


@pytest.fixture
def simple_dispatcher() -> Dispatcher:
    """Create a simple dispatcher for testing."""
    return Dispatcher(storage=MemoryStorage())


# =============================================================================
# ACTORS
# =============================================================================


@pytest.fixture
def user(server: TelegramServer) -> dict[str, Any]:
    return server.create_user("Alice", username="alice")


@pytest.fixture
def other_user(server: TelegramServer) -> dict[str, Any]:
    return server.create_user("Bob", username="bob")


@pytest.fixture
def private_chat(server: TelegramServer, user: dict[str, Any]) -> ChatRecord:
    return server.create_chat("private", user=user)


@pytest.fixture
def group_chat(server: TelegramServer, user: dict[str, Any]) -> ChatRecord:
    """Supergroup owned by user; the bot is a plain member."""
    return server.create_chat("supergroup", user=user, title="Test group")


@pytest.fixture
def admin_group(server: TelegramServer, group_chat: ChatRecord) -> ChatRecord:
    """Supergroup where the bot holds every administrator right."""
    server.set_bot_admin(group_chat.id)
    return group_chat


@pytest.fixture
def channel(server: TelegramServer, user: dict[str, Any]) -> ChatRecord:
    chat = server.create_chat("channel", user=user, title="Test channel")
    server.set_bot_admin(chat.id)
    return chat
