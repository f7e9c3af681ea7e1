"""
Tests for settings, the simulated clock and id sequencing.
"""
import pytest
from freezegun import freeze_time

from tgsim.clock import Clock, Sequencer
from tgsim.config import Settings, get_settings
from tgsim.server import TelegramServer


class TestSettings:
    """Test Settings defaults and environment overrides."""

    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.delenv("TGSIM_BOT_ID", raising=False)
        settings = Settings(_env_file=None)

        assert settings.bot_id == 1234567890
        assert settings.bot_token.startswith("1234567890:")
        assert settings.start_time is None
        assert settings.trace_api is False

    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("TGSIM_BOT_USERNAME", "env_bot")
        monkeypatch.setenv("TGSIM_START_TIME", "1000")

        settings = Settings(_env_file=None)

        assert settings.bot_username == "env_bot"
        assert settings.start_time == 1000

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()

        assert get_settings() is get_settings()


class TestClock:
    """Test the shared simulated clock."""

    @freeze_time("2024-01-01 00:00:00")
    def test_defaults_to_wall_time(self) -> None:
        assert Clock().now() == 1704067200

    @freeze_time("2024-01-01 00:00:00")
    def test_does_not_follow_wall_time(self) -> None:
        """After construction only advance() moves the clock."""
        clock = Clock()

        with freeze_time("2024-06-01 00:00:00"):
            assert clock.now() == 1704067200

    def test_advance_and_set(self) -> None:
        clock = Clock(100)

        assert clock.advance(20) == 120
        clock.set(50)
        assert clock.now() == 50

    def test_backwards_rejected(self) -> None:
        with pytest.raises(ValueError):
            Clock(100).advance(-5)

    def test_shared_between_managers(self, server, group_chat, other_user) -> None:
        """Advancing the server clock lifts a ban in the member manager."""
        until = server.clock.now() + 120
        server.members.ban(group_chat.id, other_user["id"], until_date=until)

        server.advance_time(120)

        assert server.members.get_status(group_chat.id, other_user["id"]) == "left"


class TestSequencer:
    """Test id sequences."""

    def test_message_ids_shared_across_chats(self) -> None:
        sequencer = Sequencer()

        assert [sequencer.next_message_id() for _ in range(3)] == [1, 2, 3]

    def test_chat_ids(self) -> None:
        sequencer = Sequencer()

        assert sequencer.next_chat_id("group") == -1
        assert sequencer.next_chat_id("supergroup") == -1000000000002
        assert sequencer.next_chat_id("channel") == -1000000000003

    def test_query_ids_are_strings(self) -> None:
        sequencer = Sequencer()

        assert sequencer.next_callback_query_id() == "1"
        assert sequencer.next_inline_query_id() == "1"

    def test_reset(self) -> None:
        sequencer = Sequencer()
        sequencer.next_user_id()
        sequencer.next_update_id()

        sequencer.reset()

        assert sequencer.next_user_id() == 100000001
        assert sequencer.next_update_id() == 1

    @freeze_time("2024-01-01 00:00:00")
    def test_server_without_start_time(self) -> None:
        server = TelegramServer(Settings(_env_file=None))

        assert server.clock.now() == 1704067200
