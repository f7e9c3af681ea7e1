"""Tests for utils/logger.py."""

from tgsim.utils.logger import log_api_call, log_api_error, log_clock, log_update


class TestLogApiCall:
    """Tests for log_api_call."""

    def test_outputs_method(self, capsys):
        """Prints the method name."""
        log_api_call("sendMessage", {"text": "hi"})
        captured = capsys.readouterr()
        assert "API" in captured.out
        assert "sendMessage" in captured.out

    def test_with_chat_id(self, capsys):
        log_api_call("sendMessage", {"chat_id": 12345})
        captured = capsys.readouterr()
        assert "12345" in captured.out

    def test_has_emoji(self, capsys):
        log_api_call("getMe", {})
        captured = capsys.readouterr()
        assert "📤" in captured.out


class TestLogApiError:
    """Tests for log_api_error."""

    def test_outputs_error(self, capsys):
        """Prints code, method and description."""
        log_api_error("sendMessage", 400, "Bad Request: chat not found")
        captured = capsys.readouterr()
        assert "❌" in captured.out
        assert "400" in captured.out
        assert "chat not found" in captured.out


class TestLogUpdate:
    """Tests for log_update."""

    def test_outputs_update(self, capsys):
        log_update(7, "callback_query")
        captured = capsys.readouterr()
        assert "UPDATE" in captured.out
        assert "#7" in captured.out
        assert "callback_query" in captured.out


class TestLogClock:
    """Tests for log_clock."""

    def test_outputs_delta(self, capsys):
        log_clock(1_700_000_060, 60)
        captured = capsys.readouterr()
        assert "CLOCK" in captured.out
        assert "+60s" in captured.out


class TestTraceSetting:
    """Tests for trace_api on the server."""

    def test_silent_by_default(self, server, capsys):
        server.advance_time(5)
        captured = capsys.readouterr()
        assert "CLOCK" not in captured.out

    def test_traced_when_enabled(self, settings, capsys):
        from tgsim.server import TelegramServer

        server = TelegramServer(settings.model_copy(update={"trace_api": True}))
        server.advance_time(5)
        captured = capsys.readouterr()
        assert "CLOCK" in captured.out
