"""
aiohttp transport for the simulated Bot API.

Accepts requests in the same format as api.telegram.org, so an aiogram Bot
pointed at this app through TelegramAPIServer.from_base() talks to the
simulation exactly as it would talk to Telegram.
"""
import json
import logging
from typing import Any

from aiohttp import web

from tgsim.bot_response import BotResponse
from tgsim.payload import UploadedFile
from tgsim.responses import make_error_response
from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.web")


class TelegramWebApp:
    """
    HTTP front of one TelegramServer.

    Routes /bot{token}/{method} to TelegramServer.call() and serves stored
    file bytes under /file/bot{token}/{path}. While a BotResponse is bound,
    every call is also recorded into it.
    """

    def __init__(self, server: TelegramServer) -> None:
        self.server = server
        self.app = web.Application()
        self._response: BotResponse | None = None
        self._setup_routes()

    @property
    def response(self) -> BotResponse | None:
        return self._response

    def bind(self, response: BotResponse) -> None:
        """Attach the accumulator for one bot invocation."""
        if self._response is not None:
            raise RuntimeError("A response is already being collected; nested invocations are not allowed")
        self._response = response

    def unbind(self) -> None:
        self._response = None

    def _setup_routes(self) -> None:
        """Setup URL routes for Telegram API methods."""
        self.app.router.add_post("/bot{token}/{method}", self._handle_request)
        self.app.router.add_get("/bot{token}/{method}", self._handle_request)
        # File download route (for bot.download)
        self.app.router.add_get("/file/bot{token}/{path:.*}", self._handle_file_download)

    def _authorized(self, request: web.Request) -> bool:
        return request.match_info["token"] == self.server.settings.bot_token

    @staticmethod
    def _unauthorized() -> web.Response:
        return web.json_response(make_error_response("Unauthorized", 401), status=401)

    async def _handle_request(self, request: web.Request) -> web.Response:
        """Handle incoming API request."""
        if not self._authorized(request):
            logger.warning("Rejected request with unknown token")
            return self._unauthorized()
        method = request.match_info["method"]

        data = await self._parse_request_data(request)

        response_data = await self.server.call(method, data, self._response)

        logger.debug("API %s -> %s", method, "ok" if response_data.get("ok") else "error")

        status = 200
        if not response_data.get("ok") and "error_code" in response_data:
            status = response_data["error_code"]

        return web.json_response(response_data, status=status)

    async def _handle_file_download(self, request: web.Request) -> web.Response:
        """Serve the bytes of a stored file (for bot.download)."""
        if not self._authorized(request):
            return self._unauthorized()
        stored = self.server.files.get_file_by_path(request.match_info["path"])
        if stored is None:
            return web.json_response(make_error_response("Not Found", 404), status=404)
        return web.Response(
            body=stored.content or b"",
            content_type=stored.mime_type or "application/octet-stream",
        )

    @staticmethod
    async def _parse_request_data(request: web.Request) -> dict[str, Any]:
        """
        Parse request body based on content type.

        Form values stay strings; Payload decodes JSON-encoded fields when a
        handler reads them. Uploaded files become UploadedFile.
        """
        data: dict[str, Any] = dict(request.query)

        if request.content_type == "application/json":
            try:
                body = await request.json()
            except json.JSONDecodeError:
                return data
            if isinstance(body, dict):
                data.update(body)
            return data

        try:
            post_data = await request.post()
        except ValueError:
            return data
        for key, value in post_data.items():
            if isinstance(value, web.FileField):
                data[key] = UploadedFile(
                    filename=value.filename,
                    content=value.file.read(),
                    content_type=value.content_type,
                )
            else:
                data[key] = value
        return data
