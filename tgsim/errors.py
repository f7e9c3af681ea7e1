"""
Platform-shaped API errors.

Every rejected API call raises one of these. The dispatch core turns them
into the same envelope api.telegram.org returns, so bot code under test
walks its real failure paths.
"""
from typing import Any

from tgsim.responses import make_error_response


class ApiError(Exception):
    """Base class for errors reported back to the bot."""

    error_code: int = 400

    def __init__(
        self,
        description: str,
        error_code: int | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(description)
        self.description = description
        if error_code is not None:
            self.error_code = error_code
        self.parameters: dict[str, Any] = dict(parameters or {})

    def to_response(self) -> dict[str, Any]:
        """Build the {ok: false, ...} envelope."""
        return make_error_response(self.description, self.error_code, dict(self.parameters) or None)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.error_code}, {self.description!r})"


class ValidationError(ApiError):
    """Malformed or out-of-range field."""


class NotFoundError(ApiError):
    """Referenced chat, message, user, poll, file or link is absent."""


class PermissionDeniedError(ApiError):
    """Bot lacks an administrative right or attempts a forbidden action."""


class RateLimitError(ApiError):
    """Slow mode or flood control violation."""

    error_code = 429

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            f"Too Many Requests: retry after {retry_after}",
            parameters={"retry_after": retry_after},
        )
        self.retry_after = retry_after


def bad_request(reason: str) -> str:
    """Prefix a reason the way the platform does for 400 errors."""
    return f"Bad Request: {reason}"
