"""
Bot API response envelopes.

Creates the JSON bodies aiogram parses: {ok, result} on success and
{ok: false, error_code, description, parameters?} on failure.
"""
from typing import Any


def make_ok_response(result: Any) -> dict[str, Any]:
    """Create successful Telegram API response."""
    return {"ok": True, "result": result}


def make_error_response(
    description: str,
    error_code: int = 400,
    parameters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create error Telegram API response."""
    response: dict[str, Any] = {
        "ok": False,
        "error_code": error_code,
        "description": description,
    }
    if parameters:
        response["parameters"] = parameters
    return response
