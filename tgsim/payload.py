"""
Typed access to loosely-typed API payloads.

Bots send ids as numbers or strings and nested objects either as JSON
values or JSON-encoded strings (multipart form uploads). Payload converts
fields once and raises ValidationError with the platform wording on bad
input.
"""
import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from tgsim.errors import ValidationError, bad_request

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})


def _safe_int(value: Any) -> int | None:
    """Safely convert value to int, return None on failure."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def _maybe_json(value: Any) -> Any:
    """Decode strings that look like JSON objects or arrays."""
    if isinstance(value, str) and value and value[0] in "{[":
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


class Payload(Mapping[str, Any]):
    """Read-only view over one API call's parameters."""

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    def has(self, key: str) -> bool:
        return self._data.get(key) is not None

    def get_int(self, key: str) -> int | None:
        """Optional integer field; a malformed value is an error."""
        value = self._data.get(key)
        if value is None:
            return None
        parsed = _safe_int(value)
        if parsed is None:
            raise ValidationError(bad_request(f"invalid {key}"))
        return parsed

    def require_int(self, key: str) -> int:
        value = self.get_int(key)
        if value is None:
            raise ValidationError(bad_request(f"invalid {key}"))
        return value

    def get_float(self, key: str) -> float | None:
        value = self._data.get(key)
        if value is None:
            return None
        try:
            return float(value)
        except (ValueError, TypeError):
            raise ValidationError(bad_request(f"invalid {key}")) from None

    def require_float(self, key: str) -> float:
        value = self.get_float(key)
        if value is None:
            raise ValidationError(bad_request(f"{key} is required"))
        return value

    def get_str(self, key: str, default: str | None = None) -> str | None:
        value = self._data.get(key)
        if value is None:
            return default
        return value if isinstance(value, str) else str(value)

    def require_str(self, key: str) -> str:
        value = self.get_str(key)
        if value is None:
            raise ValidationError(bad_request(f"{key} is required"))
        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._data.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        lowered = str(value).strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValidationError(bad_request(f"invalid {key}"))

    def get_dict(self, key: str) -> dict[str, Any] | None:
        value = _maybe_json(self._data.get(key))
        if value is None:
            return None
        if not isinstance(value, dict):
            raise ValidationError(bad_request(f"invalid {key}"))
        return value

    def get_list(self, key: str) -> list[Any] | None:
        value = _maybe_json(self._data.get(key))
        if value is None:
            return None
        if not isinstance(value, list):
            raise ValidationError(bad_request(f"invalid {key}"))
        return value

    def int_list(self, key: str) -> list[int]:
        values = self.get_list(key) or []
        parsed = [_safe_int(v) for v in values]
        if any(v is None for v in parsed):
            raise ValidationError(bad_request(f"invalid {key}"))
        return [v for v in parsed if v is not None]


@dataclass
class UploadedFile:
    """A file sent as a multipart upload rather than by file_id or URL."""

    filename: str | None
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)
