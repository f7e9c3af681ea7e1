"""
Telegram Passport submissions and the errors a bot reports on them.
"""
from dataclasses import dataclass, field
from typing import Any


@dataclass
class StoredPassportData:
    user_id: int
    data: list[dict[str, Any]] = field(default_factory=list)
    credentials: dict[str, Any] = field(default_factory=dict)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """PassportData wire object."""
        return {"data": self.data, "credentials": self.credentials}


class PassportState:
    """Latest passport submission per user."""

    def __init__(self) -> None:
        self._submissions: dict[int, StoredPassportData] = {}

    def set_passport_data(
        self,
        user_id: int,
        data: list[dict[str, Any]],
        credentials: dict[str, Any] | None = None,
    ) -> StoredPassportData:
        stored = StoredPassportData(user_id=user_id, data=data, credentials=credentials or {})
        self._submissions[user_id] = stored
        return stored

    def get_passport_data(self, user_id: int) -> StoredPassportData | None:
        return self._submissions.get(user_id)

    def has_passport_data(self, user_id: int) -> bool:
        return user_id in self._submissions

    def set_errors(self, user_id: int, errors: list[dict[str, Any]]) -> None:
        """Attach errors, creating an empty submission for unknown users."""
        stored = self._submissions.setdefault(user_id, StoredPassportData(user_id=user_id))
        stored.errors = list(errors)

    def get_errors(self, user_id: int) -> list[dict[str, Any]]:
        stored = self._submissions.get(user_id)
        return stored.errors if stored else []

    def clear_errors(self, user_id: int) -> None:
        stored = self._submissions.get(user_id)
        if stored is not None:
            stored.errors = []

    def remove_passport_data(self, user_id: int) -> bool:
        return self._submissions.pop(user_id, None) is not None

    def clear(self) -> None:
        self._submissions.clear()
