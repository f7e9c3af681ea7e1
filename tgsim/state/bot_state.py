"""
Bot-level settings: commands, localized profile texts, menu buttons,
default administrator rights and the webhook registration.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from tgsim.permissions import ChatAdministratorRights

logger = logging.getLogger("tgsim.bot_state")

DEFAULT_MENU_BUTTON = {"type": "default"}


def scope_key(scope: dict[str, Any] | None) -> str:
    """Stable key for a BotCommandScope; no scope means the default one."""
    if not scope or scope.get("type") == "default":
        return "default"
    return json.dumps(scope, sort_keys=True)


@dataclass
class WebhookRegistration:
    url: str = ""
    secret_token: str | None = None
    max_connections: int = 40
    allowed_updates: list[str] | None = None
    ip_address: str | None = None
    has_custom_certificate: bool = False

    def to_info(self, pending_update_count: int) -> dict[str, Any]:
        """WebhookInfo wire object."""
        info: dict[str, Any] = {
            "url": self.url,
            "has_custom_certificate": self.has_custom_certificate,
            "pending_update_count": pending_update_count,
        }
        if self.url:
            info["max_connections"] = self.max_connections
            if self.ip_address:
                info["ip_address"] = self.ip_address
        if self.allowed_updates is not None:
            info["allowed_updates"] = self.allowed_updates
        return info


@dataclass
class BotState:
    """Settings a bot configures about itself."""

    # (scope key, language code) -> list of BotCommand dicts
    commands: dict[tuple[str, str], list[dict[str, Any]]] = field(default_factory=dict)
    # language code ("" for the default) -> text
    names: dict[str, str] = field(default_factory=dict)
    descriptions: dict[str, str] = field(default_factory=dict)
    short_descriptions: dict[str, str] = field(default_factory=dict)
    # chat_id, or None for the default button
    menu_buttons: dict[int | None, dict[str, Any]] = field(default_factory=dict)
    default_rights: dict[bool, ChatAdministratorRights] = field(default_factory=dict)
    webhook: WebhookRegistration = field(default_factory=WebhookRegistration)

    # =========================================================================
    # Commands
    # =========================================================================

    def set_commands(
        self,
        commands: list[dict[str, Any]],
        scope: dict[str, Any] | None = None,
        language_code: str | None = None,
    ) -> None:
        self.commands[(scope_key(scope), language_code or "")] = list(commands)
        logger.debug("Set %d commands for %s/%s", len(commands), scope_key(scope), language_code or "-")

    def get_commands(
        self,
        scope: dict[str, Any] | None = None,
        language_code: str | None = None,
    ) -> list[dict[str, Any]]:
        return list(self.commands.get((scope_key(scope), language_code or ""), []))

    def delete_commands(
        self,
        scope: dict[str, Any] | None = None,
        language_code: str | None = None,
    ) -> None:
        self.commands.pop((scope_key(scope), language_code or ""), None)

    # =========================================================================
    # Localized texts
    # =========================================================================

    @staticmethod
    def _set_localized(table: dict[str, str], value: str | None, language_code: str | None) -> None:
        if value:
            table[language_code or ""] = value
        else:
            table.pop(language_code or "", None)

    @staticmethod
    def _get_localized(table: dict[str, str], language_code: str | None) -> str | None:
        """Text for the language, falling back to the default entry."""
        if language_code and language_code in table:
            return table[language_code]
        return table.get("")

    def set_name(self, name: str | None, language_code: str | None = None) -> None:
        self._set_localized(self.names, name, language_code)

    def get_name(self, language_code: str | None = None) -> str | None:
        return self._get_localized(self.names, language_code)

    def set_description(self, description: str | None, language_code: str | None = None) -> None:
        self._set_localized(self.descriptions, description, language_code)

    def get_description(self, language_code: str | None = None) -> str:
        return self._get_localized(self.descriptions, language_code) or ""

    def set_short_description(self, short_description: str | None, language_code: str | None = None) -> None:
        self._set_localized(self.short_descriptions, short_description, language_code)

    def get_short_description(self, language_code: str | None = None) -> str:
        return self._get_localized(self.short_descriptions, language_code) or ""

    # =========================================================================
    # Menu button and default rights
    # =========================================================================

    def set_menu_button(self, menu_button: dict[str, Any] | None, chat_id: int | None = None) -> None:
        self.menu_buttons[chat_id] = menu_button or dict(DEFAULT_MENU_BUTTON)

    def get_menu_button(self, chat_id: int | None = None) -> dict[str, Any]:
        if chat_id is not None and chat_id in self.menu_buttons:
            return self.menu_buttons[chat_id]
        return self.menu_buttons.get(None, dict(DEFAULT_MENU_BUTTON))

    def set_default_rights(self, rights: ChatAdministratorRights | None, for_channels: bool = False) -> None:
        if rights is None:
            self.default_rights.pop(for_channels, None)
        else:
            self.default_rights[for_channels] = rights

    def get_default_rights(self, for_channels: bool = False) -> ChatAdministratorRights:
        return self.default_rights.get(for_channels) or ChatAdministratorRights()

    # =========================================================================
    # Webhook
    # =========================================================================

    def set_webhook(self, url: str, **options: Any) -> None:
        self.webhook = WebhookRegistration(url=url, **options)
        logger.debug("Webhook set to %s", url or "(none)")

    def delete_webhook(self) -> None:
        self.webhook = WebhookRegistration()

    @property
    def has_webhook(self) -> bool:
        return bool(self.webhook.url)

    def clear(self) -> None:
        self.commands.clear()
        self.names.clear()
        self.descriptions.clear()
        self.short_descriptions.clear()
        self.menu_buttons.clear()
        self.default_rights.clear()
        self.webhook = WebhookRegistration()
