"""
Permission and administrator-right models.

Incoming permission payloads are validated into these models once, at the
API boundary; state managers only ever see typed values.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict


class ChatPermissions(BaseModel):
    """What non-administrator members may do in a chat."""

    model_config = ConfigDict(extra="ignore")

    can_send_messages: bool | None = None
    can_send_audios: bool | None = None
    can_send_documents: bool | None = None
    can_send_photos: bool | None = None
    can_send_videos: bool | None = None
    can_send_video_notes: bool | None = None
    can_send_voice_notes: bool | None = None
    can_send_polls: bool | None = None
    can_send_other_messages: bool | None = None
    can_add_web_page_previews: bool | None = None
    can_react_to_messages: bool | None = None
    can_edit_tag: bool | None = None
    can_change_info: bool | None = None
    can_invite_users: bool | None = None
    can_pin_messages: bool | None = None
    can_manage_topics: bool | None = None

    @classmethod
    def default_for(cls, chat_type: str) -> "ChatPermissions":
        """Defaults a freshly created chat of this type starts with."""
        return cls(
            can_send_messages=True,
            can_send_audios=True,
            can_send_documents=True,
            can_send_photos=True,
            can_send_videos=True,
            can_send_video_notes=True,
            can_send_voice_notes=True,
            can_send_polls=True,
            can_send_other_messages=True,
            can_add_web_page_previews=True,
            can_react_to_messages=True,
            can_edit_tag=False,
            can_change_info=False,
            can_invite_users=chat_type != "private",
            can_pin_messages=False,
            can_manage_topics=False,
        )

    @classmethod
    def all_allowed(cls) -> "ChatPermissions":
        return cls(**{name: True for name in cls.model_fields})

    def merged(self, update: "ChatPermissions") -> "ChatPermissions":
        """Overlay the fields explicitly set in update."""
        return self.model_copy(update=update.model_dump(exclude_none=True))

    def is_unrestricted(self) -> bool:
        """True when at least everything a plain group member may do is granted."""
        baseline = self.default_for("supergroup").model_dump()
        return all(getattr(self, name) is True for name, value in baseline.items() if value)

    def to_dict(self, fill: bool = False) -> dict[str, Any]:
        """Wire form. With fill=True missing fields become False."""
        data = self.model_dump()
        if fill:
            return {key: bool(value) for key, value in data.items()}
        return {key: value for key, value in data.items() if value is not None}


class ChatAdministratorRights(BaseModel):
    """Rights bitset carried by an administrator."""

    model_config = ConfigDict(extra="ignore")

    is_anonymous: bool = False
    can_manage_chat: bool = False
    can_delete_messages: bool = False
    can_manage_video_chats: bool = False
    can_restrict_members: bool = False
    can_promote_members: bool = False
    can_change_info: bool = False
    can_invite_users: bool = False
    can_post_stories: bool = False
    can_edit_stories: bool = False
    can_delete_stories: bool = False
    can_send_welcome_messages: bool = False
    can_post_messages: bool | None = None
    can_edit_messages: bool | None = None
    can_pin_messages: bool = False
    can_manage_topics: bool = False
    can_manage_direct_messages: bool | None = None
    can_manage_tags: bool | None = None

    @classmethod
    def full(cls, is_anonymous: bool = False) -> "ChatAdministratorRights":
        """Every right granted, as the chat creator holds them."""
        rights = {name: True for name in cls.model_fields}
        rights["is_anonymous"] = is_anonymous
        return cls(**rights)

    def grants(self, right: str) -> bool:
        return getattr(self, right, None) is True

    def has_any_right(self) -> bool:
        """True when at least one can_* right is granted."""
        return any(
            getattr(self, name) is True
            for name in type(self).model_fields
            if name.startswith("can_")
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
