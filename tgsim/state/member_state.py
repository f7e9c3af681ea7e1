"""
Chat membership, rate limiting and user profile storage.

Membership follows the platform's status machine:

    member <-> restricted            (restrict / unrestrict)
    member  -> administrator -> member (promote / demote)
    member, administrator -> kicked -> left (ban / unban)
    left, kicked -> member           (join / direct add)

Restriction and temporary-ban expiry are polled: every read consults the
shared Clock and reverts an expired record before returning it.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from tgsim.clock import Clock
from tgsim.permissions import ChatAdministratorRights, ChatPermissions

logger = logging.getLogger("tgsim.member_state")

CREATOR = "creator"
ADMINISTRATOR = "administrator"
MEMBER = "member"
RESTRICTED = "restricted"
LEFT = "left"
KICKED = "kicked"

ADMIN_STATUSES = (CREATOR, ADMINISTRATOR)
PRESENT_STATUSES = (CREATOR, ADMINISTRATOR, MEMBER, RESTRICTED)

# Explicit throttling, applied on top of slow mode
MESSAGES_PER_SECOND_PER_CHAT = 30
GROUP_MESSAGES_PER_MINUTE = 20

PROFILE_PHOTO_SIZES = (
    ("small", 160, 5000),
    ("medium", 320, 15000),
    ("big", 640, 50000),
)


@dataclass
class StoredMember:
    """One (chat, user) membership record."""

    chat_id: int
    user: dict[str, Any]
    status: str = MEMBER
    joined_date: int = 0
    rights: ChatAdministratorRights | None = None
    custom_title: str | None = None
    permissions: ChatPermissions | None = None
    until_date: int | None = None
    last_message_time: int | None = None

    @property
    def user_id(self) -> int:
        return self.user["id"]

    @property
    def is_admin(self) -> bool:
        return self.status in ADMIN_STATUSES

    @property
    def is_present(self) -> bool:
        return self.status in PRESENT_STATUSES


class MemberState:
    """
    Membership records for every chat, keyed by (chat_id, user_id).

    Also owns the user directory, per-chat send history used for
    throttling, profile photos and the premium flag.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._members: dict[tuple[int, int], StoredMember] = {}
        self._users: dict[int, dict[str, Any]] = {}
        self._send_times: dict[int, list[int]] = {}
        self._profile_photos: dict[int, list[list[dict[str, Any]]]] = {}
        self._premium: set[int] = set()

    # =========================================================================
    # Users
    # =========================================================================

    def register_user(self, user: dict[str, Any]) -> dict[str, Any]:
        """Remember a user; later registrations update the stored copy."""
        stored = dict(user)
        if stored["id"] in self._premium:
            stored["is_premium"] = True
        self._users[stored["id"]] = stored
        return stored

    def get_user(self, user_id: int) -> dict[str, Any] | None:
        return self._users.get(user_id)

    def user_or_stub(self, user_id: int) -> dict[str, Any]:
        """Known user dict, or a minimal one for an unknown id."""
        user = self._users.get(user_id)
        if user is not None:
            return user
        return {"id": user_id, "is_bot": False, "first_name": f"User{user_id}"}

    def set_premium(self, user_id: int, premium: bool = True) -> None:
        if premium:
            self._premium.add(user_id)
        else:
            self._premium.discard(user_id)
        user = self._users.get(user_id)
        if user is not None:
            if premium:
                user["is_premium"] = True
            else:
                user.pop("is_premium", None)

    def is_premium(self, user_id: int) -> bool:
        return user_id in self._premium

    # =========================================================================
    # Status machine
    # =========================================================================

    def get_member(self, chat_id: int, user_id: int) -> StoredMember | None:
        """Membership record with expired restrictions and bans reverted."""
        member = self._members.get((chat_id, user_id))
        if member is None:
            return None

        now = self._clock.now()
        if member.until_date and member.until_date <= now:
            if member.status == RESTRICTED:
                logger.debug("Restriction of %d in chat %d expired", user_id, chat_id)
                member.status = MEMBER
                member.permissions = None
                member.until_date = None
            elif member.status == KICKED:
                logger.debug("Ban of %d in chat %d expired", user_id, chat_id)
                member.status = LEFT
                member.until_date = None
        return member

    def get_status(self, chat_id: int, user_id: int) -> str:
        """Current status; users never seen in the chat count as left."""
        member = self.get_member(chat_id, user_id)
        return member.status if member else LEFT

    def _upsert(self, chat_id: int, user: dict[str, Any], status: str) -> StoredMember:
        user = self._users.get(user["id"]) or self.register_user(user)
        member = self._members.get((chat_id, user["id"]))
        if member is None:
            member = StoredMember(chat_id=chat_id, user=user, joined_date=self._clock.now())
            self._members[(chat_id, user["id"])] = member
        member.status = status
        member.rights = None
        member.custom_title = None
        member.permissions = None
        member.until_date = None
        logger.debug("User %d in chat %d is now %s", user["id"], chat_id, status)
        return member

    def set_member(self, chat_id: int, user: dict[str, Any]) -> StoredMember:
        """Add a user as a plain member (direct add or join)."""
        return self._upsert(chat_id, user, MEMBER)

    def set_owner(self, chat_id: int, user: dict[str, Any]) -> StoredMember:
        member = self._upsert(chat_id, user, CREATOR)
        member.rights = ChatAdministratorRights.full()
        return member

    def set_admin(
        self,
        chat_id: int,
        user: dict[str, Any],
        rights: ChatAdministratorRights | None = None,
        custom_title: str | None = None,
    ) -> StoredMember:
        member = self._upsert(chat_id, user, ADMINISTRATOR)
        member.rights = rights or ChatAdministratorRights(can_manage_chat=True)
        member.custom_title = custom_title
        return member

    def demote(self, chat_id: int, user_id: int) -> bool:
        member = self.get_member(chat_id, user_id)
        if member is None or member.status != ADMINISTRATOR:
            return False
        self._upsert(chat_id, member.user, MEMBER)
        return True

    def set_custom_title(self, chat_id: int, user_id: int, title: str) -> bool:
        member = self.get_member(chat_id, user_id)
        if member is None or member.status != ADMINISTRATOR:
            return False
        member.custom_title = title or None
        return True

    def restrict(
        self,
        chat_id: int,
        user_id: int,
        permissions: ChatPermissions,
        until_date: int | None = None,
    ) -> bool:
        """
        Restrict a member. Creator and administrators cannot be restricted.

        Granting every permission lifts the restriction instead.
        """
        member = self.get_member(chat_id, user_id)
        if member is not None and member.is_admin:
            return False
        user = member.user if member else self.user_or_stub(user_id)

        if permissions.is_unrestricted():
            if member is not None and member.status == RESTRICTED:
                self._upsert(chat_id, user, MEMBER)
            return True

        restricted = self._upsert(chat_id, user, RESTRICTED)
        restricted.permissions = permissions
        restricted.until_date = until_date or None
        return True

    def unrestrict(self, chat_id: int, user_id: int) -> bool:
        member = self.get_member(chat_id, user_id)
        if member is None or member.status != RESTRICTED:
            return False
        self._upsert(chat_id, member.user, MEMBER)
        return True

    def ban(self, chat_id: int, user_id: int, until_date: int | None = None) -> bool:
        """Kick a user, optionally until a given time. The creator is immune."""
        member = self.get_member(chat_id, user_id)
        if member is not None and member.status == CREATOR:
            return False
        user = member.user if member else self.user_or_stub(user_id)
        kicked = self._upsert(chat_id, user, KICKED)
        kicked.until_date = until_date or None
        return True

    def unban(self, chat_id: int, user_id: int) -> bool:
        """Lift a ban; the user ends up left and may join again."""
        member = self.get_member(chat_id, user_id)
        if member is None or member.status != KICKED:
            return False
        self._upsert(chat_id, member.user, LEFT)
        return True

    def leave(self, chat_id: int, user_id: int) -> bool:
        member = self.get_member(chat_id, user_id)
        if member is None or not member.is_present:
            return False
        self._upsert(chat_id, member.user, LEFT)
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def is_admin(self, chat_id: int, user_id: int) -> bool:
        member = self.get_member(chat_id, user_id)
        return member is not None and member.is_admin

    def get_chat_members(self, chat_id: int) -> list[StoredMember]:
        """Members currently present in the chat."""
        members = []
        for (member_chat_id, user_id) in list(self._members):
            if member_chat_id != chat_id:
                continue
            member = self.get_member(chat_id, user_id)
            if member is not None and member.is_present:
                members.append(member)
        return members

    def get_administrators(self, chat_id: int) -> list[StoredMember]:
        return [m for m in self.get_chat_members(chat_id) if m.is_admin]

    def count(self, chat_id: int) -> int:
        return len(self.get_chat_members(chat_id))

    def to_chat_member(self, member: StoredMember | None, user: dict[str, Any] | None = None) -> dict[str, Any]:
        """ChatMember wire object for a record; no record means left."""
        if member is None:
            return {"status": LEFT, "user": user}

        result: dict[str, Any] = {"status": member.status, "user": member.user}
        if member.status == CREATOR:
            rights = member.rights or ChatAdministratorRights.full()
            result["is_anonymous"] = rights.is_anonymous
            if member.custom_title:
                result["custom_title"] = member.custom_title
        elif member.status == ADMINISTRATOR:
            rights = member.rights or ChatAdministratorRights()
            result["can_be_edited"] = True
            result.update(rights.to_dict())
            if member.custom_title:
                result["custom_title"] = member.custom_title
        elif member.status == RESTRICTED:
            permissions = member.permissions or ChatPermissions()
            result["is_member"] = True
            result.update(permissions.to_dict(fill=True))
            result["until_date"] = member.until_date or 0
        elif member.status == KICKED:
            result["until_date"] = member.until_date or 0
        return result

    # =========================================================================
    # Rate limiting
    # =========================================================================

    def check_rate_limit(
        self,
        chat_id: int,
        user_id: int,
        chat_type: str,
        slow_mode_delay: int = 0,
    ) -> int | None:
        """
        Seconds to wait before user_id may send to chat_id, or None if it may
        send now. Does not record anything.
        """
        now = self._clock.now()
        member = self.get_member(chat_id, user_id)
        is_admin = member is not None and member.is_admin

        if slow_mode_delay and chat_type != "private" and not is_admin:
            if member is not None and member.last_message_time is not None:
                elapsed = now - member.last_message_time
                if elapsed < slow_mode_delay:
                    return slow_mode_delay - elapsed

        recent = [t for t in self._send_times.get(chat_id, []) if t > now - 60]
        self._send_times[chat_id] = recent

        if sum(1 for t in recent if t == now) >= MESSAGES_PER_SECOND_PER_CHAT:
            return 1

        if chat_type in ("group", "supergroup"):
            minute_start = now - now % 60
            if sum(1 for t in recent if t >= minute_start) >= GROUP_MESSAGES_PER_MINUTE:
                return 60 - now % 60

        return None

    def record_send(self, chat_id: int, user_id: int) -> None:
        """Account one successful send for throttling and slow mode."""
        now = self._clock.now()
        self._send_times.setdefault(chat_id, []).append(now)
        member = self._members.get((chat_id, user_id))
        if member is not None:
            member.last_message_time = now

    # =========================================================================
    # Profile photos
    # =========================================================================

    def add_profile_photo(self, user_id: int) -> list[dict[str, Any]]:
        """Give the user a new profile photo; it becomes the current one."""
        photos = self._profile_photos.setdefault(user_id, [])
        base = len(photos) + 1
        sizes = [
            {
                "file_id": f"profile_{user_id}_{base}_{suffix}",
                "file_unique_id": f"unique_profile_{user_id}_{base}_{suffix}",
                "width": width,
                "height": width,
                "file_size": file_size,
            }
            for suffix, width, file_size in PROFILE_PHOTO_SIZES
        ]
        photos.insert(0, sizes)
        return sizes

    def get_profile_photos(
        self,
        user_id: int,
        offset: int = 0,
        limit: int = 100,
    ) -> tuple[int, list[list[dict[str, Any]]]]:
        """Total count and one page of photos, newest first."""
        photos = self._profile_photos.get(user_id, [])
        return len(photos), photos[offset:offset + limit]

    def clear(self) -> None:
        self._members.clear()
        self._users.clear()
        self._send_times.clear()
        self._profile_photos.clear()
        self._premium.clear()
        logger.debug("Cleared all memberships")
