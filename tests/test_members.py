"""
Tests for member management API methods.
"""
import pytest

from tgsim.errors import NotFoundError, PermissionDeniedError, ValidationError
from tgsim.state.member_state import ADMINISTRATOR, KICKED, LEFT, MEMBER, RESTRICTED


@pytest.fixture
def member(server, group_chat, other_user):
    """other_user as a plain member of group_chat."""
    server.set_member(group_chat.id, other_user)
    return other_user


class TestBanChatMember:
    """Test banChatMember and unbanChatMember."""

    @pytest.mark.asyncio
    async def test_plain_member_bot_cannot_ban(self, server, group_chat, member) -> None:
        """The bot needs can_restrict_members."""
        with pytest.raises(PermissionDeniedError, match="restrict"):
            await server.handle("banChatMember", {"chat_id": group_chat.id, "user_id": member["id"]})

        assert server.members.get_status(group_chat.id, member["id"]) == MEMBER

    @pytest.mark.asyncio
    async def test_admin_without_right_cannot_ban(self, server, group_chat, member) -> None:
        server.set_bot_admin(group_chat.id, {"can_delete_messages": True})

        with pytest.raises(PermissionDeniedError, match="not enough rights to restrict/unrestrict chat member"):
            await server.handle("banChatMember", {"chat_id": group_chat.id, "user_id": member["id"]})

    @pytest.mark.asyncio
    async def test_ban_and_unban(self, server, admin_group, member) -> None:
        """Unbanned users end up left, not member."""
        await server.handle("banChatMember", {"chat_id": admin_group.id, "user_id": member["id"]})
        assert server.members.get_status(admin_group.id, member["id"]) == KICKED

        await server.handle("unbanChatMember", {"chat_id": admin_group.id, "user_id": member["id"]})
        assert server.members.get_status(admin_group.id, member["id"]) == LEFT

    @pytest.mark.asyncio
    async def test_cannot_ban_owner(self, server, admin_group, user) -> None:
        with pytest.raises(PermissionDeniedError):
            await server.handle("banChatMember", {"chat_id": admin_group.id, "user_id": user["id"]})

    @pytest.mark.asyncio
    async def test_private_chat_rejected(self, server, private_chat, user) -> None:
        with pytest.raises(ValidationError, match="private chats"):
            await server.handle("banChatMember", {"chat_id": private_chat.id, "user_id": user["id"]})

    @pytest.mark.asyncio
    async def test_temporary_ban_expires(self, server, admin_group, member) -> None:
        until = server.clock.now() + 3600
        await server.handle(
            "banChatMember",
            {"chat_id": admin_group.id, "user_id": member["id"], "until_date": until},
        )

        server.advance_time(3600)
        assert server.members.get_status(admin_group.id, member["id"]) == LEFT

    @pytest.mark.asyncio
    async def test_short_until_date_means_forever(self, server, admin_group, member) -> None:
        """A ban shorter than 30 seconds is permanent."""
        await server.handle(
            "banChatMember",
            {"chat_id": admin_group.id, "user_id": member["id"], "until_date": server.clock.now() + 10},
        )

        server.advance_time(3600)
        assert server.members.get_status(admin_group.id, member["id"]) == KICKED

    @pytest.mark.asyncio
    async def test_revoke_messages(self, server, admin_group, member) -> None:
        update = server.simulate_message(admin_group.id, member, "spam")

        await server.handle(
            "banChatMember",
            {"chat_id": admin_group.id, "user_id": member["id"], "revoke_messages": True},
        )

        assert server.chats.get_message(admin_group.id, update["message"]["message_id"]) is None

    @pytest.mark.asyncio
    async def test_unban_only_if_banned_keeps_member(self, server, admin_group, member) -> None:
        await server.handle(
            "unbanChatMember",
            {"chat_id": admin_group.id, "user_id": member["id"], "only_if_banned": True},
        )

        assert server.members.get_status(admin_group.id, member["id"]) == MEMBER


class TestRestrictChatMember:
    """Test restrictChatMember."""

    @pytest.mark.asyncio
    async def test_restrict_until_date(self, server, admin_group, member) -> None:
        """Restriction reverts when the clock passes until_date."""
        await server.handle(
            "restrictChatMember",
            {
                "chat_id": admin_group.id,
                "user_id": member["id"],
                "permissions": {"can_send_messages": False},
                "until_date": server.clock.now() + 600,
            },
        )
        result = await server.handle("getChatMember", {"chat_id": admin_group.id, "user_id": member["id"]})
        assert result["status"] == RESTRICTED
        assert result["can_send_messages"] is False

        server.advance_time(600)
        result = await server.handle("getChatMember", {"chat_id": admin_group.id, "user_id": member["id"]})
        assert result["status"] == MEMBER

    @pytest.mark.asyncio
    async def test_permissions_as_json_string(self, server, admin_group, member) -> None:
        """Multipart requests send permissions JSON-encoded."""
        await server.handle(
            "restrictChatMember",
            {
                "chat_id": str(admin_group.id),
                "user_id": str(member["id"]),
                "permissions": '{"can_send_messages": false}',
            },
        )

        assert server.members.get_status(admin_group.id, member["id"]) == RESTRICTED

    @pytest.mark.asyncio
    async def test_cannot_restrict_admin(self, server, admin_group, other_user) -> None:
        server.set_admin(admin_group.id, other_user, {"can_pin_messages": True})

        with pytest.raises(PermissionDeniedError, match="can't restrict self-administrator"):
            await server.handle(
                "restrictChatMember",
                {
                    "chat_id": admin_group.id,
                    "user_id": other_user["id"],
                    "permissions": {"can_send_messages": False},
                },
            )

    @pytest.mark.asyncio
    async def test_basic_group_restrict(self, server, user, other_user) -> None:
        chat = server.create_chat("group", user=user)
        server.set_bot_admin(chat.id)
        server.set_member(chat.id, other_user)

        await server.handle(
            "restrictChatMember",
            {"chat_id": chat.id, "user_id": other_user["id"], "permissions": {"can_send_messages": False}},
        )
        assert server.members.get_status(chat.id, other_user["id"]) == RESTRICTED

    @pytest.mark.asyncio
    async def test_channel_rejected(self, server, channel, other_user) -> None:
        with pytest.raises(ValidationError, match="supergroups"):
            await server.handle(
                "restrictChatMember",
                {"chat_id": channel.id, "user_id": other_user["id"], "permissions": {"can_send_messages": False}},
            )


class TestPromoteChatMember:
    """Test promoteChatMember."""

    @pytest.mark.asyncio
    async def test_promote_and_demote(self, server, admin_group, member) -> None:
        await server.handle(
            "promoteChatMember",
            {"chat_id": admin_group.id, "user_id": member["id"], "can_pin_messages": True},
        )
        result = await server.handle("getChatMember", {"chat_id": admin_group.id, "user_id": member["id"]})
        assert result["status"] == ADMINISTRATOR
        assert result["can_pin_messages"] is True

        await server.handle("promoteChatMember", {"chat_id": admin_group.id, "user_id": member["id"]})
        assert server.members.get_status(admin_group.id, member["id"]) == MEMBER

    @pytest.mark.asyncio
    async def test_cannot_grant_missing_right(self, server, group_chat, member) -> None:
        """An administrator bot can only grant rights it holds."""
        server.set_bot_admin(group_chat.id, {"can_promote_members": True})

        with pytest.raises(PermissionDeniedError, match="RIGHT_FORBIDDEN"):
            await server.handle(
                "promoteChatMember",
                {"chat_id": group_chat.id, "user_id": member["id"], "can_delete_messages": True},
            )

    @pytest.mark.asyncio
    async def test_absent_user(self, server, admin_group, other_user) -> None:
        with pytest.raises(NotFoundError, match="user not found"):
            await server.handle(
                "promoteChatMember",
                {"chat_id": admin_group.id, "user_id": other_user["id"], "can_pin_messages": True},
            )

    @pytest.mark.asyncio
    async def test_custom_title(self, server, admin_group, member) -> None:
        server.set_admin(admin_group.id, member, {"can_pin_messages": True})

        await server.handle(
            "setChatAdministratorCustomTitle",
            {"chat_id": admin_group.id, "user_id": member["id"], "custom_title": "Helper"},
        )

        result = await server.handle("getChatMember", {"chat_id": admin_group.id, "user_id": member["id"]})
        assert result["custom_title"] == "Helper"

    @pytest.mark.asyncio
    async def test_custom_title_too_long(self, server, admin_group, member) -> None:
        server.set_admin(admin_group.id, member)

        with pytest.raises(ValidationError, match="ADMIN_RANK_INVALID"):
            await server.handle(
                "setChatAdministratorCustomTitle",
                {"chat_id": admin_group.id, "user_id": member["id"], "custom_title": "x" * 17},
            )


class TestChatMemberQueries:
    """Test getChatMember, getChatAdministrators and getChatMemberCount."""

    @pytest.mark.asyncio
    async def test_unknown_user_is_left(self, server, group_chat) -> None:
        result = await server.handle("getChatMember", {"chat_id": group_chat.id, "user_id": 555})

        assert result["status"] == LEFT

    @pytest.mark.asyncio
    async def test_member_count_excludes_left(self, server, admin_group, member) -> None:
        """Owner, bot and member are counted; a banned user is not."""
        assert await server.handle("getChatMemberCount", {"chat_id": admin_group.id}) == 3

        await server.handle("banChatMember", {"chat_id": admin_group.id, "user_id": member["id"]})
        assert await server.handle("getChatMemberCount", {"chat_id": admin_group.id}) == 2

    @pytest.mark.asyncio
    async def test_administrators(self, server, admin_group, user) -> None:
        result = await server.handle("getChatAdministrators", {"chat_id": admin_group.id})

        ids = {entry["user"]["id"] for entry in result}
        assert ids == {user["id"], server.bot_id}
