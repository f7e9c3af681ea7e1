"""
Tests for MemberState: the membership status machine and its expiry.
"""
import pytest

from tgsim.clock import Clock
from tgsim.permissions import ChatAdministratorRights, ChatPermissions
from tgsim.state.member_state import (
    ADMINISTRATOR,
    CREATOR,
    KICKED,
    LEFT,
    MEMBER,
    RESTRICTED,
    MemberState,
)

CHAT_ID = -1000000000001
ALICE = {"id": 100000001, "is_bot": False, "first_name": "Alice"}
BOB = {"id": 100000002, "is_bot": False, "first_name": "Bob"}


@pytest.fixture
def clock() -> Clock:
    return Clock(1_700_000_000)


@pytest.fixture
def members(clock: Clock) -> MemberState:
    state = MemberState(clock)
    state.set_owner(CHAT_ID, ALICE)
    state.set_member(CHAT_ID, BOB)
    return state


class TestStatusMachine:
    """Test status transitions."""

    def test_unknown_user_is_left(self, members: MemberState) -> None:
        """Users never seen in a chat count as left."""
        assert members.get_status(CHAT_ID, 999) == LEFT

    def test_ban_then_unban_leaves_user_left(self, members: MemberState) -> None:
        """Unbanning does not bring a user back into the chat."""
        assert members.ban(CHAT_ID, BOB["id"])
        assert members.get_status(CHAT_ID, BOB["id"]) == KICKED

        assert members.unban(CHAT_ID, BOB["id"])
        assert members.get_status(CHAT_ID, BOB["id"]) == LEFT

    def test_creator_cannot_be_banned(self, members: MemberState) -> None:
        assert not members.ban(CHAT_ID, ALICE["id"])
        assert members.get_status(CHAT_ID, ALICE["id"]) == CREATOR

    def test_admin_cannot_be_restricted(self, members: MemberState) -> None:
        members.set_admin(CHAT_ID, BOB, ChatAdministratorRights(can_delete_messages=True))

        assert not members.restrict(CHAT_ID, BOB["id"], ChatPermissions(can_send_messages=False))
        assert members.get_status(CHAT_ID, BOB["id"]) == ADMINISTRATOR

    def test_full_permissions_unrestrict(self, members: MemberState) -> None:
        """Restricting with every permission lifts the restriction."""
        members.restrict(CHAT_ID, BOB["id"], ChatPermissions(can_send_messages=False))
        assert members.get_status(CHAT_ID, BOB["id"]) == RESTRICTED

        members.restrict(CHAT_ID, BOB["id"], ChatPermissions.all_allowed())
        assert members.get_status(CHAT_ID, BOB["id"]) == MEMBER

    def test_demote(self, members: MemberState) -> None:
        members.set_admin(CHAT_ID, BOB)

        assert members.demote(CHAT_ID, BOB["id"])
        assert members.get_status(CHAT_ID, BOB["id"]) == MEMBER

    def test_leave(self, members: MemberState) -> None:
        assert members.leave(CHAT_ID, BOB["id"])
        assert members.get_status(CHAT_ID, BOB["id"]) == LEFT
        assert not members.leave(CHAT_ID, BOB["id"])


class TestExpiry:
    """Test that timed restrictions and bans revert with the clock."""

    def test_restriction_expires(self, members: MemberState, clock: Clock) -> None:
        """A restricted member becomes a member again at until_date."""
        until = clock.now() + 3600
        members.restrict(CHAT_ID, BOB["id"], ChatPermissions(can_send_messages=False), until)

        clock.advance(3599)
        assert members.get_status(CHAT_ID, BOB["id"]) == RESTRICTED

        clock.advance(1)
        member = members.get_member(CHAT_ID, BOB["id"])
        assert member.status == MEMBER
        assert member.permissions is None

    def test_temporary_ban_expires_to_left(self, members: MemberState, clock: Clock) -> None:
        """An expired ban leaves the user free to join, not a member."""
        members.ban(CHAT_ID, BOB["id"], clock.now() + 60)

        clock.advance(60)
        assert members.get_status(CHAT_ID, BOB["id"]) == LEFT

    def test_permanent_ban_stays(self, members: MemberState, clock: Clock) -> None:
        members.ban(CHAT_ID, BOB["id"])

        clock.advance(10 * 365 * 24 * 3600)
        assert members.get_status(CHAT_ID, BOB["id"]) == KICKED


class TestChatMemberObject:
    """Test the ChatMember wire form."""

    def test_restricted_member_has_filled_permissions(self, members: MemberState) -> None:
        members.restrict(CHAT_ID, BOB["id"], ChatPermissions(can_send_messages=False))
        result = members.to_chat_member(members.get_member(CHAT_ID, BOB["id"]))

        assert result["status"] == RESTRICTED
        assert result["can_send_messages"] is False
        assert result["can_send_polls"] is False
        assert result["until_date"] == 0

    def test_missing_record_is_left(self, members: MemberState) -> None:
        result = members.to_chat_member(None, {"id": 5, "is_bot": False, "first_name": "X"})

        assert result["status"] == LEFT

    def test_administrator_lists_rights(self, members: MemberState) -> None:
        members.set_admin(CHAT_ID, BOB, ChatAdministratorRights(can_pin_messages=True), "Mod")
        result = members.to_chat_member(members.get_member(CHAT_ID, BOB["id"]))

        assert result["can_pin_messages"] is True
        assert result["can_delete_messages"] is False
        assert result["custom_title"] == "Mod"


class TestRateLimit:
    """Test group send throttling."""

    def test_group_limit_per_minute(self, members: MemberState, clock: Clock) -> None:
        """Twenty messages per minute in a group, then retry_after."""
        for _ in range(20):
            assert members.check_rate_limit(CHAT_ID, 1, "supergroup") is None
            members.record_send(CHAT_ID, 1)
            clock.advance(1)

        retry_after = members.check_rate_limit(CHAT_ID, 1, "supergroup")
        assert retry_after is not None
        assert retry_after > 0

    def test_slow_mode(self, members: MemberState, clock: Clock) -> None:
        """Slow mode applies to non-admins between their own messages."""
        members.record_send(CHAT_ID, BOB["id"])
        clock.advance(4)

        assert members.check_rate_limit(CHAT_ID, BOB["id"], "supergroup", slow_mode_delay=10) == 6
        assert members.check_rate_limit(CHAT_ID, ALICE["id"], "supergroup", slow_mode_delay=10) is None
