"""
Poll storage and vote accounting.

Each voter contributes to at most one option set at a time: a repeat vote
first removes the voter's previous contribution, so total_voter_count is
the number of distinct voters.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from tgsim.clock import Clock
from tgsim.errors import ValidationError, bad_request
from tgsim.markup import utf16_len

logger = logging.getLogger("tgsim.poll_state")

MAX_QUESTION_LENGTH = 300
MIN_OPTIONS = 2
MAX_OPTIONS = 10
MAX_OPTION_LENGTH = 100
MAX_EXPLANATION_LENGTH = 200
MAX_OPEN_PERIOD = 600


def validate_poll(
    question: str,
    options: list[str],
    poll_type: str = "regular",
    correct_option_id: int | None = None,
    explanation: str | None = None,
    open_period: int | None = None,
) -> None:
    """
    Raise ValidationError with the platform's reason for an invalid poll.

    Lengths are counted in UTF-16 code units, like message text.
    """
    if poll_type == "quiz" and correct_option_id is None:
        raise ValidationError(bad_request("quiz poll must have correct_option_id"))
    if correct_option_id is not None and not 0 <= correct_option_id < len(options):
        raise ValidationError(bad_request("QUIZ_CORRECT_OPTION_INVALID"))
    if open_period is not None and open_period > MAX_OPEN_PERIOD:
        raise ValidationError(bad_request("POLL_OPEN_PERIOD_TOO_LONG"))
    if explanation and utf16_len(explanation) > MAX_EXPLANATION_LENGTH:
        raise ValidationError(bad_request("POLL_EXPLANATION_TOO_LONG"))
    if utf16_len(question) > MAX_QUESTION_LENGTH:
        raise ValidationError(bad_request("POLL_QUESTION_TOO_LONG"))
    if not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
        raise ValidationError(bad_request("POLL_OPTIONS_COUNT_INVALID"))
    for option in options:
        if not option:
            raise ValidationError(bad_request("POLL_OPTION_EMPTY"))
        if utf16_len(option) > MAX_OPTION_LENGTH:
            raise ValidationError(bad_request("POLL_OPTION_TOO_LONG"))


@dataclass
class StoredVote:
    user_id: int
    option_ids: list[int]
    date: int


@dataclass
class StoredPoll:
    """Poll with its votes and the message that carries it."""

    id: str
    chat_id: int
    message_id: int
    creator_id: int
    question: str
    option_texts: list[str]
    voter_counts: list[int]
    poll_type: str = "regular"
    is_anonymous: bool = True
    allows_multiple_answers: bool = False
    correct_option_id: int | None = None
    explanation: str | None = None
    open_period: int | None = None
    close_date: int | None = None
    is_closed: bool = False
    votes: dict[int, StoredVote] = field(default_factory=dict)

    @property
    def total_voter_count(self) -> int:
        return len(self.votes)

    def to_dict(self) -> dict[str, Any]:
        """Poll wire object."""
        poll: dict[str, Any] = {
            "id": self.id,
            "question": self.question,
            "options": [
                {"persistent_id": str(index), "text": text, "voter_count": count}
                for index, (text, count) in enumerate(zip(self.option_texts, self.voter_counts))
            ],
            "total_voter_count": self.total_voter_count,
            "is_closed": self.is_closed,
            "is_anonymous": self.is_anonymous,
            "type": self.poll_type,
            "allows_multiple_answers": self.allows_multiple_answers,
            "allows_revoting": True,
            "members_only": False,
        }
        optional = {
            "correct_option_id": self.correct_option_id,
            "explanation": self.explanation,
            "open_period": self.open_period,
            "close_date": self.close_date,
        }
        poll.update({k: v for k, v in optional.items() if v is not None})
        return poll


class PollState:
    """Polls by id, indexed by the (chat, message) that carries them."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._polls: dict[str, StoredPoll] = {}
        self._by_message: dict[tuple[int, int], str] = {}
        self._poll_counter = 1

    def create_poll(
        self,
        chat_id: int,
        message_id: int,
        creator_id: int,
        question: str,
        options: list[str],
        poll_type: str = "regular",
        is_anonymous: bool = True,
        allows_multiple_answers: bool = False,
        correct_option_id: int | None = None,
        explanation: str | None = None,
        open_period: int | None = None,
        close_date: int | None = None,
    ) -> StoredPoll:
        """Validate and store a new poll."""
        validate_poll(question, options, poll_type, correct_option_id, explanation, open_period)

        if open_period and close_date is None:
            close_date = self._clock.now() + open_period

        poll = StoredPoll(
            id=str(self._poll_counter),
            chat_id=chat_id,
            message_id=message_id,
            creator_id=creator_id,
            question=question,
            option_texts=list(options),
            voter_counts=[0] * len(options),
            poll_type=poll_type,
            is_anonymous=is_anonymous,
            allows_multiple_answers=allows_multiple_answers,
            correct_option_id=correct_option_id,
            explanation=explanation,
            open_period=open_period,
            close_date=close_date,
        )
        self._poll_counter += 1
        self._polls[poll.id] = poll
        self._by_message[(chat_id, message_id)] = poll.id
        logger.debug("Created %s poll %s in chat %d", poll_type, poll.id, chat_id)
        return poll

    def get_poll(self, poll_id: str) -> StoredPoll | None:
        return self._polls.get(poll_id)

    def get_poll_by_message(self, chat_id: int, message_id: int) -> StoredPoll | None:
        poll_id = self._by_message.get((chat_id, message_id))
        return self._polls.get(poll_id) if poll_id else None

    def is_closed(self, poll_id: str) -> bool:
        """Closed when stopped or past close_date. Unknown polls count as closed."""
        poll = self._polls.get(poll_id)
        if poll is None:
            return True
        if not poll.is_closed and poll.close_date and poll.close_date <= self._clock.now():
            poll.is_closed = True
            logger.debug("Poll %s closed by close_date", poll_id)
        return poll.is_closed

    def vote(self, poll_id: str, user_id: int, option_ids: list[int]) -> StoredPoll | None:
        """
        Record a user's answer, replacing any earlier one.

        An empty option list retracts the vote. Returns None without touching
        the poll when it is closed or the answer is invalid.
        """
        if self.is_closed(poll_id):
            return None
        poll = self._polls[poll_id]

        if len(option_ids) > 1 and not poll.allows_multiple_answers:
            return None
        if len(set(option_ids)) != len(option_ids):
            return None
        if any(not 0 <= option_id < len(poll.option_texts) for option_id in option_ids):
            return None

        previous = poll.votes.pop(user_id, None)
        if previous is not None:
            for option_id in previous.option_ids:
                poll.voter_counts[option_id] -= 1

        if option_ids:
            for option_id in option_ids:
                poll.voter_counts[option_id] += 1
            poll.votes[user_id] = StoredVote(
                user_id=user_id,
                option_ids=list(option_ids),
                date=self._clock.now(),
            )

        logger.debug("User %d voted %s in poll %s", user_id, option_ids, poll_id)
        return poll

    def get_vote(self, poll_id: str, user_id: int) -> StoredVote | None:
        poll = self._polls.get(poll_id)
        return poll.votes.get(user_id) if poll else None

    def is_correct_answer(self, poll_id: str, user_id: int) -> bool | None:
        """Whether a quiz answer is right; None for regular polls or no answer."""
        poll = self._polls.get(poll_id)
        if poll is None or poll.poll_type != "quiz":
            return None
        vote = poll.votes.get(user_id)
        if vote is None:
            return None
        return poll.correct_option_id in vote.option_ids

    def stop_poll(self, poll_id: str) -> StoredPoll | None:
        """Close a poll. Idempotent; only unknown polls return None."""
        poll = self._polls.get(poll_id)
        if poll is None:
            return None
        if not poll.is_closed:
            poll.is_closed = True
            logger.debug("Stopped poll %s", poll_id)
        return poll

    def stop_poll_by_message(self, chat_id: int, message_id: int) -> StoredPoll | None:
        poll_id = self._by_message.get((chat_id, message_id))
        if poll_id is None:
            return None
        return self.stop_poll(poll_id)

    def delete_poll(self, poll_id: str) -> bool:
        poll = self._polls.pop(poll_id, None)
        if poll is None:
            return False
        self._by_message.pop((poll.chat_id, poll.message_id), None)
        return True

    def all_polls(self) -> list[StoredPoll]:
        return list(self._polls.values())

    def clear(self) -> None:
        self._polls.clear()
        self._by_message.clear()
        self._poll_counter = 1
