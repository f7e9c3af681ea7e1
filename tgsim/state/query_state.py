"""
Pending callback and inline queries.

A query exists from the moment a user triggers it until the bot answers.
Answered queries are kept as an audit record of the answer payload.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("tgsim.query_state")

CALLBACK = "callback_query"
INLINE = "inline_query"


@dataclass
class PendingQuery:
    id: str
    kind: str
    user_id: int
    created_at: int
    data: dict[str, Any] = field(default_factory=dict)
    answered: bool = False
    answer: dict[str, Any] | None = None


class QueryState:
    """Queries by kind and id; callback and inline ids are separate sequences."""

    def __init__(self) -> None:
        self._queries: dict[tuple[str, str], PendingQuery] = {}

    def register(
        self,
        query_id: str,
        kind: str,
        user_id: int,
        created_at: int,
        data: dict[str, Any] | None = None,
    ) -> PendingQuery:
        query = PendingQuery(
            id=query_id,
            kind=kind,
            user_id=user_id,
            created_at=created_at,
            data=data or {},
        )
        self._queries[(kind, query_id)] = query
        logger.debug("Registered %s %s from user %d", kind, query_id, user_id)
        return query

    def get(self, query_id: str, kind: str) -> PendingQuery | None:
        return self._queries.get((kind, query_id))

    def answer(self, query_id: str, kind: str, answer: dict[str, Any]) -> PendingQuery | None:
        """Store the answer once. A second answer returns None."""
        query = self._queries.get((kind, query_id))
        if query is None or query.answered:
            return None
        query.answered = True
        query.answer = answer
        return query

    def pending(self, kind: str | None = None) -> list[PendingQuery]:
        return [
            q for q in self._queries.values()
            if not q.answered and (kind is None or q.kind == kind)
        ]

    def clear(self) -> None:
        self._queries.clear()
