"""
Telegram Stars transactions and pending payment queries.

Only what a bot can observe is modeled: charge ids, amounts, refund state
and the pre-checkout and shipping queries it has to answer.
"""
import logging
from dataclasses import dataclass
from typing import Any

from tgsim.clock import Clock

logger = logging.getLogger("tgsim.payment_state")

STARS_CURRENCY = "XTR"
PRE_CHECKOUT = "pre_checkout"
SHIPPING = "shipping"


@dataclass
class StoredStarTransaction:
    id: str
    user_id: int
    amount: int
    date: int
    telegram_payment_charge_id: str
    source: dict[str, Any] | None = None
    receiver: dict[str, Any] | None = None
    invoice_payload: str | None = None
    refunded: bool = False

    def to_dict(self) -> dict[str, Any]:
        transaction: dict[str, Any] = {
            "id": self.id,
            "amount": self.amount,
            "date": self.date,
        }
        if self.source is not None:
            transaction["source"] = self.source
        if self.receiver is not None:
            transaction["receiver"] = self.receiver
        return transaction


@dataclass
class PaymentQuery:
    """A pre-checkout or shipping query waiting for the bot's answer."""

    id: str
    kind: str
    user: dict[str, Any]
    invoice_payload: str
    currency: str | None = None
    total_amount: int | None = None
    answered: bool = False
    ok: bool | None = None
    error_message: str | None = None
    shipping_options: list[dict[str, Any]] | None = None


class PaymentState:
    """Star transactions per user and open payment queries by id."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._transactions: dict[int, dict[str, StoredStarTransaction]] = {}
        self._queries: dict[str, PaymentQuery] = {}
        self._transaction_counter = 1
        self._query_counter = 1
        self._invoice_link_counter = 1

    # =========================================================================
    # Star transactions
    # =========================================================================

    def create_transaction(
        self,
        user: dict[str, Any],
        amount: int,
        invoice_payload: str | None = None,
        charge_id: str | None = None,
    ) -> StoredStarTransaction:
        """Record an incoming Stars payment from user."""
        transaction_id = f"star_tx_{self._transaction_counter}"
        self._transaction_counter += 1
        partner: dict[str, Any] = {
            "type": "user",
            "transaction_type": "invoice_payment",
            "user": user,
        }
        if invoice_payload is not None:
            partner["invoice_payload"] = invoice_payload
        transaction = StoredStarTransaction(
            id=transaction_id,
            user_id=user["id"],
            amount=amount,
            date=self._clock.now(),
            telegram_payment_charge_id=charge_id or f"charge_{transaction_id}",
            source=partner,
            invoice_payload=invoice_payload,
        )
        self._transactions.setdefault(user["id"], {})[transaction.id] = transaction
        logger.debug("Recorded %s: %d stars from user %d", transaction_id, amount, user["id"])
        return transaction

    def get_transaction_by_charge_id(self, user_id: int, charge_id: str) -> StoredStarTransaction | None:
        for transaction in self._transactions.get(user_id, {}).values():
            if transaction.telegram_payment_charge_id == charge_id:
                return transaction
        return None

    def refund(self, user_id: int, charge_id: str) -> bool:
        """Mark a charge refunded. Unknown or already refunded charges fail."""
        transaction = self.get_transaction_by_charge_id(user_id, charge_id)
        if transaction is None or transaction.refunded:
            return False
        transaction.refunded = True
        logger.debug("Refunded %s", transaction.id)
        return True

    def get_star_transactions(self, offset: int = 0, limit: int = 100) -> list[StoredStarTransaction]:
        """Every user's transactions, newest first."""
        transactions = [t for per_user in self._transactions.values() for t in per_user.values()]
        transactions.sort(key=lambda t: (t.date, int(t.id.rsplit("_", 1)[1])), reverse=True)
        return transactions[offset:offset + limit]

    def get_user_transactions(self, user_id: int) -> list[StoredStarTransaction]:
        return list(self._transactions.get(user_id, {}).values())

    def star_balance(self, user_id: int | None = None) -> int:
        """Sum of non-refunded payments, for one user or overall."""
        if user_id is not None:
            pool = self.get_user_transactions(user_id)
        else:
            pool = [t for per_user in self._transactions.values() for t in per_user.values()]
        return sum(t.amount for t in pool if not t.refunded)

    # =========================================================================
    # Payment queries
    # =========================================================================

    def open_query(
        self,
        kind: str,
        user: dict[str, Any],
        invoice_payload: str,
        currency: str | None = None,
        total_amount: int | None = None,
    ) -> PaymentQuery:
        query = PaymentQuery(
            id=f"{kind}_{self._query_counter}",
            kind=kind,
            user=user,
            invoice_payload=invoice_payload,
            currency=currency,
            total_amount=total_amount,
        )
        self._query_counter += 1
        self._queries[query.id] = query
        return query

    def get_query(self, query_id: str, kind: str | None = None) -> PaymentQuery | None:
        query = self._queries.get(query_id)
        if query is None or (kind is not None and query.kind != kind):
            return None
        return query

    def answer_query(
        self,
        query_id: str,
        ok: bool,
        error_message: str | None = None,
        shipping_options: list[dict[str, Any]] | None = None,
    ) -> PaymentQuery | None:
        query = self._queries.get(query_id)
        if query is None or query.answered:
            return None
        query.answered = True
        query.ok = ok
        query.error_message = error_message
        query.shipping_options = shipping_options
        return query

    def clear(self) -> None:
        self._transactions.clear()
        self._queries.clear()
        self._transaction_counter = 1
        self._query_counter = 1
        self._invoice_link_counter = 1

    # =========================================================================
    # Invoice links
    # =========================================================================

    def create_invoice_link(self) -> str:
        link = f"https://t.me/$test_invoice_{self._invoice_link_counter}"
        self._invoice_link_counter += 1
        return link
