"""
Payment API method handlers.

Handles: sendInvoice, createInvoiceLink, answerPreCheckoutQuery,
         answerShippingQuery, refundStarPayment, getStarTransactions
"""
import logging
from typing import TYPE_CHECKING, Any

from tgsim.bot_response import BotResponse
from tgsim.errors import NotFoundError, ValidationError, bad_request
from tgsim.methods.common import new_message, prepare_send, publish_message, require_user_id
from tgsim.payload import Payload
from tgsim.state.payment_state import PRE_CHECKOUT, SHIPPING, STARS_CURRENCY, PaymentQuery

if TYPE_CHECKING:
    from tgsim.server import TelegramServer

logger = logging.getLogger("tgsim.methods.payments")

MAX_INVOICE_TITLE_LENGTH = 32
MAX_INVOICE_DESCRIPTION_LENGTH = 255
MAX_INVOICE_PAYLOAD_BYTES = 128
MAX_TRANSACTIONS_LIMIT = 100


def _invoice(payload: Payload) -> dict[str, Any]:
    """Validated invoice fields shared by sendInvoice and createInvoiceLink."""
    title = payload.get_str("title") or ""
    if not 1 <= len(title) <= MAX_INVOICE_TITLE_LENGTH:
        raise ValidationError(bad_request("INVOICE_TITLE_INVALID" if title else "title is required"))
    description = payload.get_str("description") or ""
    if not 1 <= len(description) <= MAX_INVOICE_DESCRIPTION_LENGTH:
        raise ValidationError(bad_request("INVOICE_DESCRIPTION_INVALID" if description else "description is required"))
    invoice_payload = payload.get_str("payload") or ""
    if not 1 <= len(invoice_payload.encode("utf-8")) <= MAX_INVOICE_PAYLOAD_BYTES:
        raise ValidationError(bad_request("INVOICE_PAYLOAD_INVALID"))
    currency = payload.get_str("currency")
    if not currency:
        raise ValidationError(bad_request("currency is required"))

    prices = payload.get_list("prices") or []
    if not prices:
        raise ValidationError(bad_request("prices must be non-empty"))
    for price in prices:
        if not isinstance(price, dict) or not price.get("label") or not isinstance(price.get("amount"), int):
            raise ValidationError(bad_request("invalid prices"))
    if currency == STARS_CURRENCY and len(prices) != 1:
        raise ValidationError(bad_request("STARS_INVOICE_INVALID"))
    total_amount = sum(price["amount"] for price in prices)
    if total_amount <= 0:
        raise ValidationError(bad_request("CURRENCY_TOTAL_AMOUNT_INVALID"))

    return {
        "title": title,
        "description": description,
        "payload": invoice_payload,
        "currency": currency,
        "prices": prices,
        "total_amount": total_amount,
    }


def handle_send_invoice(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Handle sendInvoice API call."""
    invoice = _invoice(payload)
    chat = prepare_send(server, payload, "can_send_other_messages", "invoices")

    content = {
        "invoice": {
            "title": invoice["title"],
            "description": invoice["description"],
            "start_parameter": payload.get_str("start_parameter") or "",
            "currency": invoice["currency"],
            "total_amount": invoice["total_amount"],
        }
    }
    message = new_message(server, chat, payload, content=content)
    if response is not None:
        response.invoice = invoice
    logger.debug("sendInvoice to chat %d: %s %d", chat.id, invoice["currency"], invoice["total_amount"])
    return publish_message(server, message, response)


def handle_create_invoice_link(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> str:
    invoice = _invoice(payload)
    if payload.has("subscription_period") and invoice["currency"] != STARS_CURRENCY:
        raise ValidationError(bad_request("subscriptions are available only for payments in Telegram Stars"))
    link = server.payments.create_invoice_link()
    if response is not None:
        response.invoice = {**invoice, "link": link}
    return link


def _answer_query(
    server: "TelegramServer",
    payload: Payload,
    kind: str,
    id_key: str,
    shipping_options: list[dict[str, Any]] | None = None,
) -> PaymentQuery:
    query_id = payload.get_str(id_key)
    if not query_id:
        raise ValidationError(bad_request(f"{id_key} is required"))
    ok = payload.get_bool("ok")
    error_message = payload.get_str("error_message")
    if not ok and not error_message:
        raise ValidationError(bad_request("error_message is required when ok is false"))

    query = server.payments.get_query(query_id, kind)
    if query is None:
        raise NotFoundError(bad_request("query is too old and response timeout expired or query ID is invalid"))
    if query.answered:
        raise ValidationError(bad_request("query is already answered"))
    return server.payments.answer_query(query.id, ok, error_message, shipping_options)


def handle_answer_pre_checkout_query(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle answerPreCheckoutQuery API call."""
    query = _answer_query(server, payload, PRE_CHECKOUT, "pre_checkout_query_id")
    if response is not None:
        response.pre_checkout_answer = {
            "pre_checkout_query_id": query.id,
            "ok": query.ok,
            "error_message": query.error_message,
        }
    logger.debug("answerPreCheckoutQuery %s: ok=%s", query.id, query.ok)
    return True


def handle_answer_shipping_query(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle answerShippingQuery API call. ok=true needs shipping options."""
    options = payload.get_list("shipping_options")
    if payload.get_bool("ok") and not options:
        raise ValidationError(bad_request("shipping_options is required when ok is true"))
    query = _answer_query(server, payload, SHIPPING, "shipping_query_id", options)
    if response is not None:
        response.shipping_answer = {
            "shipping_query_id": query.id,
            "ok": query.ok,
            "shipping_options": query.shipping_options,
            "error_message": query.error_message,
        }
    return True


def handle_refund_star_payment(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> bool:
    """Handle refundStarPayment API call."""
    user_id = require_user_id(payload)
    charge_id = payload.require_str("telegram_payment_charge_id")
    transaction = server.payments.get_transaction_by_charge_id(user_id, charge_id)
    if transaction is None:
        raise NotFoundError(bad_request("CHARGE_NOT_FOUND"))
    if transaction.refunded:
        raise ValidationError(bad_request("CHARGE_ALREADY_REFUNDED"))

    server.payments.refund(user_id, charge_id)
    logger.debug("refundStarPayment: user=%d, charge=%s", user_id, charge_id)
    return True


def handle_get_star_transactions(server: "TelegramServer", payload: Payload, response: BotResponse | None) -> dict[str, Any]:
    """Newest first, paged by offset and limit."""
    offset = payload.get_int("offset") or 0
    limit = payload.get_int("limit") or MAX_TRANSACTIONS_LIMIT
    if offset < 0 or not 1 <= limit <= MAX_TRANSACTIONS_LIMIT:
        raise ValidationError(bad_request("invalid offset or limit"))
    transactions = server.payments.get_star_transactions(offset, limit)
    return {"transactions": [t.to_dict() for t in transactions]}


METHODS = {
    "sendInvoice": handle_send_invoice,
    "createInvoiceLink": handle_create_invoice_link,
    "answerPreCheckoutQuery": handle_answer_pre_checkout_query,
    "answerShippingQuery": handle_answer_shipping_query,
    "refundStarPayment": handle_refund_star_payment,
    "getStarTransactions": handle_get_star_transactions,
}
