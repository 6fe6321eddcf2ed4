"""Order-request fulfillment.

Fulfilling an order request turns it into a priced line item on each
waiting transaction; unfulfilling moves it back.  Only the transaction side
is touched.  ``Order.items`` and ``OrderRequest.transactions`` are left as
they were, so after fulfillment the two sides are allowed to disagree.

Each transaction is saved as soon as it is updated.  If a later transaction
id cannot be found the error propagates and the ones already processed stay
updated.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

import database.models as models
from api.exceptions import NotFoundError
from services.pricing import item_price
from utils.money import add_cents

logger = logging.getLogger(__name__)


def _resolve(conn: sqlite3.Connection, request_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return the order request and its item."""
    order_request = models.get_order_request(conn, request_id)
    if order_request is None:
        msg = "Could not locate order request"
        raise NotFoundError(msg)
    item = models.get_item(conn, order_request["item"]) if order_request.get("item") else None
    if item is None:
        msg = "Could not locate item for order request"
        raise NotFoundError(msg)
    return order_request, item


def _load_transaction(conn: sqlite3.Connection, transaction_id: str) -> dict[str, Any]:
    transaction = models.get_transaction(conn, transaction_id)
    if transaction is None:
        msg = f"Could not find transaction {transaction_id}"
        raise NotFoundError(msg)
    return transaction


def fulfill_order_requests(
    conn: sqlite3.Connection,
    request_id: str,
    transaction_ids: list[str],
) -> None:
    """Add one unit of the requested item to each listed transaction.

    A transaction id listed twice receives two units.
    """
    order_request, item = _resolve(conn, request_id)
    for transaction_id in transaction_ids:
        transaction = _load_transaction(conn, transaction_id)
        price = item_price(transaction, item)
        transaction["items"].append({"item": item["id"], "price": price})
        if order_request["id"] in transaction["orderRequests"]:
            transaction["orderRequests"].remove(order_request["id"])
        transaction["total_cost"] = add_cents(transaction["total_cost"], price)
        models.save_transaction(conn, transaction)
        logger.info(
            "Fulfilled order request %s on transaction %s at %.2f",
            order_request["id"],
            transaction_id,
            price,
        )


def unfulfill_order_requests(
    conn: sqlite3.Connection,
    request_id: str,
    transaction_ids: list[str],
) -> None:
    """Take one unit of the requested item back off each listed transaction.

    The most recently added matching line is removed and its recorded price
    is subtracted, so a fulfill followed by an unfulfill leaves the
    transaction as it was.
    """
    order_request, item = _resolve(conn, request_id)
    for transaction_id in transaction_ids:
        transaction = _load_transaction(conn, transaction_id)
        index = next(
            (
                i
                for i in range(len(transaction["items"]) - 1, -1, -1)
                if transaction["items"][i]["item"] == item["id"]
            ),
            None,
        )
        if index is not None:
            line = transaction["items"].pop(index)
            transaction["total_cost"] = add_cents(transaction["total_cost"], -line["price"])
        else:
            logger.warning(
                "Transaction %s has no %s line to unfulfill", transaction_id, item["name"]
            )
        transaction["orderRequests"].append(order_request["id"])
        models.save_transaction(conn, transaction)
        logger.info(
            "Unfulfilled order request %s on transaction %s", order_request["id"], transaction_id
        )
