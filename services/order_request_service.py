"""Order requests: pending needs for catalog items.

A request starts out ``Not Ordered`` and unattached to any order.  While it
is part of an order it can no longer be edited or deleted; remove it from
the order first.
"""

from __future__ import annotations

import sqlite3
from typing import Any

import database.models as models
from api.exceptions import ForbiddenError, NotFoundError, ValidationError
from services.transaction_service import add_order_request_to_transaction, resolve_actor


def get_order_request(conn: sqlite3.Connection, request_id: str) -> dict[str, Any]:
    order_request = models.get_order_request(conn, request_id)
    if order_request is None:
        msg = "Order request not found"
        raise NotFoundError(msg)
    return order_request


def _validate_quantity(quantity: Any) -> int:
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        msg = "quantity must be an integer"
        raise ValidationError(msg) from None
    if value < 1:
        msg = "quantity must be at least 1"
        raise ValidationError(msg)
    return value


def _validate_item(conn: sqlite3.Connection, item_id: str | None) -> None:
    if item_id and models.get_item(conn, item_id) is None:
        msg = "Item not found"
        raise NotFoundError(msg)


def create_order_request(
    conn: sqlite3.Connection,
    actor_id: str | None,
    request: str | None = None,
    item_id: str | None = None,
    quantity: Any = 1,
    transaction_ids: list[str] | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Create a request and attach it to each listed transaction."""
    user = resolve_actor(conn, actor_id)
    if not request and not item_id:
        msg = "An order request needs a description or an item"
        raise ValidationError(msg)
    qty = _validate_quantity(quantity)
    _validate_item(conn, item_id)
    for transaction_id in transaction_ids or []:
        transaction = models.get_transaction(conn, transaction_id)
        if transaction is None:
            msg = f"Transaction {transaction_id} not found"
            raise NotFoundError(msg)
        if transaction["complete"]:
            msg = "Cannot add order requests to a completed transaction"
            raise ForbiddenError(msg)

    if not request:
        request = models.get_item(conn, item_id)["name"]  # type: ignore[index]
    order_request = models.create_order_request(
        conn,
        request=request,
        item_id=item_id,
        quantity=qty,
        created_by=user["username"],
        notes=notes,
    )
    for transaction_id in transaction_ids or []:
        add_order_request_to_transaction(conn, transaction_id, order_request["id"], actor_id)
    return get_order_request(conn, order_request["id"])


def update_order_request(
    conn: sqlite3.Connection,
    request_id: str,
    fields: dict[str, Any],
) -> dict[str, Any]:
    order_request = get_order_request(conn, request_id)
    if order_request.get("orderRef"):
        msg = "Cannot edit an order request that is part of an order"
        raise ForbiddenError(msg)
    if "quantity" in fields:
        fields["quantity"] = _validate_quantity(fields["quantity"])
    if "item" in fields:
        _validate_item(conn, fields["item"])
    return models.update_order_request(conn, request_id, **fields)  # type: ignore[return-value]


def delete_order_request(conn: sqlite3.Connection, request_id: str) -> None:
    """Delete a request and drop it from every transaction waiting on it."""
    order_request = get_order_request(conn, request_id)
    if order_request.get("orderRef"):
        msg = "Cannot delete an order request that is part of an order"
        raise ForbiddenError(msg)
    for transaction_id in dict.fromkeys(order_request["transactions"]):
        transaction = models.get_transaction(conn, transaction_id)
        if transaction is None:
            continue
        transaction["orderRequests"] = [
            r for r in transaction["orderRequests"] if r != request_id
        ]
        models.save_transaction(conn, transaction)
    models.delete_order_request(conn, request_id)
