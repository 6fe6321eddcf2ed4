"""Supplier order lifecycle.

An order is a batch of order requests bought from one supplier.  Its status
moves ``In Cart`` -> ``Ordered`` -> ``Completed`` and may move backwards.
Completing an order restocks the requested items and fulfills each request
on the transactions waiting for it; leaving ``Completed`` reverses both.

``total_price`` is maintained incrementally: each associated request adds
``unit_cost * quantity`` (wholesale cost captured when it was associated)
and freight changes add only their delta.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

import database.models as models
from api.exceptions import ForbiddenError, NotFoundError, ValidationError
from database.models import NOT_ORDERED, ORDER_STATUSES
from services import inventory
from services.fulfillment import fulfill_order_requests, unfulfill_order_requests
from utils.money import add_cents, parse_price, round_cents, to_decimal

logger = logging.getLogger(__name__)


def get_order(conn: sqlite3.Connection, order_id: str) -> dict[str, Any]:
    order = models.get_order(conn, order_id)
    if order is None:
        msg = "No order found"
        raise NotFoundError(msg)
    return order


def _request_cost(order_request: dict[str, Any]) -> float:
    unit_cost = order_request.get("unit_cost") or 0
    return round_cents(to_decimal(unit_cost) * order_request["quantity"])


def _load_requests(conn: sqlite3.Connection, order: dict[str, Any]) -> list[dict[str, Any]]:
    requests = []
    for request_id in order["items"]:
        order_request = models.get_order_request(conn, request_id)
        if order_request is None:
            msg = f"Order request {request_id} in order {order['id']} not found"
            raise NotFoundError(msg)
        requests.append(order_request)
    return requests


def create_order(conn: sqlite3.Connection, supplier: str | None) -> dict[str, Any]:
    if not supplier:
        msg = "No supplier provided"
        raise ValidationError(msg)
    order = models.create_order(conn, supplier)
    logger.info("Created order %s for %s", order["id"], supplier)
    return order


def delete_order(conn: sqlite3.Connection, order_id: str) -> None:
    """Delete an order, returning its requests to the unordered pool."""
    order = get_order(conn, order_id)
    for request_id in order["items"]:
        order_request = models.get_order_request(conn, request_id)
        if order_request is None:
            continue
        order_request["orderRef"] = None
        order_request["status"] = NOT_ORDERED
        order_request["unit_cost"] = None
        models.save_order_request(conn, order_request)
    models.delete_order(conn, order_id)
    logger.info("Deleted order %s", order_id)


# ---------------------------------------------------------------------------
# Order requests
# ---------------------------------------------------------------------------


def add_order_request(
    conn: sqlite3.Connection,
    order_id: str,
    request_id: str | None,
) -> dict[str, Any]:
    """Associate an unordered request with the order."""
    if not request_id:
        msg = "No order request specified"
        raise ValidationError(msg)
    order_request = models.get_order_request(conn, request_id)
    if order_request is None:
        msg = "Order request not found"
        raise NotFoundError(msg)
    if order_request.get("orderRef"):
        msg = "Cannot associate order request, already associated to another order"
        raise ForbiddenError(msg)
    if not order_request.get("item"):
        msg = "Order request must have an associated item to be added to an order"
        raise ForbiddenError(msg)
    if order_request["quantity"] < 1:
        msg = f"Order request has bad quantity: {order_request['quantity']}"
        raise ValidationError(msg)
    order = get_order(conn, order_id)
    item = models.get_item(conn, order_request["item"])
    if item is None:
        msg = "Item for order request not found"
        raise NotFoundError(msg)

    order_request["orderRef"] = order["id"]
    order_request["status"] = order["status"]
    order_request["supplier"] = order["supplier"]
    order_request["unit_cost"] = item.get("wholesale_cost") or 0
    models.save_order_request(conn, order_request)

    order["total_price"] = add_cents(order["total_price"], _request_cost(order_request))
    order["items"].insert(0, order_request["id"])
    return models.save_order(conn, order)


def remove_order_request(
    conn: sqlite3.Connection,
    order_id: str,
    request_id: str,
) -> dict[str, Any]:
    """Disassociate a request from the order without deleting it."""
    order = get_order(conn, order_id)
    order_request = models.get_order_request(conn, request_id)
    if order_request is None or request_id not in order["items"]:
        msg = "Order request not found in this order"
        raise NotFoundError(msg)

    order["items"].remove(request_id)
    order["total_price"] = add_cents(order["total_price"], -_request_cost(order_request))

    order_request["status"] = NOT_ORDERED
    order_request["supplier"] = None
    order_request["orderRef"] = None
    order_request["unit_cost"] = None
    models.save_order_request(conn, order_request)
    return models.save_order(conn, order)


# ---------------------------------------------------------------------------
# Field updates
# ---------------------------------------------------------------------------


def update_supplier(
    conn: sqlite3.Connection,
    order_id: str,
    supplier: str | None,
) -> dict[str, Any]:
    if not supplier:
        msg = "No supplier specified"
        raise ValidationError(msg)
    order = get_order(conn, order_id)
    for order_request in _load_requests(conn, order):
        order_request["supplier"] = supplier
        models.save_order_request(conn, order_request)
    order["supplier"] = supplier
    return models.save_order(conn, order)


def update_tracking_number(
    conn: sqlite3.Connection,
    order_id: str,
    tracking_number: str | None,
) -> dict[str, Any]:
    if not tracking_number:
        msg = "No tracking number specified"
        raise ValidationError(msg)
    order = get_order(conn, order_id)
    order["tracking_number"] = tracking_number
    return models.save_order(conn, order)


def update_freight_charge(
    conn: sqlite3.Connection,
    order_id: str,
    charge: Any,
) -> dict[str, Any]:
    """Set the freight charge, applying only the difference to the total."""
    if charge is None:
        msg = "A freight charge must be specified"
        raise ValidationError(msg)
    new_charge = parse_price(charge)
    order = get_order(conn, order_id)
    difference = add_cents(new_charge, -(order.get("freight_charge") or 0))
    order["freight_charge"] = new_charge
    order["total_price"] = add_cents(order["total_price"], difference)
    return models.save_order(conn, order)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


def update_status(
    conn: sqlite3.Connection,
    order_id: str,
    status: str | None,
) -> dict[str, Any]:
    """Move the order to *status*, running the stock and fulfillment side effects.

    Steps are saved as they happen; a failure part way through leaves the
    earlier steps in place.
    """
    if not status:
        msg = "No status specified"
        raise ValidationError(msg)
    if status not in ORDER_STATUSES:
        msg = f"Invalid order status: {status!r}"
        raise ValidationError(msg)
    order = get_order(conn, order_id)
    requests = _load_requests(conn, order)
    timestamp = models.now()

    if status == "In Cart":
        order["date_submitted"] = None
        order["date_completed"] = None
    elif status == "Ordered":
        order["date_submitted"] = timestamp
        order["date_completed"] = None

    if status == "Completed" and order["status"] != "Completed":
        for order_request in requests:
            inventory.adjust_stock(conn, order_request["item"], order_request["quantity"])
        for order_request in requests:
            fulfill_order_requests(conn, order_request["id"], order_request["transactions"])
        order["date_completed"] = timestamp
        if order.get("date_submitted") is None:
            order["date_submitted"] = timestamp
    elif status != "Completed" and order["status"] == "Completed":
        for order_request in requests:
            inventory.adjust_stock(conn, order_request["item"], -order_request["quantity"])
        for order_request in requests:
            unfulfill_order_requests(conn, order_request["id"], order_request["transactions"])

    for order_request in requests:
        order_request["status"] = status
        models.save_order_request(conn, order_request)

    logger.info("Order %s: %s -> %s", order["id"], order["status"], status)
    order["status"] = status
    return models.save_order(conn, order)
