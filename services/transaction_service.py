"""Transaction lifecycle.

Every operation that changes a transaction takes the acting user's id and
records an entry in the transaction's ``actions`` log (newest first).  Price
changes go through ``services.pricing``; stock moves through
``services.inventory`` and only on the complete/reopen transition.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

import database.models as models
from api.exceptions import ForbiddenError, NotFoundError, ValidationError
from services import inventory, pricing
from services.notifications import send_email, send_email_async

logger = logging.getLogger(__name__)

_FLAG_FIELDS = ("urgent", "waiting_email", "refurb")
_TEXT_FIELDS = ("description", "transaction_type")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def resolve_actor(conn: sqlite3.Connection, user_id: str | None) -> dict[str, Any]:
    """Return the user performing an action.

    Raises ValidationError when no id is given and NotFoundError when it does
    not match a user.
    """
    if not user_id:
        msg = "No user specified for action"
        raise ValidationError(msg)
    user = models.get_user(conn, user_id)
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)
    return user


def _log_action(transaction: dict[str, Any], user: dict[str, Any], description: str) -> None:
    transaction["actions"].insert(
        0,
        {
            "employee": user["username"],
            "user_id": user["id"],
            "description": description,
            "time": models.now(),
        },
    )


def get_transaction(conn: sqlite3.Connection, transaction_id: str) -> dict[str, Any]:
    transaction = models.get_transaction(conn, transaction_id)
    if transaction is None:
        msg = "No transaction found"
        raise NotFoundError(msg)
    return transaction


def _item_name(conn: sqlite3.Connection, item_id: str) -> str:
    item = models.get_item(conn, item_id)
    return item["name"] if item else "unknown item"


def _repair_name(conn: sqlite3.Connection, repair_id: str) -> str:
    repair = models.get_repair(conn, repair_id)
    return repair["name"] if repair else "unknown repair"


def is_employee_email(conn: sqlite3.Connection, email: str | None) -> bool:
    """True when the local part of *email* is some user's username."""
    if not email or "@" not in email:
        return False
    local = email.split("@", 1)[0].lower()
    return any((u.get("username") or "").lower() == local for u in models.list_users(conn))


def populate_transaction(
    conn: sqlite3.Connection,
    transaction: dict[str, Any],
) -> dict[str, Any]:
    """Return a copy of *transaction* with references expanded for display."""
    view = dict(transaction)
    view["customer"] = models.get_customer(conn, transaction["customer"])
    view["items"] = [
        dict(line, name=_item_name(conn, line["item"])) for line in transaction["items"]
    ]
    view["repairs"] = [
        dict(line, name=_repair_name(conn, line["repair"])) for line in transaction["repairs"]
    ]
    view["bikes"] = [b for b in (models.get_bike(conn, bid) for bid in transaction["bikes"]) if b]
    view["orderRequests"] = [
        r
        for r in (models.get_order_request(conn, rid) for rid in transaction["orderRequests"])
        if r
    ]
    return view


# ---------------------------------------------------------------------------
# Creation, search and deletion
# ---------------------------------------------------------------------------


def create_transaction(
    conn: sqlite3.Connection,
    customer: dict[str, Any] | None,
    actor_id: str | None,
    transaction_type: str | None = None,
) -> dict[str, Any]:
    """Open a transaction for an existing customer or one created inline.

    *customer* is either ``{"id": ...}`` or ``{"first_name", "last_name",
    "email"}``.
    """
    user = resolve_actor(conn, actor_id)
    if not customer:
        msg = "No customer specified"
        raise ValidationError(msg)

    if customer.get("id"):
        customer_doc = models.get_customer(conn, customer["id"])
        if customer_doc is None:
            msg = "Customer not found"
            raise NotFoundError(msg)
    else:
        customer_doc = models.create_customer(
            conn,
            first_name=customer.get("first_name", ""),
            last_name=customer.get("last_name", ""),
            email=customer.get("email", ""),
        )

    transaction = models.create_transaction(
        conn,
        customer_id=customer_doc["id"],
        transaction_type=transaction_type,
        employee=is_employee_email(conn, customer_doc.get("email")),
    )
    _log_action(transaction, user, "Created Transaction")
    return models.save_transaction(conn, transaction)


def search_transactions(
    conn: sqlite3.Connection,
    customer: str | None = None,
    bike: str | None = None,
    description: str | None = None,
) -> list[dict[str, Any]]:
    """Case-insensitive substring search on customer, bike or description.

    Only the first supplied criterion is used.
    """

    def _contains(value: str | None, query: str) -> bool:
        return bool(value) and query.lower() in value.lower()  # type: ignore[union-attr]

    results = []
    for transaction in models.list_transactions(conn):
        if customer:
            doc = models.get_customer(conn, transaction["customer"]) or {}
            match = any(
                _contains(doc.get(f), customer) for f in ("first_name", "last_name", "email")
            )
        elif bike:
            bikes = (models.get_bike(conn, bid) or {} for bid in transaction["bikes"])
            match = any(
                _contains(b.get(f), bike) for b in bikes for f in ("make", "model", "description")
            )
        elif description:
            match = _contains(transaction.get("description"), description)
        else:
            match = False
        if match:
            results.append(transaction)
    return results


def delete_transaction(conn: sqlite3.Connection, transaction_id: str) -> None:
    """Unlink the transaction from its order requests, then delete it."""
    transaction = get_transaction(conn, transaction_id)
    for request_id in dict.fromkeys(transaction["orderRequests"]):
        order_request = models.get_order_request(conn, request_id)
        if order_request is None:
            continue
        order_request["transactions"] = [
            t for t in order_request["transactions"] if t != transaction_id
        ]
        models.save_order_request(conn, order_request)
    models.delete_transaction(conn, transaction_id)
    logger.info("Deleted transaction %s", transaction_id)


# ---------------------------------------------------------------------------
# Pass-through updates
# ---------------------------------------------------------------------------


def update_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    fields: dict[str, Any],
    actor_id: str | None,
) -> dict[str, Any]:
    """Update flags and free-text fields."""
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)

    changes: list[str] = []
    for key in _FLAG_FIELDS:
        if key in fields:
            transaction[key] = bool(fields[key])
            changes.append(f"{key}={'yes' if transaction[key] else 'no'}")
    for key in _TEXT_FIELDS:
        if key in fields:
            transaction[key] = fields[key]
            changes.append(key)
    if not changes:
        msg = "No valid fields to update"
        raise ValidationError(msg)

    _log_action(transaction, user, "Updated " + ", ".join(changes))
    return models.save_transaction(conn, transaction)


# ---------------------------------------------------------------------------
# Items and repairs
# ---------------------------------------------------------------------------


def add_item_to_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    item_id: str | None,
    actor_id: str | None,
    custom_price: Any = None,
) -> dict[str, Any]:
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    if not item_id:
        msg = "No item specified"
        raise ValidationError(msg)
    item = models.get_item(conn, item_id)
    if item is None:
        msg = "Item not found"
        raise NotFoundError(msg)
    if item.get("managed"):
        msg = f"{item['name']} is managed by the system and cannot be added"
        raise ForbiddenError(msg)

    _log_action(transaction, user, f"Added item {item['name']}")
    return pricing.add_item(conn, transaction, item, custom_price)


def remove_item_from_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    item_id: str,
    actor_id: str | None,
) -> dict[str, Any]:
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    _log_action(transaction, user, f"Removed item {_item_name(conn, item_id)}")
    return pricing.remove_item(conn, transaction, item_id)


def add_repair_to_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    repair_id: str | None,
    actor_id: str | None,
) -> dict[str, Any]:
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    if not repair_id:
        msg = "No repair specified"
        raise ValidationError(msg)
    repair = models.get_repair(conn, repair_id)
    if repair is None:
        msg = "Repair not found"
        raise NotFoundError(msg)

    _log_action(transaction, user, f"Added repair {repair['name']}")
    return pricing.add_repair(conn, transaction, repair)


def remove_repair_from_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    line_id: str,
    actor_id: str | None,
) -> dict[str, Any]:
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    line = next((r for r in transaction["repairs"] if r["id"] == line_id), None)
    name = _repair_name(conn, line["repair"]) if line else "unknown repair"
    _log_action(transaction, user, f"Removed repair {name}")
    return pricing.remove_repair(conn, transaction, line_id)


def set_repair_completed(
    conn: sqlite3.Connection,
    transaction_id: str,
    line_id: str,
    completed: bool,
    actor_id: str | None,
) -> dict[str, Any]:
    """Mark one repair line as done or not done."""
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    line = next((r for r in transaction["repairs"] if r["id"] == line_id), None)
    if line is None:
        msg = "Repair not found on transaction"
        raise NotFoundError(msg)

    line["completed"] = bool(completed)
    verb = "Completed" if line["completed"] else "Reopened"
    _log_action(transaction, user, f"{verb} repair {_repair_name(conn, line['repair'])}")
    return models.save_transaction(conn, transaction)


# ---------------------------------------------------------------------------
# Bikes
# ---------------------------------------------------------------------------


def add_bike_to_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    bike: dict[str, Any],
    actor_id: str | None,
) -> dict[str, Any]:
    """Attach an existing bike (``{"id": ...}``) or one described inline."""
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    if bike.get("id"):
        bike_doc = models.get_bike(conn, bike["id"])
        if bike_doc is None:
            msg = "No bike found"
            raise NotFoundError(msg)
    else:
        if not bike.get("make") or not bike.get("model"):
            msg = "A bike needs a make and model"
            raise ValidationError(msg)
        bike_doc = models.create_bike(
            conn, make=bike["make"], model=bike["model"], description=bike.get("description", "")
        )

    transaction["bikes"].append(bike_doc["id"])
    _log_action(transaction, user, f"Added bike {bike_doc['make']} {bike_doc['model']}")
    return models.save_transaction(conn, transaction)


def remove_bike_from_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    bike_id: str,
    actor_id: str | None,
) -> dict[str, Any]:
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    if bike_id not in transaction["bikes"]:
        msg = "Bike not found on transaction"
        raise NotFoundError(msg)

    transaction["bikes"].remove(bike_id)
    bike = models.get_bike(conn, bike_id)
    label = f"{bike['make']} {bike['model']}" if bike else bike_id
    _log_action(transaction, user, f"Removed bike {label}")
    return models.save_transaction(conn, transaction)


# ---------------------------------------------------------------------------
# Order requests
# ---------------------------------------------------------------------------


def add_order_request_to_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    request_id: str | None,
    actor_id: str | None,
) -> dict[str, Any]:
    """Make the transaction wait on an order request.

    Both sides are linked: the request id goes on the transaction and the
    transaction id goes on the request.
    """
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    if transaction["complete"]:
        msg = "Cannot add order requests to a completed transaction"
        raise ForbiddenError(msg)
    if not request_id:
        msg = "No order request specified"
        raise ValidationError(msg)
    order_request = models.get_order_request(conn, request_id)
    if order_request is None:
        msg = "Order request not found"
        raise NotFoundError(msg)

    order_request["transactions"].append(transaction_id)
    models.save_order_request(conn, order_request)

    transaction["orderRequests"].append(request_id)
    _log_action(transaction, user, f"Added order request {order_request['request']}")
    return models.save_transaction(conn, transaction)


def remove_order_request_from_transaction(
    conn: sqlite3.Connection,
    transaction_id: str,
    request_id: str,
    actor_id: str | None,
) -> dict[str, Any]:
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    if request_id not in transaction["orderRequests"]:
        msg = "Order request not found on transaction"
        raise NotFoundError(msg)

    transaction["orderRequests"].remove(request_id)
    order_request = models.get_order_request(conn, request_id)
    label = request_id
    if order_request is not None:
        label = order_request["request"]
        if transaction_id in order_request["transactions"]:
            order_request["transactions"].remove(transaction_id)
            models.save_order_request(conn, order_request)

    _log_action(transaction, user, f"Removed order request {label}")
    return models.save_transaction(conn, transaction)


# ---------------------------------------------------------------------------
# Completion and payment
# ---------------------------------------------------------------------------


def _complete(conn: sqlite3.Connection, transaction: dict[str, Any]) -> None:
    if transaction["orderRequests"]:
        msg = "Cannot complete a transaction with pending order requests"
        raise ForbiddenError(msg)
    inventory.apply_transaction_stock(conn, transaction, -1)
    transaction["complete"] = True
    transaction["date_completed"] = models.now()
    transaction["urgent"] = False


def _reopen(conn: sqlite3.Connection, transaction: dict[str, Any]) -> None:
    inventory.apply_transaction_stock(conn, transaction, 1)
    transaction["complete"] = False
    transaction["date_completed"] = None


def set_complete(
    conn: sqlite3.Connection,
    transaction_id: str,
    complete: bool,
    actor_id: str | None,
) -> dict[str, Any]:
    """Complete or reopen a transaction, moving stock on an actual change."""
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)
    if complete:
        if not transaction["complete"]:
            _complete(conn, transaction)
        _log_action(transaction, user, "Completed Transaction")
    else:
        if transaction["complete"]:
            _reopen(conn, transaction)
        _log_action(transaction, user, "Reopened Transaction")
    return models.save_transaction(conn, transaction)


def mark_paid(
    conn: sqlite3.Connection,
    transaction_id: str,
    is_paid: bool,
    actor_id: str | None,
) -> dict[str, Any]:
    """Toggle payment.

    Paying an unpaid transaction completes it (if still open) and emails the
    customer a receipt. Un-paying never touches stock or completion.
    """
    user = resolve_actor(conn, actor_id)
    transaction = get_transaction(conn, transaction_id)

    if is_paid and transaction["is_paid"]:
        return transaction

    if is_paid:
        if not transaction["complete"]:
            _complete(conn, transaction)
        transaction["is_paid"] = True
        _log_action(transaction, user, "Marked Transaction as paid")
        saved = models.save_transaction(conn, transaction)
        send_receipt(conn, saved)
        return saved

    transaction["is_paid"] = False
    _log_action(transaction, user, "Marked Transaction as waiting")
    return models.save_transaction(conn, transaction)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def _receipt(conn: sqlite3.Connection, transaction: dict[str, Any]) -> tuple:
    view = populate_transaction(conn, transaction)
    customer = view["customer"] or {}
    return (
        "email-receipt",
        customer.get("email"),
        f"Receipt - transaction #{transaction['id']}",
        {"transaction": view, "date": models.now()},
    )


def send_receipt(conn: sqlite3.Connection, transaction: dict[str, Any]) -> None:
    """Email the customer a receipt in the background."""
    send_email_async(*_receipt(conn, transaction))


def email_receipt(conn: sqlite3.Connection, transaction_id: str) -> bool:
    """Resend the receipt now. Returns whether it was sent."""
    transaction = get_transaction(conn, transaction_id)
    return send_email(*_receipt(conn, transaction))


def notify_ready(conn: sqlite3.Connection, transaction_id: str) -> bool:
    """Tell the customer their bike is ready. Returns whether it was sent."""
    transaction = get_transaction(conn, transaction_id)
    customer = models.get_customer(conn, transaction["customer"]) or {}
    return send_email(
        "email-notify-ready",
        customer.get("email"),
        f"Your bike is ready - {transaction['id']}",
        {"first_name": customer.get("first_name", ""), "total_cost": transaction["total_cost"]},
    )
