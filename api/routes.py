"""API endpoints for users, the catalog and transactions."""

from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, g, jsonify, request

import database.models as models
import services.transaction_service as transactions
from api.errors import error_response, handle_errors
from api.exceptions import ForbiddenError, NotFoundError, ValidationError
from config import settings
from database.connection import get_db
from services.inventory import list_low_stock_items
from utils.money import parse_price

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")


# ---------------------------------------------------------------------------
# DB lifecycle
# ---------------------------------------------------------------------------


@api_bp.before_request
def _open_db() -> None:
    """Open a database connection and store it on flask.g."""
    g.db = get_db(settings.database_path)


@api_bp.teardown_request
def _close_db(exc: BaseException | None = None) -> None:
    """Close the per-request database connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def json_body() -> dict[str, Any]:
    """Return the JSON request body, or an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def actor_id() -> str | None:
    """The acting user's id, from the X-User-Id header or a user_id body field."""
    return request.headers.get("X-User-Id") or json_body().get("user_id")


def _check_item_name(name: Any) -> None:
    """Reject catalog names that would collide with the managed tax item."""
    if isinstance(name, str) and name.strip().lower() == settings.tax_item_name.lower():
        msg = f"Item name '{settings.tax_item_name}' is reserved"
        raise ValidationError(msg)


def _flag(data: dict[str, Any], key: str) -> bool:
    if key not in data:
        msg = f"Missing required field: {key}"
        raise ValueError(msg)
    value = data[key]
    if isinstance(value, str):
        return value.lower() in ("1", "true", "yes")
    return bool(value)


# ===========================================================================
# Users
# ===========================================================================


@api_bp.route("/users", methods=["GET"])
@handle_errors
def list_users() -> tuple:
    return jsonify(models.list_users(g.db)), 200


@api_bp.route("/users", methods=["POST"])
@handle_errors
def create_user() -> tuple:
    data = json_body()
    if not data.get("username"):
        return error_response("Missing required field: username", 400)
    user = models.create_user(
        g.db,
        username=data["username"],
        admin=bool(data.get("admin", False)),
        roles=data.get("roles"),
    )
    if user is None:
        return error_response("Duplicate username", 409)
    return jsonify(user), 201


@api_bp.route("/users/<user_id>", methods=["DELETE"])
@handle_errors
def delete_user(user_id: str) -> tuple:
    """Delete a user; only admins may do this."""
    actor = transactions.resolve_actor(g.db, actor_id())
    if not actor.get("admin"):
        msg = "Only admins can delete users"
        raise ForbiddenError(msg)
    if not models.delete_user(g.db, user_id):
        msg = "User not found"
        raise NotFoundError(msg)
    logger.info("User %s deleted by %s", user_id, actor["username"])
    return jsonify({"message": "User deleted"}), 200


# ===========================================================================
# Customers
# ===========================================================================


@api_bp.route("/customers", methods=["GET"])
@handle_errors
def list_customers() -> tuple:
    return jsonify(models.list_customers(g.db)), 200


@api_bp.route("/customers", methods=["POST"])
@handle_errors
def create_customer() -> tuple:
    data = json_body()
    for field in ("first_name", "email"):
        if not data.get(field):
            return error_response(f"Missing required field: {field}", 400)
    customer = models.create_customer(
        g.db,
        first_name=data["first_name"],
        last_name=data.get("last_name", ""),
        email=data["email"],
    )
    return jsonify(customer), 201


@api_bp.route("/customers/<customer_id>", methods=["GET"])
@handle_errors
def get_customer(customer_id: str) -> tuple:
    customer = models.get_customer(g.db, customer_id)
    if customer is None:
        return error_response("Customer not found", 404)
    return jsonify(customer), 200


# ===========================================================================
# Items
# ===========================================================================


@api_bp.route("/items", methods=["GET"])
@handle_errors
def list_items() -> tuple:
    """List catalog items; ?low_stock=true returns only items needing reorder."""
    if request.args.get("low_stock", "").lower() == "true":
        return jsonify(list_low_stock_items(g.db)), 200
    include_disabled = request.args.get("include_disabled", "").lower() == "true"
    return jsonify(models.list_items(g.db, include_disabled=include_disabled)), 200


@api_bp.route("/items", methods=["POST"])
@handle_errors
def create_item() -> tuple:
    data = json_body()
    for field in ("name", "standard_price"):
        if field not in data:
            return error_response(f"Missing required field: {field}", 400)

    _check_item_name(data["name"])
    condition = data.get("condition", "New")
    if condition not in ("New", "Used"):
        return error_response("condition must be 'New' or 'Used'", 400)

    try:
        stock = int(data.get("stock", 0))
    except (TypeError, ValueError):
        return error_response("stock must be an integer", 400)

    item = models.create_item(
        g.db,
        name=data["name"],
        standard_price=parse_price(data["standard_price"]),
        wholesale_cost=parse_price(data.get("wholesale_cost", 0)),
        stock=stock,
        condition=condition,
        category=data.get("category"),
        brand=data.get("brand"),
        warning_stock=data.get("warning_stock"),
    )
    return jsonify(item), 201


@api_bp.route("/items/<item_id>", methods=["GET"])
@handle_errors
def get_item(item_id: str) -> tuple:
    item = models.get_item(g.db, item_id)
    if item is None:
        return error_response("Item not found", 404)
    return jsonify(item), 200


@api_bp.route("/items/<item_id>", methods=["PUT"])
@handle_errors
def update_item(item_id: str) -> tuple:
    data = json_body()
    if not data:
        return error_response("Request body must be JSON", 400)
    if "name" in data:
        _check_item_name(data["name"])
    for key in ("standard_price", "wholesale_cost"):
        if key in data:
            data[key] = parse_price(data[key])
    updated = models.update_item(g.db, item_id, **data)
    if updated is None:
        return error_response("Item not found", 404)
    return jsonify(updated), 200


# ===========================================================================
# Repairs
# ===========================================================================


@api_bp.route("/repairs", methods=["GET"])
@handle_errors
def list_repairs() -> tuple:
    return jsonify(models.list_repairs(g.db)), 200


@api_bp.route("/repairs", methods=["POST"])
@handle_errors
def create_repair() -> tuple:
    data = json_body()
    for field in ("name", "price"):
        if field not in data:
            return error_response(f"Missing required field: {field}", 400)
    repair = models.create_repair(
        g.db,
        name=data["name"],
        price=parse_price(data["price"]),
        description=data.get("description", ""),
    )
    return jsonify(repair), 201


# ===========================================================================
# Transactions
# ===========================================================================


@api_bp.route("/transactions", methods=["GET"])
@handle_errors
def list_transactions() -> tuple:
    """List transactions, optionally filtered by ?complete=, ?is_paid=, ?urgent=."""
    filters: dict[str, Any] = {}
    for key in ("complete", "is_paid", "urgent", "refurb", "waiting_email"):
        if key in request.args:
            filters[key] = request.args[key].lower() == "true"
    if "transaction_type" in request.args:
        filters["transaction_type"] = request.args["transaction_type"]
    return jsonify(models.list_transactions(g.db, **filters)), 200


@api_bp.route("/transactions/search", methods=["GET"])
@handle_errors
def search_transactions() -> tuple:
    results = transactions.search_transactions(
        g.db,
        customer=request.args.get("customer"),
        bike=request.args.get("bike"),
        description=request.args.get("description"),
    )
    return jsonify(results), 200


@api_bp.route("/transactions", methods=["POST"])
@handle_errors
def create_transaction() -> tuple:
    data = json_body()
    transaction = transactions.create_transaction(
        g.db,
        customer=data.get("customer"),
        actor_id=actor_id(),
        transaction_type=data.get("transaction_type"),
    )
    return jsonify(transaction), 201


@api_bp.route("/transactions/<transaction_id>", methods=["GET"])
@handle_errors
def get_transaction(transaction_id: str) -> tuple:
    transaction = transactions.get_transaction(g.db, transaction_id)
    return jsonify(transactions.populate_transaction(g.db, transaction)), 200


@api_bp.route("/transactions/<transaction_id>", methods=["PUT"])
@handle_errors
def update_transaction(transaction_id: str) -> tuple:
    updated = transactions.update_transaction(g.db, transaction_id, json_body(), actor_id())
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>", methods=["DELETE"])
@handle_errors
def delete_transaction(transaction_id: str) -> tuple:
    transactions.delete_transaction(g.db, transaction_id)
    return jsonify({"message": "Transaction deleted"}), 200


@api_bp.route("/transactions/<transaction_id>/complete", methods=["PUT"])
@handle_errors
def complete_transaction(transaction_id: str) -> tuple:
    complete = _flag(json_body(), "complete")
    updated = transactions.set_complete(g.db, transaction_id, complete, actor_id())
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/mark_paid", methods=["PUT"])
@handle_errors
def mark_paid(transaction_id: str) -> tuple:
    is_paid = _flag(json_body(), "is_paid")
    updated = transactions.mark_paid(g.db, transaction_id, is_paid, actor_id())
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/items", methods=["POST"])
@handle_errors
def add_item(transaction_id: str) -> tuple:
    data = json_body()
    updated = transactions.add_item_to_transaction(
        g.db,
        transaction_id,
        item_id=data.get("item_id"),
        actor_id=actor_id(),
        custom_price=data.get("custom_price"),
    )
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/items/<item_id>", methods=["DELETE"])
@handle_errors
def remove_item(transaction_id: str, item_id: str) -> tuple:
    updated = transactions.remove_item_from_transaction(g.db, transaction_id, item_id, actor_id())
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/repairs", methods=["POST"])
@handle_errors
def add_repair(transaction_id: str) -> tuple:
    updated = transactions.add_repair_to_transaction(
        g.db, transaction_id, json_body().get("repair_id"), actor_id()
    )
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/repairs/<line_id>", methods=["PUT"])
@handle_errors
def update_repair(transaction_id: str, line_id: str) -> tuple:
    completed = _flag(json_body(), "completed")
    updated = transactions.set_repair_completed(
        g.db, transaction_id, line_id, completed, actor_id()
    )
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/repairs/<line_id>", methods=["DELETE"])
@handle_errors
def remove_repair(transaction_id: str, line_id: str) -> tuple:
    updated = transactions.remove_repair_from_transaction(
        g.db, transaction_id, line_id, actor_id()
    )
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/bikes", methods=["POST"])
@handle_errors
def add_bike(transaction_id: str) -> tuple:
    updated = transactions.add_bike_to_transaction(g.db, transaction_id, json_body(), actor_id())
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/bikes/<bike_id>", methods=["DELETE"])
@handle_errors
def remove_bike(transaction_id: str, bike_id: str) -> tuple:
    updated = transactions.remove_bike_from_transaction(g.db, transaction_id, bike_id, actor_id())
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/order-requests", methods=["POST"])
@handle_errors
def add_order_request(transaction_id: str) -> tuple:
    updated = transactions.add_order_request_to_transaction(
        g.db, transaction_id, json_body().get("order_request_id"), actor_id()
    )
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/order-requests/<request_id>", methods=["DELETE"])
@handle_errors
def remove_order_request(transaction_id: str, request_id: str) -> tuple:
    updated = transactions.remove_order_request_from_transaction(
        g.db, transaction_id, request_id, actor_id()
    )
    return jsonify(updated), 200


@api_bp.route("/transactions/<transaction_id>/email-notify", methods=["POST"])
@handle_errors
def email_notify(transaction_id: str) -> tuple:
    """Email the customer that their bike is ready; delivery failure is reported, not raised."""
    sent = transactions.notify_ready(g.db, transaction_id)
    return jsonify({"sent": sent}), 200


@api_bp.route("/transactions/<transaction_id>/email-receipt", methods=["GET"])
@handle_errors
def email_receipt(transaction_id: str) -> tuple:
    """Resend the customer's receipt."""
    sent = transactions.email_receipt(g.db, transaction_id)
    return jsonify({"sent": sent}), 200
