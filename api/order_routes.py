"""API endpoints for supplier orders and order requests.

Registered on the shared ``api_bp`` blueprint.
"""

from __future__ import annotations

from flask import g, jsonify, request

import database.models as models
import services.order_request_service as order_requests
import services.order_service as orders
from api.errors import handle_errors
from api.routes import actor_id, api_bp, json_body

# ===========================================================================
# Order requests
# ===========================================================================


@api_bp.route("/order-requests", methods=["GET"])
@handle_errors
def list_order_requests() -> tuple:
    """List order requests with optional ?status= filter."""
    return jsonify(models.list_order_requests(g.db, status=request.args.get("status"))), 200


@api_bp.route("/order-requests", methods=["POST"])
@handle_errors
def create_order_request() -> tuple:
    data = json_body()
    order_request = order_requests.create_order_request(
        g.db,
        actor_id=actor_id(),
        request=data.get("request"),
        item_id=data.get("item_id"),
        quantity=data.get("quantity", 1),
        transaction_ids=data.get("transactions") or [],
        notes=data.get("notes"),
    )
    return jsonify(order_request), 201


@api_bp.route("/order-requests/<request_id>", methods=["GET"])
@handle_errors
def get_order_request(request_id: str) -> tuple:
    return jsonify(order_requests.get_order_request(g.db, request_id)), 200


@api_bp.route("/order-requests/<request_id>", methods=["PUT"])
@handle_errors
def update_order_request(request_id: str) -> tuple:
    data = json_body()
    fields = {k: data[k] for k in ("request", "quantity", "notes") if k in data}
    if "item_id" in data:
        fields["item"] = data["item_id"]
    updated = order_requests.update_order_request(g.db, request_id, fields)
    return jsonify(updated), 200


@api_bp.route("/order-requests/<request_id>", methods=["DELETE"])
@handle_errors
def delete_order_request(request_id: str) -> tuple:
    order_requests.delete_order_request(g.db, request_id)
    return jsonify({"message": "Order request deleted"}), 200


# ===========================================================================
# Orders
# ===========================================================================


@api_bp.route("/orders", methods=["GET"])
@handle_errors
def list_orders() -> tuple:
    """List orders created between ?start_date= and ?end_date=; ?active=true for carts."""
    result = models.list_orders(
        g.db,
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        active=request.args.get("active", "").lower() == "true",
    )
    return jsonify(result), 200


@api_bp.route("/orders", methods=["POST"])
@handle_errors
def create_order() -> tuple:
    order = orders.create_order(g.db, json_body().get("supplier"))
    return jsonify(order), 201


@api_bp.route("/orders/<order_id>", methods=["GET"])
@handle_errors
def get_order(order_id: str) -> tuple:
    return jsonify(orders.get_order(g.db, order_id)), 200


@api_bp.route("/orders/<order_id>", methods=["DELETE"])
@handle_errors
def delete_order(order_id: str) -> tuple:
    orders.delete_order(g.db, order_id)
    return jsonify({"message": "Order deleted"}), 200


@api_bp.route("/orders/<order_id>/status", methods=["PUT"])
@handle_errors
def update_order_status(order_id: str) -> tuple:
    updated = orders.update_status(g.db, order_id, json_body().get("status"))
    return jsonify(updated), 200


@api_bp.route("/orders/<order_id>/supplier", methods=["PUT"])
@handle_errors
def update_order_supplier(order_id: str) -> tuple:
    updated = orders.update_supplier(g.db, order_id, json_body().get("supplier"))
    return jsonify(updated), 200


@api_bp.route("/orders/<order_id>/tracking_number", methods=["PUT"])
@handle_errors
def update_order_tracking_number(order_id: str) -> tuple:
    updated = orders.update_tracking_number(g.db, order_id, json_body().get("tracking_number"))
    return jsonify(updated), 200


@api_bp.route("/orders/<order_id>/freight-charge", methods=["PUT"])
@handle_errors
def update_order_freight_charge(order_id: str) -> tuple:
    updated = orders.update_freight_charge(g.db, order_id, json_body().get("charge"))
    return jsonify(updated), 200


@api_bp.route("/orders/<order_id>/order-request", methods=["POST"])
@handle_errors
def add_order_request_to_order(order_id: str) -> tuple:
    updated = orders.add_order_request(g.db, order_id, json_body().get("order_request_id"))
    return jsonify(updated), 200


@api_bp.route("/orders/<order_id>/order-request/<request_id>", methods=["DELETE"])
@handle_errors
def remove_order_request_from_order(order_id: str, request_id: str) -> tuple:
    updated = orders.remove_order_request(g.db, order_id, request_id)
    return jsonify(updated), 200
