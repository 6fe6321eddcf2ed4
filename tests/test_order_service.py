"""Tests for the supplier order lifecycle."""

from __future__ import annotations

import sqlite3
from typing import Any

import pytest

import services.order_service as orders
from api.exceptions import ForbiddenError, NotFoundError, ValidationError
from database.models import (
    NOT_ORDERED,
    create_item,
    create_order_request,
    create_transaction,
    get_item,
    get_order,
    get_order_request,
    get_transaction,
    save_order_request,
)
from services.order_request_service import create_order_request as open_request


@pytest.fixture
def wheel(db: sqlite3.Connection) -> dict[str, Any]:
    return create_item(db, name="Rear Wheel", standard_price=12.00, wholesale_cost=5.00, stock=0)


@pytest.fixture
def order(db: sqlite3.Connection) -> dict[str, Any]:
    return orders.create_order(db, "QBP")


@pytest.fixture
def request_for_wheel(db: sqlite3.Connection, wheel) -> dict[str, Any]:
    return create_order_request(db, request="Rear wheel", item_id=wheel["id"], quantity=3)


class TestCreateDelete:
    def test_requires_supplier(self, db: sqlite3.Connection) -> None:
        with pytest.raises(ValidationError, match="No supplier"):
            orders.create_order(db, "")

    def test_get_missing(self, db: sqlite3.Connection) -> None:
        with pytest.raises(NotFoundError, match="No order found"):
            orders.get_order(db, "nope")

    def test_delete_releases_requests(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        orders.add_order_request(db, order["id"], request_for_wheel["id"])
        orders.delete_order(db, order["id"])

        assert get_order(db, order["id"]) is None
        req = get_order_request(db, request_for_wheel["id"])
        assert req["orderRef"] is None
        assert req["status"] == NOT_ORDERED


class TestAssociation:
    def test_add_snapshots_request(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        updated = orders.add_order_request(db, order["id"], request_for_wheel["id"])
        assert updated["items"] == [request_for_wheel["id"]]
        assert updated["total_price"] == 15.0

        req = get_order_request(db, request_for_wheel["id"])
        assert req["orderRef"] == order["id"]
        assert req["status"] == "In Cart"
        assert req["supplier"] == "QBP"
        assert req["unit_cost"] == 5.0

    def test_newest_request_first(self, db: sqlite3.Connection, order, request_for_wheel, wheel) -> None:
        second = create_order_request(db, request="Another", item_id=wheel["id"])
        orders.add_order_request(db, order["id"], request_for_wheel["id"])
        updated = orders.add_order_request(db, order["id"], second["id"])
        assert updated["items"] == [second["id"], request_for_wheel["id"]]

    def test_no_request_id(self, db: sqlite3.Connection, order) -> None:
        with pytest.raises(ValidationError):
            orders.add_order_request(db, order["id"], None)

    def test_unknown_request(self, db: sqlite3.Connection, order) -> None:
        with pytest.raises(NotFoundError):
            orders.add_order_request(db, order["id"], "nope")

    def test_already_associated(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        other = orders.create_order(db, "BTI")
        orders.add_order_request(db, other["id"], request_for_wheel["id"])
        with pytest.raises(ForbiddenError, match="already associated"):
            orders.add_order_request(db, order["id"], request_for_wheel["id"])

    def test_request_without_item(self, db: sqlite3.Connection, order) -> None:
        req = create_order_request(db, request="Mystery part")
        with pytest.raises(ForbiddenError, match="associated item"):
            orders.add_order_request(db, order["id"], req["id"])

    def test_bad_quantity(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        request_for_wheel["quantity"] = 0
        save_order_request(db, request_for_wheel)
        with pytest.raises(ValidationError, match="bad quantity"):
            orders.add_order_request(db, order["id"], request_for_wheel["id"])

    def test_unknown_order(self, db: sqlite3.Connection, request_for_wheel) -> None:
        with pytest.raises(NotFoundError):
            orders.add_order_request(db, "nope", request_for_wheel["id"])
        assert get_order_request(db, request_for_wheel["id"])["orderRef"] is None

    def test_remove(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        orders.add_order_request(db, order["id"], request_for_wheel["id"])
        updated = orders.remove_order_request(db, order["id"], request_for_wheel["id"])
        assert updated["items"] == []
        assert updated["total_price"] == 0

        req = get_order_request(db, request_for_wheel["id"])
        assert req["orderRef"] is None
        assert req["supplier"] is None
        assert req["status"] == NOT_ORDERED

    def test_remove_not_in_order(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        with pytest.raises(NotFoundError):
            orders.remove_order_request(db, order["id"], request_for_wheel["id"])


class TestFieldUpdates:
    def test_supplier_propagates(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        orders.add_order_request(db, order["id"], request_for_wheel["id"])
        updated = orders.update_supplier(db, order["id"], "BTI")
        assert updated["supplier"] == "BTI"
        assert get_order_request(db, request_for_wheel["id"])["supplier"] == "BTI"

    def test_tracking_number(self, db: sqlite3.Connection, order) -> None:
        assert orders.update_tracking_number(db, order["id"], "1Z999")["tracking_number"] == "1Z999"
        with pytest.raises(ValidationError):
            orders.update_tracking_number(db, order["id"], "")

    def test_freight_applies_difference(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        orders.add_order_request(db, order["id"], request_for_wheel["id"])
        updated = orders.update_freight_charge(db, order["id"], 10)
        assert updated["total_price"] == 25.0
        updated = orders.update_freight_charge(db, order["id"], "$4.50")
        assert updated["freight_charge"] == 4.5
        assert updated["total_price"] == 19.5

    def test_freight_required(self, db: sqlite3.Connection, order) -> None:
        with pytest.raises(ValidationError):
            orders.update_freight_charge(db, order["id"], None)


class TestStatus:
    @pytest.fixture
    def waiting_transactions(
        self, db: sqlite3.Connection, sample_customer, sample_user, wheel
    ) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
        regular = create_transaction(db, sample_customer["id"], date_created="2024-03-01 10:00:00")
        staff = create_transaction(
            db, sample_customer["id"], employee=True, date_created="2024-03-01 11:00:00"
        )
        req = open_request(
            db,
            sample_user["id"],
            item_id=wheel["id"],
            quantity=3,
            transaction_ids=[regular["id"], staff["id"]],
        )
        return regular, staff, req

    def test_invalid_status(self, db: sqlite3.Connection, order) -> None:
        with pytest.raises(ValidationError):
            orders.update_status(db, order["id"], "Shipped")
        with pytest.raises(ValidationError):
            orders.update_status(db, order["id"], None)

    def test_ordered_then_back_to_cart(self, db: sqlite3.Connection, order, request_for_wheel) -> None:
        orders.add_order_request(db, order["id"], request_for_wheel["id"])
        updated = orders.update_status(db, order["id"], "Ordered")
        assert updated["status"] == "Ordered"
        assert updated["date_submitted"] is not None
        assert get_order_request(db, request_for_wheel["id"])["status"] == "Ordered"

        updated = orders.update_status(db, order["id"], "In Cart")
        assert updated["date_submitted"] is None
        assert get_order_request(db, request_for_wheel["id"])["status"] == "In Cart"

    def test_complete_restocks_and_fulfills(
        self, db: sqlite3.Connection, order, wheel, waiting_transactions
    ) -> None:
        regular, staff, req = waiting_transactions
        orders.add_order_request(db, order["id"], req["id"])

        updated = orders.update_status(db, order["id"], "Completed")
        assert updated["status"] == "Completed"
        assert updated["date_completed"] is not None
        assert updated["date_submitted"] is not None
        assert get_item(db, wheel["id"])["stock"] == 3
        assert get_order_request(db, req["id"])["status"] == "Completed"

        regular_after = get_transaction(db, regular["id"])
        assert regular_after["items"] == [{"item": wheel["id"], "price": 12.0}]
        assert regular_after["orderRequests"] == []
        staff_after = get_transaction(db, staff["id"])
        assert staff_after["items"] == [{"item": wheel["id"], "price": 6.25}]
        assert staff_after["total_cost"] == 6.25

    def test_completed_twice_restocks_once(self, db: sqlite3.Connection, order, wheel, waiting_transactions) -> None:
        _, _, req = waiting_transactions
        orders.add_order_request(db, order["id"], req["id"])
        orders.update_status(db, order["id"], "Completed")
        orders.update_status(db, order["id"], "Completed")
        assert get_item(db, wheel["id"])["stock"] == 3

    def test_leaving_completed_reverses(self, db: sqlite3.Connection, order, wheel, waiting_transactions) -> None:
        regular, _, req = waiting_transactions
        orders.add_order_request(db, order["id"], req["id"])
        orders.update_status(db, order["id"], "Completed")

        updated = orders.update_status(db, order["id"], "Ordered")
        assert updated["date_completed"] is None
        assert get_item(db, wheel["id"])["stock"] == 0
        regular_after = get_transaction(db, regular["id"])
        assert regular_after["items"] == []
        assert regular_after["total_cost"] == 0
        assert regular_after["orderRequests"] == [req["id"]]
