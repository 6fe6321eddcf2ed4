"""Tests for the document store in database.models."""

from __future__ import annotations

import sqlite3

import pytest

from database.models import (
    NOT_ORDERED,
    create_document,
    create_item,
    create_order,
    create_order_request,
    create_transaction,
    create_user,
    delete_document,
    delete_user,
    distinct,
    find_documents,
    get_document,
    get_item,
    get_item_by_name,
    get_user_by_username,
    list_items,
    list_orders,
    list_transactions,
    save_document,
    save_order,
    update_item,
    update_order_request,
)

# ===========================================================================
# Generic documents
# ===========================================================================


class TestDocuments:
    def test_create_assigns_id(self, db: sqlite3.Connection) -> None:
        doc = create_document(db, "bikes", {"make": "Surly", "model": "Cross-Check"})
        assert len(doc["id"]) == 32
        assert doc["make"] == "Surly"

    def test_create_keeps_given_id(self, db: sqlite3.Connection) -> None:
        doc = create_document(db, "bikes", {"id": "bike-1", "make": "Surly", "model": "LHT"})
        assert doc["id"] == "bike-1"
        assert get_document(db, "bikes", "bike-1")["model"] == "LHT"

    def test_get_missing(self, db: sqlite3.Connection) -> None:
        assert get_document(db, "bikes", "nope") is None

    def test_unknown_collection(self, db: sqlite3.Connection) -> None:
        with pytest.raises(ValueError, match="Unknown collection"):
            get_document(db, "bikes; DROP TABLE users", "x")

    def test_find_by_field(self, db: sqlite3.Connection) -> None:
        create_document(db, "bikes", {"make": "Surly", "model": "LHT"})
        create_document(db, "bikes", {"make": "Trek", "model": "520"})
        found = find_documents(db, "bikes", {"make": "Trek"})
        assert [b["model"] for b in found] == ["520"]

    def test_find_none_matches_missing(self, db: sqlite3.Connection) -> None:
        create_document(db, "bikes", {"make": "Surly"})
        create_document(db, "bikes", {"make": "Trek", "model": "520"})
        found = find_documents(db, "bikes", {"model": None})
        assert [b["make"] for b in found] == ["Surly"]

    def test_find_rejects_bad_field(self, db: sqlite3.Connection) -> None:
        with pytest.raises(ValueError, match="Invalid field name"):
            find_documents(db, "bikes", {"make') OR 1=1 --": "x"})

    def test_save_replaces_document(self, db: sqlite3.Connection) -> None:
        doc = create_document(db, "bikes", {"make": "Surly", "model": "LHT"})
        doc["model"] = "Disc Trucker"
        del doc["make"]
        saved = save_document(db, "bikes", doc)
        assert saved["model"] == "Disc Trucker"
        assert "make" not in saved

    def test_delete(self, db: sqlite3.Connection) -> None:
        doc = create_document(db, "bikes", {"make": "Surly"})
        assert delete_document(db, "bikes", doc["id"]) is True
        assert delete_document(db, "bikes", doc["id"]) is False

    def test_distinct(self, db: sqlite3.Connection) -> None:
        for make in ("Surly", "Trek", "Surly"):
            create_document(db, "bikes", {"make": make})
        assert sorted(distinct(db, "bikes", "make")) == ["Surly", "Trek"]


# ===========================================================================
# Users
# ===========================================================================


class TestUsers:
    def test_duplicate_username_returns_none(self, db: sqlite3.Connection) -> None:
        assert create_user(db, username="alex") is not None
        assert create_user(db, username="alex") is None

    def test_lookup_by_username(self, db: sqlite3.Connection, sample_user) -> None:
        assert get_user_by_username(db, "mechanic")["id"] == sample_user["id"]
        assert get_user_by_username(db, "nobody") is None


# ===========================================================================
# Items
# ===========================================================================


class TestItems:
    def test_defaults(self, sample_item) -> None:
        assert sample_item["condition"] == "New"
        assert sample_item["managed"] is False
        assert sample_item["disabled"] is False

    def test_get_by_name(self, db: sqlite3.Connection, sample_item) -> None:
        assert get_item_by_name(db, "Inner Tube 700x25")["id"] == sample_item["id"]

    def test_list_hides_disabled(self, db: sqlite3.Connection, sample_item) -> None:
        update_item(db, sample_item["id"], disabled=True)
        assert list_items(db) == []
        assert len(list_items(db, include_disabled=True)) == 1

    def test_update_cannot_touch_stock(self, db: sqlite3.Connection, sample_item) -> None:
        with pytest.raises(ValueError, match="No valid fields"):
            update_item(db, sample_item["id"], stock=100)
        assert get_item(db, sample_item["id"])["stock"] == 5

    def test_update_missing(self, db: sqlite3.Connection) -> None:
        assert update_item(db, "missing", name="x") is None


# ===========================================================================
# Transactions, order requests and orders
# ===========================================================================


class TestTransactions:
    def test_new_transaction_is_open_and_empty(self, sample_transaction) -> None:
        assert sample_transaction["complete"] is False
        assert sample_transaction["is_paid"] is False
        assert sample_transaction["total_cost"] == 0
        assert sample_transaction["items"] == []
        assert sample_transaction["orderRequests"] == []
        assert sample_transaction["actions"] == []

    def test_list_newest_first_with_filters(self, db: sqlite3.Connection, sample_customer) -> None:
        old = create_transaction(db, sample_customer["id"], date_created="2023-01-01 09:00:00")
        new = create_transaction(db, sample_customer["id"], date_created="2024-01-01 09:00:00")
        assert [t["id"] for t in list_transactions(db)] == [new["id"], old["id"]]
        assert list_transactions(db, complete=True) == []


class TestOrderRequests:
    def test_defaults(self, db: sqlite3.Connection) -> None:
        req = create_order_request(db, request="Brake pads")
        assert req["status"] == NOT_ORDERED
        assert req["orderRef"] is None
        assert req["transactions"] == []

    def test_update_whitelist(self, db: sqlite3.Connection) -> None:
        req = create_order_request(db, request="Brake pads")
        updated = update_order_request(db, req["id"], quantity=3, status="Completed")
        assert updated["quantity"] == 3
        assert updated["status"] == NOT_ORDERED


class TestOrders:
    def test_new_order_in_cart(self, db: sqlite3.Connection) -> None:
        order = create_order(db, "QBP")
        assert order["status"] == "In Cart"
        assert order["total_price"] == 0
        assert order["items"] == []

    def test_list_date_range_includes_end_day(self, db: sqlite3.Connection) -> None:
        first = create_order(db, "QBP")
        first["date_created"] = "2024-05-01 08:00:00"
        save_order(db, first)
        second = create_order(db, "BTI")
        second["date_created"] = "2024-05-10 17:30:00"
        save_order(db, second)

        in_range = list_orders(db, start_date="2024-05-01", end_date="2024-05-10")
        assert [o["supplier"] for o in in_range] == ["BTI", "QBP"]
        assert [o["supplier"] for o in list_orders(db, end_date="2024-05-09")] == ["QBP"]

    def test_list_active_only(self, db: sqlite3.Connection) -> None:
        cart = create_order(db, "QBP")
        placed = create_order(db, "BTI")
        placed["status"] = "Ordered"
        save_order(db, placed)
        assert [o["id"] for o in list_orders(db, active=True)] == [cart["id"]]


class TestWarningStock:
    @pytest.mark.parametrize(("value", "expected"), [("10", 10), (3, 3), (4.0, 4), (None, None), ("", None)])
    def test_coerced_on_create(self, db: sqlite3.Connection, value, expected) -> None:
        item = create_item(db, name="Chain", standard_price=20, warning_stock=value)
        assert item["warning_stock"] == expected

    @pytest.mark.parametrize("value", ["ten", -1, 2.5, True, [3]])
    def test_rejected_on_create(self, db: sqlite3.Connection, value) -> None:
        with pytest.raises(ValueError, match="warning_stock"):
            create_item(db, name="Chain", standard_price=20, warning_stock=value)
        assert list_items(db) == []

    def test_update_coerces_and_rejects(self, db: sqlite3.Connection, sample_item) -> None:
        assert update_item(db, sample_item["id"], warning_stock="7")["warning_stock"] == 7
        with pytest.raises(ValueError):
            update_item(db, sample_item["id"], warning_stock="lots")
        assert get_item(db, sample_item["id"])["warning_stock"] == 7


class TestDeleteUser:
    def test_delete(self, db: sqlite3.Connection, sample_user) -> None:
        assert delete_user(db, sample_user["id"]) is True
        assert get_user_by_username(db, "mechanic") is None
        assert delete_user(db, sample_user["id"]) is False
