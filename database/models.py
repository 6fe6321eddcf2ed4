"""Document store CRUD operations.

Each collection is a SQLite table holding one JSON document per row.  The
generic helpers (create/get/find/save/delete/distinct) back the
entity-specific functions for users, customers, items, repairs, bikes,
transactions, order requests and orders.

Entities reference each other by id only; nothing is embedded.
"""

from __future__ import annotations

import json
import re
import sqlite3
import uuid
from datetime import UTC, datetime
from typing import Any

COLLECTIONS = frozenset(
    {
        "users",
        "customers",
        "items",
        "repairs",
        "bikes",
        "transactions",
        "order_requests",
        "orders",
    }
)

ORDER_STATUSES = ("In Cart", "Ordered", "Completed")
NOT_ORDERED = "Not Ordered"

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _row_to_doc(row: sqlite3.Row | None) -> dict[str, Any] | None:
    """Decode a stored row into a document dict, or return None."""
    if row is None:
        return None
    doc = json.loads(row["data"])
    doc["id"] = row["id"]
    return doc


def _rows_to_docs(rows: list[sqlite3.Row]) -> list[dict[str, Any]]:
    return [_row_to_doc(r) for r in rows]  # type: ignore[misc]


def now() -> str:
    """Return the current UTC timestamp as an ISO-8601 string."""
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")


def _table(collection: str) -> str:
    if collection not in COLLECTIONS:
        msg = f"Unknown collection: {collection!r}"
        raise ValueError(msg)
    return collection


def _field(name: str) -> str:
    """Return a JSON path for *name* after validating it as a plain identifier."""
    if not _FIELD_RE.match(name):
        msg = f"Invalid field name: {name!r}"
        raise ValueError(msg)
    return f"$.{name}"


def _encode(doc: dict[str, Any]) -> str:
    body = {k: v for k, v in doc.items() if k != "id"}
    return json.dumps(body)


def _stock_level(value: Any) -> int | None:
    """Coerce a warning stock level to a non-negative int, or None when unset.

    Raises ValueError for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        msg = f"warning_stock must be a whole number, got {value!r}"
        raise ValueError(msg)
    try:
        level = int(value)
    except (TypeError, ValueError):
        msg = f"warning_stock must be a whole number, got {value!r}"
        raise ValueError(msg) from None
    if level < 0:
        msg = "warning_stock must not be negative"
        raise ValueError(msg)
    return level


def _apply_update(
    doc: dict[str, Any],
    fields: dict[str, Any],
    allowed: set[str],
) -> dict[str, Any]:
    """Copy whitelisted *fields* onto *doc*.

    Raises ValueError when none of the fields are allowed.
    """
    to_set = {k: v for k, v in fields.items() if k in allowed}
    if not to_set:
        msg = "No valid fields to update"
        raise ValueError(msg)
    doc.update(to_set)
    return doc


# ---------------------------------------------------------------------------
# Generic document operations
# ---------------------------------------------------------------------------


def create_document(
    conn: sqlite3.Connection,
    collection: str,
    doc: dict[str, Any],
) -> dict[str, Any]:
    """Insert *doc* into *collection* and return it with its new id."""
    table = _table(collection)
    doc_id = doc.get("id") or uuid.uuid4().hex
    conn.execute(
        f"INSERT INTO {table} (id, data) VALUES (?, ?)",  # noqa: S608
        (doc_id, _encode(doc)),
    )
    conn.commit()
    return get_document(conn, collection, doc_id)  # type: ignore[return-value]


def get_document(
    conn: sqlite3.Connection,
    collection: str,
    doc_id: str,
) -> dict[str, Any] | None:
    """Return a single document by id."""
    table = _table(collection)
    return _row_to_doc(
        conn.execute(f"SELECT * FROM {table} WHERE id = ?", (doc_id,)).fetchone()  # noqa: S608
    )


def find_documents(
    conn: sqlite3.Connection,
    collection: str,
    query: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Return documents whose top-level fields equal every value in *query*.

    ``None`` matches a missing or null field. Results are in insertion order.
    """
    table = _table(collection)
    sql = f"SELECT * FROM {table}"  # noqa: S608
    conditions: list[str] = []
    params: list[Any] = []
    for key, value in (query or {}).items():
        if key == "id":
            conditions.append("id = ?")
            params.append(value)
        elif value is None:
            conditions.append("json_extract(data, ?) IS NULL")
            params.append(_field(key))
        else:
            conditions.append("json_extract(data, ?) = ?")
            params.extend([_field(key), value])
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += " ORDER BY created_at, rowid"
    return _rows_to_docs(conn.execute(sql, params).fetchall())


def save_document(
    conn: sqlite3.Connection,
    collection: str,
    doc: dict[str, Any],
) -> dict[str, Any]:
    """Upsert *doc* by its id and return the stored version."""
    table = _table(collection)
    if not doc.get("id"):
        return create_document(conn, collection, doc)
    conn.execute(
        f"""
        INSERT INTO {table} (id, data) VALUES (?, ?)
        ON CONFLICT(id) DO UPDATE SET data = excluded.data
        """,  # noqa: S608
        (doc["id"], _encode(doc)),
    )
    conn.commit()
    return get_document(conn, collection, doc["id"])  # type: ignore[return-value]


def delete_document(conn: sqlite3.Connection, collection: str, doc_id: str) -> bool:
    """Delete a document by id. Returns True if a row was deleted."""
    table = _table(collection)
    cur = conn.execute(f"DELETE FROM {table} WHERE id = ?", (doc_id,))  # noqa: S608
    conn.commit()
    return cur.rowcount > 0


def distinct(conn: sqlite3.Connection, collection: str, field: str) -> list[Any]:
    """Return the distinct non-null values of *field* across *collection*."""
    table = _table(collection)
    if field == "id":
        rows = conn.execute(f"SELECT id FROM {table} ORDER BY rowid").fetchall()  # noqa: S608
        return [r[0] for r in rows]
    rows = conn.execute(
        f"""
        SELECT DISTINCT json_extract(data, ?) AS value FROM {table}
        WHERE json_extract(data, ?) IS NOT NULL
        """,  # noqa: S608
        (_field(field), _field(field)),
    ).fetchall()
    return [r["value"] for r in rows]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def create_user(
    conn: sqlite3.Connection,
    username: str,
    admin: bool = False,
    roles: list[str] | None = None,
) -> dict[str, Any] | None:
    """Insert a new user and return it, or None on duplicate username."""
    try:
        return create_document(
            conn,
            "users",
            {
                "username": username,
                "admin": admin,
                "roles": roles or [],
                "created_at": now(),
            },
        )
    except sqlite3.IntegrityError:
        conn.rollback()
        return None


def get_user(conn: sqlite3.Connection, user_id: str) -> dict[str, Any] | None:
    return get_document(conn, "users", user_id)


def get_user_by_username(conn: sqlite3.Connection, username: str) -> dict[str, Any] | None:
    users = find_documents(conn, "users", {"username": username})
    return users[0] if users else None


def list_users(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    return find_documents(conn, "users")


def delete_user(conn: sqlite3.Connection, user_id: str) -> bool:
    return delete_document(conn, "users", user_id)


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


def create_customer(
    conn: sqlite3.Connection,
    first_name: str,
    last_name: str,
    email: str,
) -> dict[str, Any]:
    return create_document(
        conn,
        "customers",
        {"first_name": first_name, "last_name": last_name, "email": email},
    )


def get_customer(conn: sqlite3.Connection, customer_id: str) -> dict[str, Any] | None:
    return get_document(conn, "customers", customer_id)


def list_customers(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    return find_documents(conn, "customers")


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

_ITEM_UPDATE_ALLOWED = {
    "name",
    "category",
    "brand",
    "condition",
    "standard_price",
    "wholesale_cost",
    "warning_stock",
    "disabled",
}


def create_item(
    conn: sqlite3.Connection,
    name: str,
    standard_price: float,
    wholesale_cost: float = 0,
    stock: int = 0,
    condition: str = "New",
    category: str | None = None,
    brand: str | None = None,
    managed: bool = False,
    warning_stock: int | None = None,
) -> dict[str, Any]:
    """Insert a catalog item and return it."""
    timestamp = now()
    return create_document(
        conn,
        "items",
        {
            "name": name,
            "category": category,
            "brand": brand,
            "condition": condition,
            "standard_price": standard_price,
            "wholesale_cost": wholesale_cost,
            "stock": stock,
            "managed": managed,
            "warning_stock": _stock_level(warning_stock),
            "disabled": False,
            "created_at": timestamp,
            "updated_at": timestamp,
        },
    )


def get_item(conn: sqlite3.Connection, item_id: str) -> dict[str, Any] | None:
    return get_document(conn, "items", item_id)


def get_item_by_name(conn: sqlite3.Connection, name: str) -> dict[str, Any] | None:
    """Return the first item with exactly *name*."""
    items = find_documents(conn, "items", {"name": name})
    return items[0] if items else None


def list_items(
    conn: sqlite3.Connection,
    include_disabled: bool = False,
) -> list[dict[str, Any]]:
    """Return catalog items ordered by name."""
    items = find_documents(conn, "items")
    if not include_disabled:
        items = [i for i in items if not i.get("disabled")]
    return sorted(items, key=lambda i: (i.get("name") or "").lower())


def update_item(
    conn: sqlite3.Connection,
    item_id: str,
    **fields: Any,
) -> dict[str, Any] | None:
    """Update an item's catalog fields and return the updated document.

    Stock is not editable here; it only moves through the inventory ledger.
    """
    item = get_item(conn, item_id)
    if item is None:
        return None
    if "warning_stock" in fields:
        fields["warning_stock"] = _stock_level(fields["warning_stock"])
    _apply_update(item, fields, _ITEM_UPDATE_ALLOWED)
    item["updated_at"] = now()
    return save_document(conn, "items", item)


def save_item(conn: sqlite3.Connection, item: dict[str, Any]) -> dict[str, Any]:
    item["updated_at"] = now()
    return save_document(conn, "items", item)


# ---------------------------------------------------------------------------
# Repairs
# ---------------------------------------------------------------------------


def create_repair(
    conn: sqlite3.Connection,
    name: str,
    price: float,
    description: str = "",
) -> dict[str, Any]:
    return create_document(
        conn,
        "repairs",
        {"name": name, "price": price, "description": description},
    )


def get_repair(conn: sqlite3.Connection, repair_id: str) -> dict[str, Any] | None:
    return get_document(conn, "repairs", repair_id)


def list_repairs(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    return find_documents(conn, "repairs")


# ---------------------------------------------------------------------------
# Bikes
# ---------------------------------------------------------------------------


def create_bike(
    conn: sqlite3.Connection,
    make: str,
    model: str,
    description: str = "",
) -> dict[str, Any]:
    return create_document(
        conn,
        "bikes",
        {"make": make, "model": model, "description": description},
    )


def get_bike(conn: sqlite3.Connection, bike_id: str) -> dict[str, Any] | None:
    return get_document(conn, "bikes", bike_id)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def create_transaction(
    conn: sqlite3.Connection,
    customer_id: str,
    transaction_type: str | None = None,
    employee: bool = False,
    date_created: str | None = None,
) -> dict[str, Any]:
    """Insert an open, empty transaction for *customer_id* and return it."""
    return create_document(
        conn,
        "transactions",
        {
            "date_created": date_created or now(),
            "date_completed": None,
            "transaction_type": transaction_type,
            "customer": customer_id,
            "complete": False,
            "is_paid": False,
            "urgent": False,
            "waiting_email": False,
            "refurb": False,
            "description": "",
            "employee": employee,
            "total_cost": 0,
            "items": [],
            "repairs": [],
            "bikes": [],
            "orderRequests": [],
            "actions": [],
        },
    )


def get_transaction(conn: sqlite3.Connection, transaction_id: str) -> dict[str, Any] | None:
    return get_document(conn, "transactions", transaction_id)


def list_transactions(
    conn: sqlite3.Connection,
    **filters: Any,
) -> list[dict[str, Any]]:
    """Return transactions, newest first, matching equality *filters*."""
    transactions = find_documents(conn, "transactions", filters)
    return sorted(transactions, key=lambda t: t.get("date_created") or "", reverse=True)


def save_transaction(conn: sqlite3.Connection, transaction: dict[str, Any]) -> dict[str, Any]:
    return save_document(conn, "transactions", transaction)


def delete_transaction(conn: sqlite3.Connection, transaction_id: str) -> bool:
    return delete_document(conn, "transactions", transaction_id)


# ---------------------------------------------------------------------------
# Order Requests
# ---------------------------------------------------------------------------

_ORDER_REQUEST_UPDATE_ALLOWED = {"request", "item", "quantity", "notes"}


def create_order_request(
    conn: sqlite3.Connection,
    request: str,
    item_id: str | None = None,
    quantity: int = 1,
    transactions: list[str] | None = None,
    created_by: str | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Insert an unassociated order request and return it."""
    return create_document(
        conn,
        "order_requests",
        {
            "request": request,
            "item": item_id,
            "quantity": quantity,
            "status": NOT_ORDERED,
            "supplier": None,
            "orderRef": None,
            "transactions": list(transactions or []),
            "notes": notes,
            "created_by": created_by,
            "date_created": now(),
        },
    )


def get_order_request(conn: sqlite3.Connection, request_id: str) -> dict[str, Any] | None:
    return get_document(conn, "order_requests", request_id)


def list_order_requests(
    conn: sqlite3.Connection,
    status: str | None = None,
) -> list[dict[str, Any]]:
    """Return order requests, optionally filtered by status."""
    if status is not None:
        return find_documents(conn, "order_requests", {"status": status})
    return find_documents(conn, "order_requests")


def update_order_request(
    conn: sqlite3.Connection,
    request_id: str,
    **fields: Any,
) -> dict[str, Any] | None:
    order_request = get_order_request(conn, request_id)
    if order_request is None:
        return None
    _apply_update(order_request, fields, _ORDER_REQUEST_UPDATE_ALLOWED)
    return save_document(conn, "order_requests", order_request)


def save_order_request(
    conn: sqlite3.Connection,
    order_request: dict[str, Any],
) -> dict[str, Any]:
    return save_document(conn, "order_requests", order_request)


def delete_order_request(conn: sqlite3.Connection, request_id: str) -> bool:
    return delete_document(conn, "order_requests", request_id)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


def create_order(conn: sqlite3.Connection, supplier: str) -> dict[str, Any]:
    """Insert an empty order in the cart and return it."""
    return create_document(
        conn,
        "orders",
        {
            "supplier": supplier,
            "status": "In Cart",
            "total_price": 0,
            "freight_charge": 0,
            "tracking_number": None,
            "date_created": now(),
            "date_submitted": None,
            "date_completed": None,
            "items": [],
        },
    )


def get_order(conn: sqlite3.Connection, order_id: str) -> dict[str, Any] | None:
    return get_document(conn, "orders", order_id)


def list_orders(
    conn: sqlite3.Connection,
    start_date: str | None = None,
    end_date: str | None = None,
    active: bool = False,
) -> list[dict[str, Any]]:
    """Return orders created within [start_date, end_date], newest first.

    When *active* is true only orders still in the cart are returned.
    """
    orders = find_documents(conn, "orders", {"status": "In Cart"} if active else None)
    if start_date:
        orders = [o for o in orders if o["date_created"] >= start_date]
    if end_date:
        if len(end_date) == 10:  # bare date: include the whole day
            end_date += " 23:59:59"
        orders = [o for o in orders if o["date_created"] <= end_date]
    return sorted(orders, key=lambda o: o["date_created"], reverse=True)


def save_order(conn: sqlite3.Connection, order: dict[str, Any]) -> dict[str, Any]:
    return save_document(conn, "orders", order)


def delete_order(conn: sqlite3.Connection, order_id: str) -> bool:
    return delete_document(conn, "orders", order_id)
