"""Inventory ledger.

Stock counts live on the item documents.  They move only through
``adjust_stock``: by one unit per line item when a transaction is completed
or reopened, and by the ordered quantity when a supplier order is completed
or un-completed.  Managed items (tax) never have their stock tracked.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

import database.models as models
from api.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def adjust_stock(
    conn: sqlite3.Connection,
    item_id: str,
    delta: int,
) -> dict[str, Any]:
    """Add *delta* (may be negative) to an item's stock and return the item.

    Raises NotFoundError if the item does not exist.
    """
    item = models.get_item(conn, item_id)
    if item is None:
        msg = "Stock update requested for invalid item"
        raise NotFoundError(msg)
    if item.get("managed"):
        return item

    item["stock"] = (item.get("stock") or 0) + delta
    saved = models.save_item(conn, item)

    threshold = saved.get("warning_stock")
    if delta < 0 and threshold is not None and saved["stock"] <= threshold:
        logger.warning(
            "Low stock for %s (%s): %d left, warning level %d",
            saved["name"],
            saved["id"],
            saved["stock"],
            threshold,
        )
    return saved


def apply_transaction_stock(
    conn: sqlite3.Connection,
    transaction: dict[str, Any],
    direction: int,
) -> None:
    """Move one unit of stock per item line on *transaction*.

    *direction* is -1 when the transaction is completed (items leave the
    shop) and +1 when it is reopened.
    """
    for line in transaction["items"]:
        adjust_stock(conn, line["item"], direction)


def list_low_stock_items(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Return tracked items at or below their warning stock level."""
    return [
        item
        for item in models.list_items(conn)
        if not item.get("managed")
        and item.get("warning_stock") is not None
        and (item.get("stock") or 0) <= item["warning_stock"]
    ]
