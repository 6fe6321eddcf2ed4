"""Transaction pricing engine.

Computes line-item prices, keeps ``total_cost`` equal to the sum of item and
repair line prices, and maintains the synthetic tax line item.

Functions here mutate the transaction dict they are given and persist it;
callers pass in an already loaded transaction.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any

import database.models as models
from api.exceptions import ForbiddenError, NotFoundError
from config import settings
from utils.money import add_cents, parse_price, round_cents, to_decimal, truncate_cents

logger = logging.getLogger(__name__)

TAX_EPSILON = 0.001


def get_tax_item(conn: sqlite3.Connection) -> dict[str, Any]:
    """Return the managed tax item, creating it on first use.

    Only a managed item counts; a catalog item that happens to share the
    name is never used as the tax line.
    """
    found = models.find_documents(
        conn, "items", {"name": settings.tax_item_name, "managed": True}
    )
    item = found[0] if found else None
    if item is None:
        logger.info("Creating managed tax item %r", settings.tax_item_name)
        item = models.create_item(
            conn,
            name=settings.tax_item_name,
            standard_price=0,
            category="Tax",
            managed=True,
        )
    return item


def item_price(
    transaction: dict[str, Any],
    item: dict[str, Any],
    custom_price: Any = None,
) -> float:
    """Return the unit price of *item* on *transaction*.

    A custom price only applies to used items. Employees pay wholesale cost
    times the configured multiplier when the item has a wholesale cost.
    """
    if custom_price is not None and item.get("condition") == "Used":
        return parse_price(custom_price)
    wholesale = item.get("wholesale_cost") or 0
    if transaction.get("employee") and wholesale > 0:
        return round_cents(to_decimal(wholesale) * to_decimal(settings.employee_price_multiplier))
    return round_cents(item["standard_price"])


def is_taxable(transaction: dict[str, Any]) -> bool:
    """Tax is only charged on transactions created on or after the cutoff date."""
    created = datetime.fromisoformat(transaction["date_created"]).date()
    return created >= settings.tax_cutoff_date


def calculate_tax(conn: sqlite3.Connection, transaction: dict[str, Any]) -> dict[str, Any]:
    """Replace the tax line item so it matches the current total.

    Does not persist; callers save afterwards.
    """
    if not is_taxable(transaction):
        return transaction

    tax_item = get_tax_item(conn)
    total = transaction["total_cost"]
    kept: list[dict[str, Any]] = []
    for line in transaction["items"]:
        if line["item"] == tax_item["id"]:
            total = add_cents(total, -line["price"])
        else:
            kept.append(line)

    tax = truncate_cents(to_decimal(settings.tax_rate) * to_decimal(total))
    if tax > TAX_EPSILON:
        kept.append({"item": tax_item["id"], "price": tax})
        total = add_cents(total, tax)

    transaction["items"] = kept
    transaction["total_cost"] = total
    return transaction


def add_item(
    conn: sqlite3.Connection,
    transaction: dict[str, Any],
    item: dict[str, Any],
    custom_price: Any = None,
) -> dict[str, Any]:
    """Attach one unit of *item* to *transaction* and retax it.

    The line item is saved before tax is derived from the new total.
    """
    price = item_price(transaction, item, custom_price)
    transaction["items"].append({"item": item["id"], "price": price})
    transaction["total_cost"] = add_cents(transaction["total_cost"], price)
    transaction = models.save_transaction(conn, transaction)
    calculate_tax(conn, transaction)
    return models.save_transaction(conn, transaction)


def remove_item(
    conn: sqlite3.Connection,
    transaction: dict[str, Any],
    item_id: str,
) -> dict[str, Any]:
    """Detach one unit of the item *item_id* from *transaction* and retax it.

    Raises NotFoundError if the item is not on the transaction and
    ForbiddenError if it is a managed item.
    """
    index = next(
        (i for i, line in enumerate(transaction["items"]) if line["item"] == item_id),
        None,
    )
    if index is None:
        msg = "Item not found on transaction"
        raise NotFoundError(msg)
    item = models.get_item(conn, item_id)
    if item is not None and item.get("managed"):
        msg = f"{item['name']} is managed by the system and cannot be removed"
        raise ForbiddenError(msg)

    line = transaction["items"].pop(index)
    transaction["total_cost"] = add_cents(transaction["total_cost"], -line["price"])
    transaction = models.save_transaction(conn, transaction)
    calculate_tax(conn, transaction)
    return models.save_transaction(conn, transaction)


def add_repair(
    conn: sqlite3.Connection,
    transaction: dict[str, Any],
    repair: dict[str, Any],
) -> dict[str, Any]:
    """Attach *repair* as an incomplete repair line and retax."""
    price = round_cents(repair["price"])
    transaction["repairs"].append(
        {"id": uuid.uuid4().hex, "repair": repair["id"], "price": price, "completed": False}
    )
    transaction["total_cost"] = add_cents(transaction["total_cost"], price)
    transaction = models.save_transaction(conn, transaction)
    calculate_tax(conn, transaction)
    return models.save_transaction(conn, transaction)


def remove_repair(
    conn: sqlite3.Connection,
    transaction: dict[str, Any],
    line_id: str,
) -> dict[str, Any]:
    """Detach the repair line *line_id*, refunding its snapshot price."""
    line = next((r for r in transaction["repairs"] if r["id"] == line_id), None)
    if line is None:
        msg = "Repair not found on transaction"
        raise NotFoundError(msg)
    transaction["repairs"].remove(line)
    transaction["total_cost"] = add_cents(transaction["total_cost"], -line["price"])
    transaction = models.save_transaction(conn, transaction)
    calculate_tax(conn, transaction)
    return models.save_transaction(conn, transaction)
