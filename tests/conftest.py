"""Shared test fixtures."""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from datetime import date
from typing import Any

import pytest

from database.connection import apply_schema
from database.models import (
    create_customer,
    create_item,
    create_repair,
    create_transaction,
    create_user,
)


class _NoCloseConnection:
    """Wrapper that ignores .close() on shared test connection."""

    def __init__(self, conn):
        object.__setattr__(self, "_conn", conn)

    def close(self):
        pass

    def __getattr__(self, name):
        return getattr(self._conn, name)

    def __setattr__(self, name, value):
        setattr(self._conn, name, value)


@pytest.fixture
def db() -> Generator[sqlite3.Connection, None, None]:
    """In-memory SQLite database with every collection created."""
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture(autouse=True)
def _pricing_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin pricing config and keep email in preview mode regardless of the env."""
    monkeypatch.setattr("config.settings.tax_rate", 0.0825)
    monkeypatch.setattr("config.settings.tax_cutoff_date", date(2019, 9, 1))
    monkeypatch.setattr("config.settings.tax_item_name", "Tax")
    monkeypatch.setattr("config.settings.employee_price_multiplier", 1.25)
    monkeypatch.setattr("config.settings.email_enabled", False)


@pytest.fixture
def no_tax(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("config.settings.tax_rate", 0.0)


@pytest.fixture
def sent_emails(monkeypatch: pytest.MonkeyPatch) -> list[tuple]:
    """Capture background emails instead of starting threads."""
    sent: list[tuple] = []
    monkeypatch.setattr(
        "services.transaction_service.send_email_async",
        lambda *args: sent.append(args),
    )
    return sent


@pytest.fixture
def client(db, monkeypatch):
    """Flask test client sharing the in-memory DB."""
    from api.app import create_app

    wrapper = _NoCloseConnection(db)
    monkeypatch.setattr("api.routes.get_db", lambda _path: wrapper)
    app = create_app()
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def sample_user(db: sqlite3.Connection) -> dict[str, Any]:
    user = create_user(db, username="mechanic")
    assert user is not None
    return user


@pytest.fixture
def sample_customer(db: sqlite3.Connection) -> dict[str, Any]:
    return create_customer(db, first_name="Jane", last_name="Rider", email="jane@example.com")


@pytest.fixture
def sample_item(db: sqlite3.Connection) -> dict[str, Any]:
    """A new inner tube: $10.00 retail, $4.00 wholesale, 5 in stock."""
    return create_item(
        db,
        name="Inner Tube 700x25",
        standard_price=10.00,
        wholesale_cost=4.00,
        stock=5,
        category="Parts",
        warning_stock=2,
    )


@pytest.fixture
def used_item(db: sqlite3.Connection) -> dict[str, Any]:
    return create_item(
        db,
        name="Used Wheelset",
        standard_price=80.00,
        wholesale_cost=0,
        stock=1,
        condition="Used",
    )


@pytest.fixture
def sample_repair(db: sqlite3.Connection) -> dict[str, Any]:
    return create_repair(db, name="Tune-Up", price=50.00, description="Standard tune-up")


@pytest.fixture
def sample_transaction(
    db: sqlite3.Connection,
    sample_customer: dict[str, Any],
) -> dict[str, Any]:
    """An open, empty transaction created after the tax cutoff."""
    return create_transaction(
        db,
        customer_id=sample_customer["id"],
        transaction_type="inpatient",
        date_created="2024-03-01 10:00:00",
    )
