"""SQLite connection helpers."""

from __future__ import annotations

import sqlite3
from pathlib import Path

_SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def get_db(db_path: str) -> sqlite3.Connection:
    """Return a configured SQLite connection.

    Enables WAL mode and the sqlite3.Row factory.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create every collection table and index on *conn*."""
    conn.executescript(_SCHEMA_PATH.read_text())
    conn.commit()


def init_database(db_path: str) -> None:
    """Create all collection tables by executing schema.sql.

    Safe to call repeatedly; uses CREATE TABLE IF NOT EXISTS.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_db(db_path)
    try:
        apply_schema(conn)
    finally:
        conn.close()
