"""CLI entry point for the bike shop point-of-sale backend."""

from __future__ import annotations

import logging

import click

from config import settings
from database import init_database


@click.group()
def cli() -> None:
    """Bike shop point-of-sale and repair management."""


@cli.command()
def init_db() -> None:
    """Initialise the SQLite database (creates collections if missing)."""
    init_database(settings.database_path)
    print(f"Database initialised at {settings.database_path}")


@cli.command()
def web() -> None:
    """Start the Flask API server."""
    from api.app import create_app

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app = create_app()
    app.run(
        host=settings.flask_host,
        port=settings.flask_port,
        debug=settings.flask_debug,
    )


@cli.command()
@click.argument("username")
@click.option("--admin", is_flag=True, help="Grant admin rights.")
def create_user(username: str, admin: bool) -> None:
    """Add a user to the user directory."""
    from database.connection import get_db
    import database.models as models

    conn = get_db(settings.database_path)
    try:
        user = models.create_user(conn, username=username, admin=admin)
        if user is None:
            print(f"Error: user '{username}' already exists")
            return
        print(f"Created user {user['username']} ({user['id']})")
    finally:
        conn.close()


@cli.command()
def seed() -> None:
    """Create the managed tax item if it does not exist yet."""
    from database.connection import get_db
    from services.pricing import get_tax_item

    init_database(settings.database_path)
    conn = get_db(settings.database_path)
    try:
        item = get_tax_item(conn)
        print(f"Tax item: {item['name']} ({item['id']}), rate {settings.tax_rate:.4f}")
    finally:
        conn.close()


@cli.command()
def low_stock() -> None:
    """List items at or below their warning stock level."""
    from database.connection import get_db
    from services.inventory import list_low_stock_items

    conn = get_db(settings.database_path)
    try:
        items = list_low_stock_items(conn)
        if not items:
            print("No items below their warning level.")
            return

        print(f"{'Item':<40} {'Stock':>6} {'Warn':>6} {'Wholesale':>10}")
        print("-" * 66)
        for item in items:
            print(
                f"{item['name']:<40} "
                f"{item['stock']:>6} "
                f"{item['warning_stock']:>6} "
                f"${item.get('wholesale_cost') or 0:>9.2f}"
            )
        print(f"\nTotal: {len(items)} item(s)")
    finally:
        conn.close()


if __name__ == "__main__":
    cli()
