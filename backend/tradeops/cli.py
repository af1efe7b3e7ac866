# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tradeops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Database:
# - python -m flask db-admin init-db
#   Create any missing tables (prefer `flask db upgrade` for real databases).
# - python -m flask db-admin reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock:
# - python -m flask stock reconcile [--product-id 7]
#   Compare current_stock with opening_stock + ledger total; exits 1 on drift.
# - python -m flask stock low
#   List active products at or below their reorder level.
#
# Orders:
# - python -m flask orders set-status ORD-2026-001 confirmed --actor ops
#   Change an order's status through the same coordinator the API uses.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import ledger_service, order_service, order_status_service, products_service
from .services.concurrency import run_with_retry
from .services.errors import ProductNotFound


@click.group('db-admin')
def db_admin_group():
    """Database bootstrap and repair commands."""


@db_admin_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@db_admin_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('reconcile')
@click.option('--product-id', type=int, help='Only check this product')
@with_appcontext
def reconcile(product_id):
    """Check every product's counter against its ledger."""
    if product_id is not None:
        try:
            rows = [ledger_service.reconcile_product_stock(product_id)]
        except ProductNotFound as e:
            raise click.ClickException(e.message)
    else:
        rows = ledger_service.reconcile_all()

    drifted = [r for r in rows if not r["in_sync"]]
    for r in rows:
        marker = "OK   " if r["in_sync"] else "DRIFT"
        click.echo(
            f"{marker} {r['sku']:<20} current={r['current_stock']:<8} "
            f"expected={r['expected_stock']:<8} drift={r['drift']}"
        )

    click.echo(f"\n{len(rows)} product(s) checked, {len(drifted)} with drift.")
    if drifted:
        raise SystemExit(1)


@stock_group.command('low')
@with_appcontext
def low_stock():
    """List products at or below their reorder level."""
    rows = products_service.low_stock_products()
    if not rows:
        click.echo("No low-stock products.")
        return
    for r in rows:
        click.echo(
            f"{r['sku']:<20} stock={r['current_stock']:<6} reorder={r['reorder_level']:<6} "
            f"need={r['stock_needed']}"
        )


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('set-status')
@click.argument('order_number')
@click.argument('status')
@click.option('--actor', required=True, help='Who is making the change (recorded on ledger entries)')
@with_appcontext
def set_status(order_number, status, actor):
    """Move ORDER_NUMBER to STATUS, applying any stock effect."""
    order = order_service.get_order_by_number(order_number)
    if order is None:
        raise click.ClickException(f"Order {order_number} not found")
    order_id = order.id

    result = run_with_retry(
        lambda: order_status_service.change_order_status(order_id, status, actor),
        attempts=current_app.config.get("STATUS_CHANGE_RETRY_ATTEMPTS", 3),
        on_retry=lambda attempt, err: click.echo(f"WARN conflict, retrying ({attempt})..."),
    )
    if not result.ok:
        raise click.ClickException(f"{result.error.code}: {result.error.message}")

    click.echo(f"PASS {order_number} is now {result.value.status}.")
    for m in result.movements:
        click.echo(f"  product={m.product_id} qty={m.quantity:+d} stock {m.stock_before} -> {m.stock_after}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(db_admin_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(orders_group)
