# Overview: Service-layer operations for reporting; read-only aggregates over orders and stock.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func

from tradeops.extensions import db
from tradeops.models import Order, OrderItem, Product
from tradeops.models.orders import ORDER_STATUS_CANCELLED
from tradeops.time_utils import parse_iso_datetime, to_utc_z


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 dates")
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def _filter_orders(query, start_dt, end_dt):
    query = query.filter(Order.status != ORDER_STATUS_CANCELLED)
    if start_dt:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt:
        query = query.filter(Order.created_at <= end_dt)
    return query


def revenue_summary(start: str | None = None, end: str | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)

    row = _filter_orders(
        db.session.query(
            func.count(Order.id).label("order_count"),
            func.coalesce(func.sum(Order.total_cents), 0).label("revenue_cents"),
            func.coalesce(func.sum(Order.paid_amount_cents), 0).label("collected_cents"),
        ),
        start_dt,
        end_dt,
    ).one()

    order_count = int(row.order_count or 0)
    revenue = int(row.revenue_cents or 0)
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "order_count": order_count,
        "revenue_cents": revenue,
        "collected_cents": int(row.collected_cents or 0),
        "outstanding_cents": revenue - int(row.collected_cents or 0),
        "average_order_value_cents": (revenue + order_count // 2) // order_count if order_count else 0,
    }


def profit_summary(start: str | None = None, end: str | None = None) -> dict:
    """
    Gross profit on order lines.

    COGS uses the product's current weighted-average landed cost; products
    without a cost count as zero.
    """
    start_dt, end_dt = _parse_range(start, end)

    row = _filter_orders(
        db.session.query(
            func.coalesce(func.sum(OrderItem.total_price_cents), 0).label("revenue_cents"),
            func.coalesce(
                func.sum(OrderItem.quantity * func.coalesce(Product.landed_cost_cents, 0)), 0
            ).label("cogs_cents"),
            func.coalesce(
                func.sum(case((Product.landed_cost_cents.is_(None), OrderItem.quantity), else_=0)), 0
            ).label("uncosted_units"),
        )
        .select_from(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id),
        start_dt,
        end_dt,
    ).one()

    revenue = int(row.revenue_cents or 0)
    cogs = int(row.cogs_cents or 0)
    profit = revenue - cogs
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "revenue_cents": revenue,
        "cogs_cents": cogs,
        "gross_profit_cents": profit,
        "margin_bps": (profit * 10_000) // revenue if revenue else 0,
        "uncosted_units": int(row.uncosted_units or 0),
    }


def stock_value_summary() -> dict:
    row = (
        db.session.query(
            func.count(Product.id).label("product_count"),
            func.coalesce(func.sum(Product.current_stock), 0).label("units"),
            func.coalesce(
                func.sum(Product.current_stock * func.coalesce(Product.landed_cost_cents, 0)), 0
            ).label("value_cents"),
            func.coalesce(
                func.sum(case((Product.current_stock <= Product.reorder_level, 1), else_=0)), 0
            ).label("low_stock"),
            func.coalesce(func.sum(case((Product.current_stock == 0, 1), else_=0)), 0).label("out_of_stock"),
        )
        .filter(Product.is_active.is_(True))
        .one()
    )
    return {
        "product_count": int(row.product_count or 0),
        "units_on_hand": int(row.units or 0),
        "stock_value_cents": int(row.value_cents or 0),
        "low_stock_count": int(row.low_stock or 0),
        "out_of_stock_count": int(row.out_of_stock or 0),
    }
