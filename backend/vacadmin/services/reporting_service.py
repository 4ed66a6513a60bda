# Overview: Read-only aggregates over sales and stock-in documents.

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import SalesOrder, SalesOrderLine, StockInOrder
from ..time_utils import day_bounds, to_utc_z, utcnow
from .sales_service import STATUS_CONFIRMED
from .stock_in_service import STATUS_RECEIVED


def daily_report(day: date | None = None) -> dict:
    """
    Totals for orders confirmed on one UTC day that are still CONFIRMED.

    Computed on demand, so a later cancel or return drops the order out of
    the figures without any bookkeeping.
    """
    day = day or utcnow().date()
    start, end = day_bounds(day)

    base = db.session.query(SalesOrder).filter(
        SalesOrder.status == STATUS_CONFIRMED,
        SalesOrder.confirmed_at >= start,
        SalesOrder.confirmed_at < end,
    )

    totals = base.with_entities(
        func.count(SalesOrder.id).label("order_count"),
        func.coalesce(func.sum(SalesOrder.total_price_cents), 0).label("revenue_cents"),
        func.coalesce(func.sum(SalesOrder.total_cost_cents), 0).label("cost_cents"),
        func.coalesce(func.sum(SalesOrder.profit_cents), 0).label("profit_cents"),
    ).one()

    items_sold = (
        db.session.query(func.coalesce(func.sum(SalesOrderLine.quantity), 0))
        .join(SalesOrder, SalesOrderLine.order_id == SalesOrder.id)
        .filter(
            SalesOrder.status == STATUS_CONFIRMED,
            SalesOrder.confirmed_at >= start,
            SalesOrder.confirmed_at < end,
        )
        .scalar()
    )

    by_payment = (
        base.with_entities(
            SalesOrder.payment_method,
            func.count(SalesOrder.id),
            func.coalesce(func.sum(SalesOrder.total_price_cents), 0),
        )
        .group_by(SalesOrder.payment_method)
        .order_by(SalesOrder.payment_method)
        .all()
    )

    return {
        "date": day.isoformat(),
        "order_count": int(totals.order_count or 0),
        "revenue_cents": int(totals.revenue_cents or 0),
        "cost_cents": int(totals.cost_cents or 0),
        "profit_cents": int(totals.profit_cents or 0),
        "items_sold": int(items_sold or 0),
        "by_payment_method": [
            {
                "payment_method": method,
                "order_count": int(count or 0),
                "revenue_cents": int(revenue or 0),
            }
            for method, count, revenue in by_payment
        ],
    }


def stock_in_summary(days: int = 30) -> dict:
    """Received stock-ins over the last N days, grouped by supplier."""
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValidationError("days must be a positive integer")

    since = utcnow() - timedelta(days=days)
    rows = (
        db.session.query(
            StockInOrder.supplier,
            func.count(StockInOrder.id).label("order_count"),
            func.coalesce(func.sum(StockInOrder.total_qty), 0).label("total_qty"),
            func.coalesce(func.sum(StockInOrder.total_cost_cents), 0).label("total_cost_cents"),
        )
        .filter(
            StockInOrder.status == STATUS_RECEIVED,
            StockInOrder.received_at >= since,
        )
        .group_by(StockInOrder.supplier)
        .order_by(func.sum(StockInOrder.total_cost_cents).desc())
        .all()
    )

    suppliers = [
        {
            "supplier": row.supplier,
            "order_count": int(row.order_count or 0),
            "total_qty": int(row.total_qty or 0),
            "total_cost_cents": int(row.total_cost_cents or 0),
        }
        for row in rows
    ]
    return {
        "days": days,
        "since": to_utc_z(since),
        "order_count": sum(s["order_count"] for s in suppliers),
        "total_cost_cents": sum(s["total_cost_cents"] for s in suppliers),
        "suppliers": suppliers,
    }
