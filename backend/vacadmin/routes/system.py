# backend/vacadmin/routes/system.py
"""
System health endpoint.

Reports database reachability and a few counts useful when debugging a
deployment. No authentication; exposes nothing sensitive.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import Product, SalesOrder, SessionToken, StockInOrder
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        draft_count = db.session.query(SalesOrder).filter_by(status="DRAFT").count()
        pending_stock_in = db.session.query(StockInOrder).filter_by(
            status="PENDING", approval_status="PENDING_APPROVAL"
        ).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "draft_orders": draft_count,
                "stock_in_pending_approval": pending_stock_in,
                "active_sessions": active_sessions,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status
