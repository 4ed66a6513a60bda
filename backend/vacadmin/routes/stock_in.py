# Overview: Flask API routes for stock-in (purchase intake) orders.

# backend/vacadmin/routes/stock_in.py
"""
Stock-In API routes

Lifecycle: create -> approve/reject (OWNER) -> receive.
Receiving is the only call that changes on-hand stock.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ForbiddenError, ServiceError, error_response
from ..permissions import Action
from ..services import reporting_service
from ..services import stock_in_service
from ..decorators import log_denial, require_auth, require_action


stock_in_bp = Blueprint("stock_in", __name__, url_prefix="/api/stock-in")


def _denied(e: ForbiddenError):
    log_denial(e.details.get("action"), e.message)
    return error_response(e)


@stock_in_bp.post("")
@require_auth
@require_action(Action.CREATE_STOCK_IN)
def create_stock_in_route():
    """
    Body:
    {
        "reference": "PO-778",       // optional, generated as SI-YYYYMMDD-NNNN
        "supplier": "Acme Filters",  // optional
        "notes": "...",              // optional
        "lines": [{"product_id": 1, "quantity": 10, "unit_cost_cents": 450}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order = stock_in_service.create_stock_in(
            g.current_user.id,
            data.get("lines"),
            reference=data.get("reference"),
            supplier=data.get("supplier"),
            notes=data.get("notes"),
        )
        return jsonify({"stock_in": order.to_dict()}), 201

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create stock-in")
        return jsonify({"error": "Internal server error"}), 500


@stock_in_bp.get("")
@require_auth
@require_action(Action.VIEW_STOCK_IN)
def list_stock_ins_route():
    try:
        orders, total = stock_in_service.list_stock_ins(
            status=request.args.get("status"),
            approval_status=request.args.get("approval_status"),
            supplier=request.args.get("supplier"),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({
            "stock_ins": [o.to_dict(include_lines=False) for o in orders],
            "total": total,
        }), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock-ins")
        return jsonify({"error": "Internal server error"}), 500


@stock_in_bp.get("/pending-approvals")
@require_auth
@require_action(Action.VIEW_STOCK_IN)
def pending_approvals_route():
    orders = stock_in_service.list_pending_approvals()
    return jsonify({"stock_ins": [o.to_dict() for o in orders]}), 200


@stock_in_bp.get("/summary")
@require_auth
@require_action(Action.VIEW_REPORTS)
def summary_route():
    try:
        days = request.args.get("days", 30, type=int)
        return jsonify(reporting_service.stock_in_summary(days)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build stock-in summary")
        return jsonify({"error": "Internal server error"}), 500


@stock_in_bp.get("/<int:order_id>")
@require_auth
@require_action(Action.VIEW_STOCK_IN)
def get_stock_in_route(order_id: int):
    try:
        order = stock_in_service.get_stock_in(order_id)
        return jsonify({"stock_in": order.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@stock_in_bp.patch("/<int:order_id>")
@require_auth
@require_action(Action.UPDATE_STOCK_IN)
def update_stock_in_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = stock_in_service.update_stock_in(
            order_id,
            user_id=g.current_user.id,
            reference=data.get("reference"),
            supplier=data.get("supplier"),
            notes=data.get("notes"),
        )
        return jsonify({"stock_in": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update stock-in")
        return jsonify({"error": "Internal server error"}), 500


@stock_in_bp.post("/<int:order_id>/approve")
@require_auth
@require_action(Action.APPROVE_STOCK_IN)
def approve_stock_in_route(order_id: int):
    try:
        order = stock_in_service.approve_stock_in(order_id, user_id=g.current_user.id)
        return jsonify({"stock_in": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve stock-in")
        return jsonify({"error": "Internal server error"}), 500


@stock_in_bp.post("/<int:order_id>/reject")
@require_auth
@require_action(Action.APPROVE_STOCK_IN)
def reject_stock_in_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = stock_in_service.reject_stock_in(
            order_id,
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"stock_in": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject stock-in")
        return jsonify({"error": "Internal server error"}), 500


@stock_in_bp.post("/<int:order_id>/receive")
@require_auth
@require_action(Action.RECEIVE_STOCK_IN)
def receive_stock_in_route(order_id: int):
    try:
        order = stock_in_service.receive_stock_in(order_id, user_id=g.current_user.id)
        return jsonify({"stock_in": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive stock-in")
        return jsonify({"error": "Internal server error"}), 500


@stock_in_bp.post("/<int:order_id>/cancel")
@require_auth
@require_action(Action.CANCEL_STOCK_IN)
def cancel_stock_in_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = stock_in_service.cancel_stock_in(
            order_id,
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"stock_in": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel stock-in")
        return jsonify({"error": "Internal server error"}), 500
