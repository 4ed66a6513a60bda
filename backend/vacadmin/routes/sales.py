# Overview: Flask API routes for sales orders; parses input and returns JSON responses.

# backend/vacadmin/routes/sales.py
"""
Sales API routes

Role checks that depend on the order (cancel DRAFT vs CONFIRMED) happen in
the service under the order lock; routes only refuse outright denials.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ForbiddenError, ServiceError, error_response
from ..permissions import Action
from ..services import cancellation_service
from ..services import reporting_service
from ..services import sales_service
from ..decorators import log_denial, require_auth, require_action
from ..time_utils import parse_iso_date, parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _denied(e: ForbiddenError):
    log_denial(e.details.get("action"), e.message)
    return error_response(e)


@sales_bp.post("")
@require_auth
@require_action(Action.START_SALE)
def start_sale_route():
    """
    Create a new DRAFT order.

    Optional body: order_number, customer_name, customer_phone,
    payment_method, notes, channel.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = sales_service.start_sale(
            g.current_user.id,
            order_number=data.get("order_number"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            channel=data.get("channel") or "POS",
        )
        return jsonify({"order": order.to_dict()}), 201

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to start sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_action(Action.VIEW_SALES)
def list_orders_route():
    """
    Sales history, newest first.

    Query: status, staff_user_id, order_number (substring), from, to
    (ISO datetimes), limit, offset.
    """
    try:
        orders, total = sales_service.list_orders(
            status=request.args.get("status"),
            staff_user_id=request.args.get("staff_user_id", type=int),
            order_number=request.args.get("order_number"),
            from_date=parse_iso_datetime(request.args.get("from")),
            to_date=parse_iso_datetime(request.args.get("to")),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({
            "orders": [o.to_dict(include_lines=False) for o in orders],
            "total": total,
        }), 200

    except ValueError:
        return jsonify({"error": "from/to must be ISO-8601 datetimes"}), 400
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales orders")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:order_id>")
@require_auth
@require_action(Action.VIEW_SALES)
def get_order_route(order_id: int):
    try:
        order = sales_service.get_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@sales_bp.get("/by-number/<string:order_number>")
@require_auth
@require_action(Action.VIEW_SALES)
def get_order_by_number_route(order_number: str):
    try:
        order = sales_service.get_order_by_number(order_number)
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@sales_bp.patch("/<int:order_id>")
@require_auth
@require_action(Action.EDIT_SALE)
def update_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = sales_service.update_order(
            order_id,
            user_id=g.current_user.id,
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sales order")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:order_id>/items")
@require_auth
@require_action(Action.EDIT_SALE)
def add_item_route(order_id: int):
    """
    Add a product to a DRAFT order.

    Body: product (id, SKU or barcode; product_id also accepted),
    quantity (default 1), unit_price_cents (optional override).
    """
    try:
        data = request.get_json(silent=True) or {}
        product_code = data.get("product") or data.get("product_id")
        if product_code is None:
            return jsonify({"error": "product required"}), 400

        order = sales_service.add_item(
            order_id,
            product_code,
            data.get("quantity", 1),
            data.get("unit_price_cents"),
            user_id=g.current_user.id,
        )
        return jsonify({"order": order.to_dict()}), 201

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add sales order item")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:order_id>/scan")
@require_auth
@require_action(Action.EDIT_SALE)
def scan_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        code = data.get("code")
        if not code:
            return jsonify({"error": "code required"}), 400

        order = sales_service.scan_barcode(order_id, code, user_id=g.current_user.id)
        return jsonify({"order": order.to_dict()}), 201

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to scan item")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/items/<int:item_id>")
@require_auth
@require_action(Action.EDIT_SALE)
def update_item_route(item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if "quantity" not in data and "unit_price_cents" not in data:
            return jsonify({"error": "quantity or unit_price_cents required"}), 400

        order = sales_service.update_item(
            item_id,
            user_id=g.current_user.id,
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sales order item")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/items/<int:item_id>")
@require_auth
@require_action(Action.EDIT_SALE)
def remove_item_route(item_id: int):
    try:
        order = sales_service.remove_item(item_id, user_id=g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove sales order item")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:order_id>/confirm")
@require_auth
@require_action(Action.CONFIRM_SALE)
def confirm_route(order_id: int):
    """
    DRAFT -> CONFIRMED; stock leaves the shelf.

    Optional body: payment_method, customer_name, customer_phone.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = sales_service.confirm_sale(
            order_id,
            user_id=g.current_user.id,
            payment_method=data.get("payment_method"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_route(order_id: int):
    """
    Direct cancel.

    Any role may cancel a DRAFT. A CONFIRMED order needs OWNER or MOD;
    STAFF gets 403 with details.use_action = REQUEST_CANCELLATION.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = sales_service.cancel_order(
            order_id,
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:order_id>/return")
@require_auth
@require_action(Action.RETURN_SALE)
def return_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = sales_service.return_order(
            order_id,
            user_id=g.current_user.id,
            shipping_cost_cents=data.get("shipping_cost_cents"),
            reason=data.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to return sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:order_id>/cancellation-requests")
@require_auth
@require_action(Action.REQUEST_CANCELLATION)
def request_cancellation_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        req = cancellation_service.request_cancellation(
            order_id,
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"request": req.to_dict()}), 201

    except ForbiddenError as e:
        return _denied(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request cancellation")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/reports/daily")
@require_auth
@require_action(Action.VIEW_REPORTS)
def daily_report_route():
    """?date=YYYY-MM-DD (UTC); defaults to today."""
    try:
        day = parse_iso_date(request.args.get("date"))
        return jsonify(reporting_service.daily_report(day)), 200

    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    except Exception:
        current_app.logger.exception("Failed to build daily report")
        return jsonify({"error": "Internal server error"}), 500
