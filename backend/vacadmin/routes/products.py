# Overview: Flask API routes for product lookup and stock movement history.

from flask import Blueprint, request, jsonify, current_app

from ..errors import ServiceError, error_response
from ..permissions import Action
from ..services import products_service
from ..decorators import require_auth, require_action


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/lookup")
@require_auth
@require_action(Action.VIEW_INVENTORY)
def lookup_product_route():
    """Resolve ?code= as SKU, barcode or id; used by the scanner UI."""
    try:
        product = products_service.find_product(request.args.get("code"))
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to look up product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/low-stock")
@require_auth
@require_action(Action.VIEW_INVENTORY)
def low_stock_route():
    try:
        limit = request.args.get("limit", 100, type=int)
        products = products_service.list_low_stock(limit=limit)
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
@require_action(Action.VIEW_INVENTORY)
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@products_bp.get("/<int:product_id>/movements")
@require_auth
@require_action(Action.VIEW_INVENTORY)
def product_movements_route(product_id: int):
    try:
        limit = request.args.get("limit", 100, type=int)
        offset = request.args.get("offset", 0, type=int)
        movements, total = products_service.list_movements(product_id, limit=limit, offset=offset)
        return jsonify({
            "movements": [m.to_dict() for m in movements],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
