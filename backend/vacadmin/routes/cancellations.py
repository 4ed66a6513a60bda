# Overview: Flask API routes for resolving cancellation requests.

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ForbiddenError, ServiceError, error_response
from ..permissions import Action
from ..services import cancellation_service
from ..decorators import log_denial, require_auth, require_action


cancellations_bp = Blueprint("cancellations", __name__, url_prefix="/api/cancellation-requests")


@cancellations_bp.get("")
@require_auth
@require_action(Action.VIEW_SALES)
def list_requests_route():
    """?status=PENDING_APPROVAL|APPROVED|REJECTED&order_id=&limit="""
    try:
        requests_ = cancellation_service.list_requests(
            approval_status=request.args.get("status"),
            order_id=request.args.get("order_id", type=int),
            limit=request.args.get("limit", 100, type=int),
        )
        return jsonify({"requests": [r.to_dict() for r in requests_]}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list cancellation requests")
        return jsonify({"error": "Internal server error"}), 500


@cancellations_bp.get("/<int:request_id>")
@require_auth
@require_action(Action.VIEW_SALES)
def get_request_route(request_id: int):
    try:
        req = cancellation_service.get_request(request_id)
        return jsonify({"request": req.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@cancellations_bp.post("/<int:request_id>/approve")
@require_auth
@require_action(Action.RESOLVE_CANCELLATION)
def approve_request_route(request_id: int):
    """Approve and cancel the order; stock is restored in the same transaction."""
    try:
        req = cancellation_service.approve_cancellation(request_id, user_id=g.current_user.id)
        return jsonify({"request": req.to_dict(), "order": req.order.to_dict()}), 200

    except ForbiddenError as e:
        log_denial(e.details.get("action"), e.message)
        return error_response(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve cancellation request")
        return jsonify({"error": "Internal server error"}), 500


@cancellations_bp.post("/<int:request_id>/reject")
@require_auth
@require_action(Action.RESOLVE_CANCELLATION)
def reject_request_route(request_id: int):
    try:
        data = request.get_json(silent=True) or {}
        req = cancellation_service.reject_cancellation(
            request_id,
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"request": req.to_dict()}), 200

    except ForbiddenError as e:
        log_denial(e.details.get("action"), e.message)
        return error_response(e)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject cancellation request")
        return jsonify({"error": "Internal server error"}), 500
