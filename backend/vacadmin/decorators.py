# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import Verdict, can_perform
from .services import session_service, permission_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def log_denial(action: str | None, reason: str) -> None:
    """Record a refused request against the current user."""
    user = getattr(g, "current_user", None)
    permission_service.log_security_event(
        user_id=user.id if user else None,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=request.path,
        action=action or request.method,
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user to the authenticated User.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or idle token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_action(action: str):
    """
    Coarse route-level gate for actions that need no order context.

    Only an outright DENY is refused here. Context-dependent verdicts
    (cancel a DRAFT vs a CONFIRMED order) are decided by the service
    inside its transaction, where the order status is current.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if can_perform(user.role, action) == Verdict.DENY:
                log_denial(action, f"Role {user.role} lacks {action}")
                return jsonify({
                    "error": "Permission denied",
                    "code": "FORBIDDEN",
                    "details": {"action": action, "role": user.role},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
