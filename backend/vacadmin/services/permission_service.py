# Overview: Actor/role lookup, gate enforcement, and security event logging.

"""
Permission checking for the order core.

WHY: The state machines never inspect roles themselves. They hand the
actor, the action and the order context to authorize(), which resolves the
actor's role and asks the pure gate for a verdict.

DESIGN PRINCIPLES:
- Fail closed: unknown users, inactive users and unknown roles are denied.
- REQUIRE_APPROVAL is not permission to act; it raises ForbiddenError whose
  details point at the request path the actor should use instead.
- Log denials only, in their own transaction, after the failed operation
  has rolled back.
"""

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError
from ..models import SecurityEvent, User
from ..permissions import APPROVAL_PATHS, Verdict, can_perform
from ..time_utils import utcnow


def get_actor(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    if not user.is_active:
        raise ForbiddenError("User account is deactivated", details={"user_id": user_id})
    return user


def get_actor_role(user_id: int) -> str:
    return get_actor(user_id).role


def authorize(user_id: int, action: str, order_context: dict | None = None) -> User:
    """
    Raise ForbiddenError unless the actor may perform action directly.

    Returns the actor so callers can use it for attribution.
    """
    actor = get_actor(user_id)
    verdict = can_perform(actor.role, action, order_context)

    if verdict == Verdict.ALLOW:
        return actor

    details = {"action": action, "role": actor.role, "verdict": verdict}
    if verdict == Verdict.REQUIRE_APPROVAL:
        details["use_action"] = APPROVAL_PATHS.get(action)
        raise ForbiddenError(
            f"Role {actor.role} cannot perform {action} directly; submit a request for approval",
            details=details,
        )

    raise ForbiddenError(f"Role {actor.role} is not permitted to perform {action}", details=details)


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - LOGOUT
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event
