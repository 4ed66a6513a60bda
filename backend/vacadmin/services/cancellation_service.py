# Overview: Approval workflow for cancelling confirmed sales as a low-privilege actor.

"""
Cancellation Approval Service

WHY: STAFF may not reverse a confirmed sale on their own (money and stock
move back), but they are often the ones at the counter when the customer
changes their mind. They file a request; an OWNER or MOD resolves it.

LIFECYCLE:
- PENDING_APPROVAL -> APPROVED: the order is cancelled in the same
  transaction, stock restored exactly once.
- PENDING_APPROVAL -> REJECTED: the order is untouched.

RULES:
- Only CONFIRMED orders accept requests.
- At most one pending request per order (ConflictError otherwise).
- A direct cancel or return of the order rejects its pending requests in
  the same transaction, so the approval queue never holds a request for a
  terminal order.
- Approval re-reads the order under lock and fails with InvalidState if
  it is no longer CONFIRMED.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..models import CancellationRequest, SalesOrder
from ..permissions import Action
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .permission_service import authorize
from .sales_service import (
    REQUEST_APPROVED,
    REQUEST_PENDING,
    REQUEST_REJECTED,
    STATUS_CONFIRMED,
    cancel_locked,
)


APPROVAL_PENDING = REQUEST_PENDING
APPROVAL_APPROVED = REQUEST_APPROVED
APPROVAL_REJECTED = REQUEST_REJECTED

APPROVAL_STATUSES = {APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED}


def _lock_request(request_id: int) -> CancellationRequest:
    req = lock_for_update(
        db.session.query(CancellationRequest).filter_by(id=request_id)
    ).first()
    if not req:
        raise NotFoundError(f"Cancellation request {request_id} not found")
    return req


def _require_pending(req: CancellationRequest) -> None:
    if req.approval_status != APPROVAL_PENDING:
        raise InvalidStateError(
            f"Cancellation request {req.id} is already {req.approval_status}",
            details={"request_id": req.id, "approval_status": req.approval_status},
        )


def request_cancellation(order_id: int, *, user_id: int, reason: str) -> CancellationRequest:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Cancellation reason is required")

    def _op():
        begin_write()
        order = lock_for_update(db.session.query(SalesOrder).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Sales order {order_id} not found")

        authorize(user_id, Action.REQUEST_CANCELLATION, {"status": order.status})

        if order.status != STATUS_CONFIRMED:
            raise InvalidStateError(
                f"Only CONFIRMED orders accept cancellation requests; order {order.order_number} is {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

        pending = (
            db.session.query(CancellationRequest)
            .filter_by(order_id=order.id, approval_status=APPROVAL_PENDING)
            .first()
        )
        if pending:
            raise ConflictError(
                f"Order {order.order_number} already has a pending cancellation request",
                details={"request_id": pending.id},
            )

        req = CancellationRequest(
            order_id=order.id,
            requested_by_user_id=user_id,
            reason=reason,
            approval_status=APPROVAL_PENDING,
        )
        db.session.add(req)
        db.session.commit()

        current_app.logger.info(
            "Cancellation requested for sale %s by user %s (request %s)",
            order.order_number, user_id, req.id,
        )
        return req

    return run_with_retry(_op)


def approve_cancellation(request_id: int, *, user_id: int) -> CancellationRequest:
    """Approve a pending request and cancel its order atomically."""
    def _op():
        begin_write()
        req = _lock_request(request_id)
        authorize(user_id, Action.RESOLVE_CANCELLATION)
        _require_pending(req)

        order = lock_for_update(db.session.query(SalesOrder).filter_by(id=req.order_id)).first()
        if order.status != STATUS_CONFIRMED:
            raise InvalidStateError(
                f"Order {order.order_number} is {order.status}; only CONFIRMED orders can be cancelled by approval",
                details={"order_id": order.id, "status": order.status, "request_id": req.id},
            )

        cancel_locked(order, user_id, req.reason, resolving_request_id=req.id)

        req.approval_status = APPROVAL_APPROVED
        req.resolved_by_user_id = user_id
        req.resolved_at = utcnow()
        db.session.commit()

        current_app.logger.info(
            "Cancellation request %s approved by user %s", req.id, user_id
        )
        return req

    return run_with_retry(_op)


def reject_cancellation(request_id: int, *, user_id: int, reason: str | None = None) -> CancellationRequest:
    def _op():
        begin_write()
        req = _lock_request(request_id)
        authorize(user_id, Action.RESOLVE_CANCELLATION)
        _require_pending(req)

        req.approval_status = APPROVAL_REJECTED
        req.rejection_reason = reason
        req.resolved_by_user_id = user_id
        req.resolved_at = utcnow()
        db.session.commit()

        current_app.logger.info(
            "Cancellation request %s rejected by user %s", req.id, user_id
        )
        return req

    return run_with_retry(_op)


def get_request(request_id: int) -> CancellationRequest:
    req = db.session.get(CancellationRequest, request_id)
    if not req:
        raise NotFoundError(f"Cancellation request {request_id} not found")
    return req


def list_requests(
    *,
    approval_status: str | None = None,
    order_id: int | None = None,
    limit: int = 100,
) -> list[CancellationRequest]:
    if approval_status and approval_status not in APPROVAL_STATUSES:
        raise ValidationError(
            f"Invalid approval_status. Must be one of: {', '.join(sorted(APPROVAL_STATUSES))}"
        )

    query = db.session.query(CancellationRequest)
    if approval_status:
        query = query.filter(CancellationRequest.approval_status == approval_status)
    if order_id:
        query = query.filter(CancellationRequest.order_id == order_id)
    return query.order_by(CancellationRequest.id.desc()).limit(limit).all()


def list_pending_requests(limit: int = 100) -> list[CancellationRequest]:
    return list_requests(approval_status=APPROVAL_PENDING, limit=limit)
