# Overview: Purchase intake lifecycle; receipt is the only event that moves stock.

"""
Stock-In Service

LIFECYCLE:
- create: status PENDING, approval_status PENDING_APPROVAL (lines fixed)
- approve / reject (OWNER only): PENDING_APPROVAL -> APPROVED | REJECTED
- receive: requires APPROVED *and* PENDING; increments stock once per line
- cancel (OWNER/MOD): PENDING -> CANCELLED, never touches stock

The double receive precondition means an unapproved or rejected order can
never reach RECEIVED, and a second receive fails with InvalidState instead
of adding the goods twice.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..models import Product, StockInLine, StockInOrder
from ..permissions import Action, Role
from ..time_utils import utcnow
from . import stock_ledger
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_document_number
from .permission_service import authorize


STATUS_PENDING = "PENDING"
STATUS_RECEIVED = "RECEIVED"
STATUS_CANCELLED = "CANCELLED"

APPROVAL_PENDING = "PENDING_APPROVAL"
APPROVAL_APPROVED = "APPROVED"
APPROVAL_REJECTED = "REJECTED"

STOCK_IN_STATUSES = {STATUS_PENDING, STATUS_RECEIVED, STATUS_CANCELLED}
APPROVAL_STATUSES = {APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED}


def _validate_lines(lines) -> list[dict]:
    """
    Normalize line input to [{product_id, quantity, unit_cost_cents}].

    Raises ValidationError for structural problems and NotFoundError for
    unknown products.
    """
    if not lines:
        raise ValidationError("At least one line is required")

    seen = set()
    cleaned = []
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"Line {index} must be an object")

        product_id = raw.get("product_id")
        quantity = raw.get("quantity")
        unit_cost = raw.get("unit_cost_cents")

        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f"Line {index}: product_id must be an integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                f"Line {index}: quantity must be a positive integer",
                details={"line": index, "quantity": quantity},
            )
        if isinstance(unit_cost, bool) or not isinstance(unit_cost, int) or unit_cost < 0:
            raise ValidationError(
                f"Line {index}: unit_cost_cents must be a non-negative integer",
                details={"line": index, "unit_cost_cents": unit_cost},
            )
        if product_id in seen:
            raise ValidationError(
                f"Line {index}: product {product_id} appears more than once",
                details={"line": index, "product_id": product_id},
            )
        if db.session.get(Product, product_id) is None:
            raise NotFoundError(f"Product {product_id} not found", details={"line": index})

        seen.add(product_id)
        cleaned.append({"product_id": product_id, "quantity": quantity, "unit_cost_cents": unit_cost})

    return cleaned


def _lock_stock_in(order_id: int) -> StockInOrder:
    order = lock_for_update(db.session.query(StockInOrder).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Stock-in order {order_id} not found")
    return order


def _require_open(order: StockInOrder, verb: str) -> None:
    if order.status != STATUS_PENDING:
        raise InvalidStateError(
            f"Cannot {verb} stock-in {order.reference}: status is {order.status}",
            details={"stock_in_id": order.id, "status": order.status},
        )


def _require_pending_approval(order: StockInOrder, verb: str) -> None:
    _require_open(order, verb)
    if order.approval_status != APPROVAL_PENDING:
        raise InvalidStateError(
            f"Cannot {verb} stock-in {order.reference}: approval status is {order.approval_status}",
            details={"stock_in_id": order.id, "approval_status": order.approval_status},
        )


def _check_reference_free(reference: str, exclude_id: int | None = None) -> None:
    query = db.session.query(StockInOrder).filter_by(reference=reference)
    if exclude_id is not None:
        query = query.filter(StockInOrder.id != exclude_id)
    if query.first():
        raise ConflictError(f"Stock-in reference {reference} already exists")


def create_stock_in(
    user_id: int,
    lines,
    *,
    reference: str | None = None,
    supplier: str | None = None,
    notes: str | None = None,
) -> StockInOrder:
    cleaned = _validate_lines(lines)

    def _op():
        begin_write()
        actor = authorize(user_id, Action.CREATE_STOCK_IN)

        ref = reference.strip() if reference else None
        if ref:
            _check_reference_free(ref)
        else:
            ref = next_document_number(document_type="STOCK_IN", prefix="SI")

        order = StockInOrder(
            reference=ref,
            supplier=supplier,
            notes=notes,
            requested_by_user_id=user_id,
            status=STATUS_PENDING,
            approval_status=APPROVAL_PENDING,
        )
        for item in cleaned:
            order.lines.append(StockInLine(
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_cost_cents=item["unit_cost_cents"],
                line_cost_cents=item["quantity"] * item["unit_cost_cents"],
            ))
        order.total_qty = sum(item["quantity"] for item in cleaned)
        order.total_cost_cents = sum(line.line_cost_cents for line in order.lines)

        if actor.role == Role.OWNER and current_app.config.get("STOCK_IN_OWNER_AUTO_APPROVE"):
            order.approval_status = APPROVAL_APPROVED
            order.approved_by_user_id = user_id
            order.approved_at = utcnow()

        db.session.add(order)
        db.session.commit()

        current_app.logger.info(
            "Stock-in %s created by user %s: %d lines, %d units, %s",
            order.reference, user_id, len(order.lines), order.total_qty, order.approval_status,
        )
        return order

    return run_with_retry(_op, retry_on=(IntegrityError,))


def update_stock_in(
    order_id: int,
    *,
    user_id: int,
    reference: str | None = None,
    supplier: str | None = None,
    notes: str | None = None,
) -> StockInOrder:
    """Header metadata only; lines are immutable."""
    def _op():
        begin_write()
        order = _lock_stock_in(order_id)
        authorize(user_id, Action.UPDATE_STOCK_IN)
        _require_open(order, "update")

        if reference is not None:
            ref = reference.strip()
            if not ref:
                raise ValidationError("reference cannot be empty")
            _check_reference_free(ref, exclude_id=order.id)
            order.reference = ref
        if supplier is not None:
            order.supplier = supplier
        if notes is not None:
            order.notes = notes

        db.session.commit()
        return order

    return run_with_retry(_op)


def approve_stock_in(order_id: int, *, user_id: int) -> StockInOrder:
    def _op():
        begin_write()
        order = _lock_stock_in(order_id)
        authorize(user_id, Action.APPROVE_STOCK_IN)
        _require_pending_approval(order, "approve")

        order.approval_status = APPROVAL_APPROVED
        order.approved_by_user_id = user_id
        order.approved_at = utcnow()
        db.session.commit()

        current_app.logger.info("Stock-in %s approved by user %s", order.reference, user_id)
        return order

    return run_with_retry(_op)


def reject_stock_in(order_id: int, *, user_id: int, reason: str | None = None) -> StockInOrder:
    def _op():
        begin_write()
        order = _lock_stock_in(order_id)
        authorize(user_id, Action.APPROVE_STOCK_IN)
        _require_pending_approval(order, "reject")

        order.approval_status = APPROVAL_REJECTED
        order.rejection_reason = reason
        order.approved_by_user_id = user_id
        order.approved_at = utcnow()
        db.session.commit()

        current_app.logger.info("Stock-in %s rejected by user %s", order.reference, user_id)
        return order

    return run_with_retry(_op)


def receive_stock_in(order_id: int, *, user_id: int) -> StockInOrder:
    """
    Put approved goods on the shelf.

    Increments stock for every line and records the line cost as the
    product's latest purchase cost, all in one transaction.
    """
    def _op():
        begin_write()
        order = _lock_stock_in(order_id)
        authorize(user_id, Action.RECEIVE_STOCK_IN)
        _require_open(order, "receive")
        if order.approval_status != APPROVAL_APPROVED:
            raise InvalidStateError(
                f"Stock-in {order.reference} must be APPROVED before receiving (is {order.approval_status})",
                details={"stock_in_id": order.id, "approval_status": order.approval_status},
            )

        for line in sorted(order.lines, key=lambda l: l.product_id):
            stock_ledger.increment(
                line.product_id,
                line.quantity,
                movement_type=stock_ledger.MOVEMENT_STOCK_IN_RECEIVE,
                reference_type=stock_ledger.REFERENCE_STOCK_IN,
                reference_id=order.id,
                actor_user_id=user_id,
                note=f"Stock-in {order.reference}",
            )
            line.product.cost_price_cents = line.unit_cost_cents

        order.status = STATUS_RECEIVED
        order.received_by_user_id = user_id
        order.received_at = utcnow()
        db.session.commit()

        current_app.logger.info(
            "Stock-in %s received by user %s: %d units", order.reference, user_id, order.total_qty
        )
        return order

    return run_with_retry(_op)


def cancel_stock_in(order_id: int, *, user_id: int, reason: str | None = None) -> StockInOrder:
    def _op():
        begin_write()
        order = _lock_stock_in(order_id)
        authorize(user_id, Action.CANCEL_STOCK_IN)
        _require_open(order, "cancel")

        order.status = STATUS_CANCELLED
        order.cancelled_by_user_id = user_id
        order.cancelled_at = utcnow()
        order.cancellation_reason = reason
        db.session.commit()

        current_app.logger.info("Stock-in %s cancelled by user %s", order.reference, user_id)
        return order

    return run_with_retry(_op)


def get_stock_in(order_id: int) -> StockInOrder:
    order = db.session.get(StockInOrder, order_id)
    if not order:
        raise NotFoundError(f"Stock-in order {order_id} not found")
    return order


def list_stock_ins(
    *,
    status: str | None = None,
    approval_status: str | None = None,
    supplier: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[StockInOrder], int]:
    if status and status not in STOCK_IN_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(STOCK_IN_STATUSES))}")
    if approval_status and approval_status not in APPROVAL_STATUSES:
        raise ValidationError(
            f"Invalid approval_status. Must be one of: {', '.join(sorted(APPROVAL_STATUSES))}"
        )

    query = db.session.query(StockInOrder)
    if status:
        query = query.filter(StockInOrder.status == status)
    if approval_status:
        query = query.filter(StockInOrder.approval_status == approval_status)
    if supplier:
        query = query.filter(StockInOrder.supplier.contains(supplier))

    total = query.count()
    orders = query.order_by(StockInOrder.id.desc()).offset(offset).limit(limit).all()
    return orders, total


def list_pending_approvals() -> list[StockInOrder]:
    return (
        db.session.query(StockInOrder)
        .filter(
            StockInOrder.status == STATUS_PENDING,
            StockInOrder.approval_status == APPROVAL_PENDING,
        )
        .order_by(StockInOrder.id.asc())
        .all()
    )
