"""
Sales Order Service - cart-to-sale lifecycle

LIFECYCLE:
1. DRAFT: cart being built; lines may be added, updated, removed
2. CONFIRMED: stock decremented for every line, exactly once
3. CANCELED: from DRAFT (no stock effect) or CONFIRMED (stock restored)
4. RETURNED: from CONFIRMED only, stock restored

CONCURRENCY:
- Every mutating call is one transaction: begin_write() + a locked read of
  the order row, so two transitions on the same order serialize and the
  loser sees the post-transition status and fails with InvalidState.
- Stock availability at add/update time is advisory. The conditional
  decrement at confirm time is the only binding check.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    ConflictError,
    EmptyOrderError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..models import CancellationRequest, SalesOrder, SalesOrderLine
from ..permissions import Action
from ..time_utils import utcnow
from . import stock_ledger
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_document_number
from .permission_service import authorize
from .products_service import find_product


STATUS_DRAFT = "DRAFT"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_CANCELED = "CANCELED"
STATUS_RETURNED = "RETURNED"

SALE_STATUSES = {STATUS_DRAFT, STATUS_CONFIRMED, STATUS_CANCELED, STATUS_RETURNED}
TERMINAL_STATUSES = {STATUS_CANCELED, STATUS_RETURNED}

# Cancellation request approval states
REQUEST_PENDING = "PENDING_APPROVAL"
REQUEST_APPROVED = "APPROVED"
REQUEST_REJECTED = "REJECTED"


# =============================================================================
# HELPERS
# =============================================================================

def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", details={field: value})
    return value


def _non_negative_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer (cents)", details={field: value})
    return value


def _lock_order(order_id: int) -> SalesOrder:
    order = lock_for_update(db.session.query(SalesOrder).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Sales order {order_id} not found")
    return order


def _lock_line(item_id: int) -> tuple[SalesOrderLine, SalesOrder]:
    """
    Lock the line's order, then resolve the line through it.

    The first read only finds the owning order. The line is looked up again
    under the order lock, since a concurrent remove_item may have deleted it.
    """
    order_id = db.session.query(SalesOrderLine.order_id).filter(SalesOrderLine.id == item_id).scalar()
    if order_id is None:
        raise NotFoundError(f"Sales order line {item_id} not found")
    order = _lock_order(order_id)
    line = next((l for l in order.lines if l.id == item_id), None)
    if line is None:
        raise NotFoundError(f"Sales order line {item_id} not found")
    return line, order


def _require_draft(order: SalesOrder, verb: str) -> None:
    if order.status != STATUS_DRAFT:
        raise InvalidStateError(
            f"Cannot {verb} a {order.status} order; only DRAFT orders can be edited",
            details={"order_id": order.id, "status": order.status},
        )


def _check_availability(product_id: int, wanted: int) -> None:
    """Advisory shelf check; the binding check happens at confirm."""
    on_hand = stock_ledger.get_on_hand(product_id)
    if on_hand < wanted:
        raise InsufficientStockError(
            f"Insufficient stock. Available: {on_hand}, Requested: {wanted}",
            details={"product_id": product_id, "requested_quantity": wanted, "on_hand": on_hand},
        )


def recompute_totals(order: SalesOrder) -> None:
    """Totals are always the sum of the current lines."""
    order.total_cost_cents = sum(line.unit_cost_cents * line.quantity for line in order.lines)
    order.total_price_cents = sum(line.subtotal_cents for line in order.lines)
    order.profit_cents = order.total_price_cents - order.total_cost_cents


def _restore_stock(order: SalesOrder, movement_type: str, user_id: int, note: str) -> None:
    for line in sorted(order.lines, key=lambda l: l.product_id):
        stock_ledger.increment(
            line.product_id,
            line.quantity,
            movement_type=movement_type,
            reference_type=stock_ledger.REFERENCE_SALES_ORDER,
            reference_id=order.id,
            actor_user_id=user_id,
            note=note,
        )


# =============================================================================
# DRAFT LIFECYCLE
# =============================================================================

def start_sale(
    user_id: int,
    *,
    order_number: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    payment_method: str | None = None,
    notes: str | None = None,
    channel: str = "POS",
) -> SalesOrder:
    """Create an empty DRAFT order. No stock effect."""
    def _op():
        begin_write()
        authorize(user_id, Action.START_SALE)

        number = order_number.strip() if order_number else None
        if number:
            existing = db.session.query(SalesOrder).filter_by(order_number=number).first()
            if existing:
                raise ConflictError(
                    f"Order number {number} already exists with status {existing.status}",
                    details={"order_id": existing.id, "status": existing.status},
                )
        else:
            number = next_document_number(document_type="SALE", prefix="SO")

        order = SalesOrder(
            order_number=number,
            staff_user_id=user_id,
            status=STATUS_DRAFT,
            channel=channel or "POS",
            customer_name=customer_name,
            customer_phone=customer_phone,
            payment_method=payment_method,
            notes=notes,
            total_cost_cents=0,
            total_price_cents=0,
            profit_cents=0,
        )
        db.session.add(order)
        db.session.commit()

        current_app.logger.info("Sale %s started by user %s", order.order_number, user_id)
        return order

    return run_with_retry(_op, retry_on=(IntegrityError,))


def add_item(
    order_id: int,
    product_code,
    quantity: int = 1,
    unit_price_cents: int | None = None,
    *,
    user_id: int,
) -> SalesOrder:
    """
    Add a product to a DRAFT order, merging into its existing line.

    product_code is a product id, SKU or barcode.
    """
    _positive_int(quantity, "quantity")
    if unit_price_cents is not None:
        _non_negative_int(unit_price_cents, "unit_price_cents")

    def _op():
        begin_write()
        order = _lock_order(order_id)
        authorize(user_id, Action.EDIT_SALE, {"status": order.status})
        _require_draft(order, "add items to")

        product = find_product(product_code)
        line = next((l for l in order.lines if l.product_id == product.id), None)
        wanted = (line.quantity if line else 0) + quantity
        _check_availability(product.id, wanted)

        if line:
            line.quantity = wanted
            if unit_price_cents is not None:
                line.unit_price_cents = unit_price_cents
        else:
            line = SalesOrderLine(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                product_barcode=product.barcode,
                quantity=quantity,
                unit_cost_cents=product.cost_price_cents,
                unit_price_cents=(
                    unit_price_cents if unit_price_cents is not None else product.sell_price_cents
                ),
            )
            order.lines.append(line)

        line.recompute()
        recompute_totals(order)
        db.session.commit()

        current_app.logger.info(
            "Sale %s: %s x%d (line qty %d)", order.order_number, product.sku, quantity, wanted
        )
        return order

    return run_with_retry(_op)


def scan_barcode(order_id: int, code: str, *, user_id: int) -> SalesOrder:
    """Scanner entry point: one unit of whatever the code resolves to."""
    return add_item(order_id, code, 1, user_id=user_id)


def update_item(
    item_id: int,
    *,
    user_id: int,
    quantity: int | None = None,
    unit_price_cents: int | None = None,
) -> SalesOrder:
    """Change a DRAFT line's quantity and/or unit price. Unit cost is fixed."""
    if quantity is not None:
        _positive_int(quantity, "quantity")
    if unit_price_cents is not None:
        _non_negative_int(unit_price_cents, "unit_price_cents")

    def _op():
        begin_write()
        line, order = _lock_line(item_id)
        authorize(user_id, Action.EDIT_SALE, {"status": order.status})
        _require_draft(order, "update items on")

        if quantity is not None and quantity != line.quantity:
            if quantity > line.quantity:
                _check_availability(line.product_id, quantity)
            line.quantity = quantity
        if unit_price_cents is not None:
            line.unit_price_cents = unit_price_cents

        line.recompute()
        recompute_totals(order)
        db.session.commit()

        current_app.logger.info(
            "Sale %s: line %s updated (qty %d, price %d)",
            order.order_number, line.id, line.quantity, line.unit_price_cents,
        )
        return order

    return run_with_retry(_op)


def remove_item(item_id: int, *, user_id: int) -> SalesOrder:
    def _op():
        begin_write()
        line, order = _lock_line(item_id)
        authorize(user_id, Action.EDIT_SALE, {"status": order.status})
        _require_draft(order, "remove items from")

        order.lines.remove(line)
        recompute_totals(order)
        db.session.commit()

        current_app.logger.info("Sale %s: line %s removed", order.order_number, item_id)
        return order

    return run_with_retry(_op)


def update_order(
    order_id: int,
    *,
    user_id: int,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    payment_method: str | None = None,
    notes: str | None = None,
) -> SalesOrder:
    """Edit non-financial metadata. None leaves a field unchanged."""
    def _op():
        begin_write()
        order = _lock_order(order_id)
        _require_open(order)
        authorize(user_id, Action.EDIT_SALE, {"status": order.status})

        if customer_name is not None:
            order.customer_name = customer_name
        if customer_phone is not None:
            order.customer_phone = customer_phone
        if payment_method is not None:
            order.payment_method = payment_method
        if notes is not None:
            order.notes = notes

        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# TRANSITIONS
# =============================================================================

def confirm_sale(
    order_id: int,
    *,
    user_id: int,
    payment_method: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
) -> SalesOrder:
    """
    DRAFT -> CONFIRMED. Decrements stock for every line inside one
    transaction; one short product fails the whole confirm.
    """
    def _op():
        begin_write()
        order = _lock_order(order_id)
        authorize(user_id, Action.CONFIRM_SALE, {"status": order.status})

        if order.status != STATUS_DRAFT:
            raise InvalidStateError(
                f"Order {order.order_number} is already {order.status}",
                details={"order_id": order.id, "status": order.status},
            )
        if not order.lines:
            raise EmptyOrderError("Cannot confirm an empty order", details={"order_id": order.id})

        # Ascending product id keeps lock order stable across concurrent confirms
        for line in sorted(order.lines, key=lambda l: l.product_id):
            stock_ledger.decrement(
                line.product_id,
                line.quantity,
                movement_type=stock_ledger.MOVEMENT_SALE_CONFIRM,
                reference_type=stock_ledger.REFERENCE_SALES_ORDER,
                reference_id=order.id,
                actor_user_id=user_id,
                note=f"Sale {order.order_number}",
            )

        order.status = STATUS_CONFIRMED
        order.confirmed_at = utcnow()
        if payment_method:
            order.payment_method = payment_method
        if customer_name:
            order.customer_name = customer_name
        if customer_phone:
            order.customer_phone = customer_phone

        db.session.commit()

        current_app.logger.info(
            "Sale %s confirmed by user %s: %d lines, total %d cents",
            order.order_number, user_id, len(order.lines), order.total_price_cents,
        )
        return order

    return run_with_retry(_op)


def _require_open(order: SalesOrder) -> None:
    if order.status in TERMINAL_STATUSES:
        raise InvalidStateError(
            f"Order {order.order_number} is already {order.status}",
            details={"order_id": order.id, "status": order.status},
        )


def _close_pending_requests(
    order: SalesOrder,
    user_id: int,
    reason: str,
    *,
    keep_request_id: int | None = None,
) -> int:
    """
    Reject cancellation requests left open on an order that just became
    terminal, so they drop out of the approval queue. Does not commit.
    """
    query = db.session.query(CancellationRequest).filter(
        CancellationRequest.order_id == order.id,
        CancellationRequest.approval_status == REQUEST_PENDING,
    )
    if keep_request_id is not None:
        query = query.filter(CancellationRequest.id != keep_request_id)

    closed = 0
    now = utcnow()
    for req in query.all():
        req.approval_status = REQUEST_REJECTED
        req.rejection_reason = reason
        req.resolved_by_user_id = user_id
        req.resolved_at = now
        closed += 1
    return closed


def cancel_locked(
    order: SalesOrder,
    user_id: int,
    reason: str | None,
    *,
    resolving_request_id: int | None = None,
) -> SalesOrder:
    """
    Apply the cancel transition to an order the caller has locked.

    Shared by direct cancellation and approved cancellation requests
    (resolving_request_id is the request being approved; every other
    pending request on the order is rejected).
    Does not authorize and does not commit.
    """
    _require_open(order)

    restored = order.status == STATUS_CONFIRMED
    if restored:
        _restore_stock(
            order,
            stock_ledger.MOVEMENT_SALE_CANCEL,
            user_id,
            f"Cancel sale {order.order_number}",
        )

    order.status = STATUS_CANCELED
    order.canceled_at = utcnow()
    order.canceled_by_user_id = user_id
    order.cancellation_reason = reason

    closed = _close_pending_requests(
        order, user_id, "Order was canceled", keep_request_id=resolving_request_id
    )

    current_app.logger.info(
        "Sale %s canceled by user %s%s%s",
        order.order_number, user_id,
        " (stock restored)" if restored else "",
        f" ({closed} pending request(s) closed)" if closed else "",
    )
    return order


def cancel_order(order_id: int, *, user_id: int, reason: str | None = None) -> SalesOrder:
    """
    Direct cancellation. Any actor may cancel a DRAFT; a CONFIRMED order
    needs a high-privilege actor (others must use request_cancellation).

    A terminal order fails with InvalidState before the role is consulted,
    so a retried cancel reports the order state to every actor.
    """
    def _op():
        begin_write()
        order = _lock_order(order_id)
        _require_open(order)
        authorize(user_id, Action.CANCEL_SALE, {"status": order.status})
        cancel_locked(order, user_id, reason)
        db.session.commit()
        return order

    return run_with_retry(_op)


def return_order(
    order_id: int,
    *,
    user_id: int,
    shipping_cost_cents: int | None = None,
    reason: str | None = None,
) -> SalesOrder:
    """CONFIRMED -> RETURNED; goods go back on the shelf."""
    if shipping_cost_cents is not None:
        _non_negative_int(shipping_cost_cents, "shipping_cost_cents")

    def _op():
        begin_write()
        order = _lock_order(order_id)

        if order.status != STATUS_CONFIRMED:
            raise InvalidStateError(
                f"Only CONFIRMED orders can be returned; order {order.order_number} is {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

        authorize(user_id, Action.RETURN_SALE, {"status": order.status})

        _restore_stock(
            order,
            stock_ledger.MOVEMENT_SALE_RETURN,
            user_id,
            f"Return sale {order.order_number}",
        )

        order.status = STATUS_RETURNED
        order.returned_at = utcnow()
        order.returned_by_user_id = user_id
        order.return_shipping_cost_cents = shipping_cost_cents or 0
        order.return_reason = reason
        _close_pending_requests(order, user_id, "Order was returned")
        db.session.commit()

        current_app.logger.info(
            "Sale %s returned by user %s (shipping %d cents)",
            order.order_number, user_id, order.return_shipping_cost_cents,
        )
        return order

    return run_with_retry(_op)



# =============================================================================
# READS
# =============================================================================

def get_order(order_id: int) -> SalesOrder:
    order = db.session.get(SalesOrder, order_id)
    if not order:
        raise NotFoundError(f"Sales order {order_id} not found")
    return order


def get_order_by_number(order_number: str) -> SalesOrder:
    order = db.session.query(SalesOrder).filter_by(order_number=order_number).first()
    if not order:
        raise NotFoundError(f"Sales order not found with order number: {order_number}")
    return order


def list_orders(
    *,
    status: str | None = None,
    staff_user_id: int | None = None,
    order_number: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SalesOrder], int]:
    """Sales history, newest first. Returns (orders, total count)."""
    if status and status not in SALE_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(SALE_STATUSES))}")

    query = db.session.query(SalesOrder)
    if status:
        query = query.filter(SalesOrder.status == status)
    if staff_user_id:
        query = query.filter(SalesOrder.staff_user_id == staff_user_id)
    if order_number:
        query = query.filter(SalesOrder.order_number.contains(order_number))
    if from_date:
        query = query.filter(SalesOrder.created_at >= from_date)
    if to_date:
        query = query.filter(SalesOrder.created_at <= to_date)

    total = query.count()
    orders = (
        query.order_by(SalesOrder.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return orders, total
