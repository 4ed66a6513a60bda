# Overview: The single source of truth for on-hand quantity.

"""
Stock Ledger

Invariants (authoritative):
- products.stock_qty >= 0 at all times.
- Callers never get a read-then-write pair. A decrement is one conditional
  UPDATE ("subtract N where stock_qty >= N"); zero rows affected means the
  shelf is short and nothing changed.
- Every mutation appends a StockMovement in the caller's transaction. The
  unique (movement_type, reference_type, reference_id, product_id) key
  rejects a second application for the same order at the storage level.
- The ledger never commits. The calling state machine owns the transaction,
  which is what makes a multi-line confirm all-or-nothing.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import Product, StockMovement
from ..time_utils import utcnow


MOVEMENT_SALE_CONFIRM = "SALE_CONFIRM"
MOVEMENT_SALE_CANCEL = "SALE_CANCEL"
MOVEMENT_SALE_RETURN = "SALE_RETURN"
MOVEMENT_STOCK_IN_RECEIVE = "STOCK_IN_RECEIVE"

REFERENCE_SALES_ORDER = "sales_order"
REFERENCE_STOCK_IN = "stock_in_order"


def _validate_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})


def _balance(product_id: int) -> int:
    return int(
        db.session.query(Product.stock_qty).filter(Product.id == product_id).scalar()
    )


def get_on_hand(product_id: int) -> int:
    qty = db.session.query(Product.stock_qty).filter(Product.id == product_id).scalar()
    if qty is None:
        raise NotFoundError(f"Product {product_id} not found")
    return int(qty)


def _record(
    product_id: int,
    delta: int,
    *,
    movement_type: str,
    reference_type: str,
    reference_id: int,
    actor_user_id: int | None,
    note: str | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=delta,
        balance_after=_balance(product_id),
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def decrement(
    product_id: int,
    quantity: int,
    *,
    movement_type: str,
    reference_type: str,
    reference_id: int,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """Subtract quantity if and only if at least that much is on hand."""
    _validate_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock_qty >= quantity)
        .values(stock_qty=Product.stock_qty - quantity)
    )
    result = db.session.execute(stmt)

    if result.rowcount != 1:
        on_hand = get_on_hand(product_id)
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id}",
            details={
                "product_id": product_id,
                "requested_quantity": quantity,
                "on_hand": on_hand,
            },
        )

    return _record(
        product_id,
        -quantity,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
    )


def increment(
    product_id: int,
    quantity: int,
    *,
    movement_type: str,
    reference_type: str,
    reference_id: int,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """Add quantity back to the shelf (cancel, return, stock-in receipt)."""
    _validate_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock_qty=Product.stock_qty + quantity)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise NotFoundError(f"Product {product_id} not found")

    return _record(
        product_id,
        quantity,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=actor_user_id,
        note=note,
    )
