from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data as seen by the order core.

    Catalog editing lives elsewhere; the core only reads prices for line
    snapshots and mutates stock_qty through the Stock Ledger.

    INVARIANT: stock_qty >= 0, enforced twice: by the ledger's conditional
    UPDATE and by a CHECK constraint as the last line of defence.
    min_stock / max_stock are advisory thresholds and never block a mutation.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_qty >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    sell_price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_qty = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock_qty={self.stock_qty}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_qty <= (self.min_stock or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "sell_price_cents": self.sell_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock_qty": self.stock_qty,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of every Stock Ledger mutation.

    The unique constraint is what makes "exactly once" hold at the storage
    level: a given order can move a given product only once per movement type.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint(
            "movement_type", "reference_type", "reference_id", "product_id",
            name="uq_stock_movements_once_per_reference",
        ),
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # SALE_CONFIRM, SALE_CANCEL, SALE_RETURN, STOCK_IN_RECEIVE
    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    # sales_order, stock_in_order
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "balance_after": self.balance_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
