from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockInOrder(db.Model):
    """
    Purchasing intake order.

    Two status axes:
    - approval_status: PENDING_APPROVAL -> {APPROVED, REJECTED}
    - status: PENDING -> {RECEIVED, CANCELLED}

    Only an APPROVED + PENDING order can be received, and receiving is the
    only event that moves stock. Lines are fixed at creation.
    """
    __tablename__ = "stock_in_orders"
    __table_args__ = (
        db.Index("ix_stock_in_orders_status_approval", "status", "approval_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    reference = db.Column(db.String(64), nullable=False, unique=True, index=True)
    supplier = db.Column(db.String(255), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    approval_status = db.Column(db.String(20), nullable=False, default="PENDING_APPROVAL", index=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    total_qty = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    requested_by = db.relationship("User", foreign_keys=[requested_by_user_id])
    lines = db.relationship(
        "StockInLine",
        back_populates="stock_in",
        order_by="StockInLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "reference": self.reference,
            "supplier": self.supplier,
            "notes": self.notes,
            "requested_by_user_id": self.requested_by_user_id,
            "status": self.status,
            "approval_status": self.approval_status,
            "rejection_reason": self.rejection_reason,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "received_by_user_id": self.received_by_user_id,
            "received_at": to_utc_z(self.received_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "total_qty": self.total_qty,
            "total_cost_cents": self.total_cost_cents,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class StockInLine(db.Model):
    """Line item on a stock-in order. Immutable once the order exists."""
    __tablename__ = "stock_in_lines"
    __table_args__ = (
        db.UniqueConstraint("stock_in_id", "product_id", name="uq_stock_in_lines_order_product"),
        db.CheckConstraint("quantity > 0", name="ck_stock_in_lines_quantity_positive"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_stock_in_lines_cost_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_in_id = db.Column(db.Integer, db.ForeignKey("stock_in_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    line_cost_cents = db.Column(db.Integer, nullable=False)

    stock_in = db.relationship("StockInOrder", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_in_id": self.stock_in_id,
            "product_id": self.product_id,
            "product_sku": self.product.sku if self.product else None,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "line_cost_cents": self.line_cost_cents,
        }
