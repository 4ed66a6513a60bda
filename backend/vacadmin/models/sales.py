from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SalesOrder(db.Model):
    """
    Sales order document.

    LIFECYCLE: DRAFT -> CONFIRMED -> {CANCELED, RETURNED}; DRAFT -> CANCELED.
    Lines are editable only while DRAFT. Stock leaves the shelf exactly once
    (DRAFT -> CONFIRMED) and comes back at most once (CANCELED or RETURNED).

    Totals are cached sums over the current lines and are recomputed by the
    service after every line mutation.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.Index("ix_sales_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "SO-20261019-0007")
    order_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    staff_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    channel = db.Column(db.String(32), nullable=False, default="POS")

    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    cancellation_reason = db.Column(db.String(255), nullable=True)
    canceled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    return_shipping_cost_cents = db.Column(db.Integer, nullable=True)
    return_reason = db.Column(db.String(255), nullable=True)
    returned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    staff = db.relationship("User", foreign_keys=[staff_user_id])
    lines = db.relationship(
        "SalesOrderLine",
        back_populates="order",
        order_by="SalesOrderLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "staff_user_id": self.staff_user_id,
            "status": self.status,
            "channel": self.channel,
            "total_cost_cents": self.total_cost_cents,
            "total_price_cents": self.total_price_cents,
            "profit_cents": self.profit_cents,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
            "canceled_by_user_id": self.canceled_by_user_id,
            "return_shipping_cost_cents": self.return_shipping_cost_cents,
            "return_reason": self.return_reason,
            "returned_by_user_id": self.returned_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "canceled_at": to_utc_z(self.canceled_at),
            "returned_at": to_utc_z(self.returned_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SalesOrderLine(db.Model):
    """
    Line on a sales order.

    Product name/sku/barcode and unit cost are snapshotted when the line is
    created; unit cost never changes afterwards (historical cost basis).
    """
    __tablename__ = "sales_order_lines"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_sales_order_lines_order_product"),
        db.CheckConstraint("quantity > 0", name="ck_sales_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    product_barcode = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    line_profit_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("SalesOrder", back_populates="lines")
    product = db.relationship("Product")

    def recompute(self) -> None:
        self.subtotal_cents = self.unit_price_cents * self.quantity
        self.line_profit_cents = self.subtotal_cents - self.unit_cost_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "product_barcode": self.product_barcode,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "line_profit_cents": self.line_profit_cents,
            "created_at": to_utc_z(self.created_at),
        }


class CancellationRequest(db.Model):
    """
    Request by a low-privilege actor to cancel a CONFIRMED order.

    LIFECYCLE: PENDING_APPROVAL -> {APPROVED, REJECTED}; both terminal.
    At most one PENDING_APPROVAL request per order.
    """
    __tablename__ = "cancellation_requests"
    __table_args__ = (
        db.Index("ix_cancellation_requests_order_status", "order_id", "approval_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=False, index=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    approval_status = db.Column(db.String(20), nullable=False, default="PENDING_APPROVAL", index=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("SalesOrder", backref=db.backref("cancellation_requests", lazy=True))
    requested_by = db.relationship("User", foreign_keys=[requested_by_user_id])
    resolved_by = db.relationship("User", foreign_keys=[resolved_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "order_status": self.order.status if self.order else None,
            "requested_by_user_id": self.requested_by_user_id,
            "reason": self.reason,
            "approval_status": self.approval_status,
            "rejection_reason": self.rejection_reason,
            "resolved_by_user_id": self.resolved_by_user_id,
            "resolved_at": to_utc_z(self.resolved_at),
            "created_at": to_utc_z(self.created_at),
        }
