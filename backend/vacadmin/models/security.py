from __future__ import annotations

from ..extensions import db


class SecurityEvent(db.Model):
    """
    Security event audit log.

    WHY: Track denied transitions (a STAFF user trying to cancel a confirmed
    order directly, a MOD trying to approve a stock-in) and failed logins.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # PERMISSION_DENIED, LOGIN_FAILED
    resource = db.Column(db.String(128), nullable=True)  # e.g. "/api/sales/4/cancel"
    action = db.Column(db.String(64), nullable=True)     # e.g. "CANCEL_SALE"

    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
