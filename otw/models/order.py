"""Order model.

A menu order paid through Stripe Checkout. Line items are frozen at
creation time and `total` is their sum; neither changes afterwards.
Status transitions are enforced in fulfillment_service.transition().
"""

import uuid

from otw.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    KIND = "order"

    # -- Valid statuses --
    STATUSES = [
        "pending_payment",
        "paid",
        "picked_up",
        "delivered",
        "cancelled",
        "refunded",
    ]

    TERMINAL_STATUSES = ["delivered", "cancelled", "refunded"]

    # -- Valid status transitions (enforced in fulfillment_service) --
    VALID_TRANSITIONS = {
        "pending_payment": ["paid", "cancelled", "refunded"],
        "paid": ["picked_up", "cancelled", "refunded"],
        "picked_up": ["delivered", "cancelled", "refunded"],
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(128), nullable=False, index=True)
    items = db.Column(db.JSON, nullable=False, default=list)
    total = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(
        db.String(50), default="pending_payment", nullable=False
    )
    stripe_session_id = db.Column(db.String(255), unique=True, nullable=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "items": self.items,
            "total": float(self.total),
            "status": self.status,
            "stripeSessionId": self.stripe_session_id,
            "notes": self.notes,
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
            "refundedAt": self.refunded_at.isoformat() if self.refunded_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Order {self.id} ({self.status})>"
