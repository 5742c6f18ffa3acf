"""Delivery request model.

A package/food run from a pickup address to a dropoff address. The fee
estimate (distance, duration, fee, encoded route) is computed once when the
request is created and stored alongside it, so the price the customer paid
for is the price on record.
"""

import uuid

from otw.extensions import db


class DeliveryRequest(db.Model):
    __tablename__ = "delivery_requests"

    KIND = "delivery"

    # -- Valid statuses --
    STATUSES = [
        "pending_payment",
        "paid",
        "assigned",
        "picked_up",
        "in_transit",
        "delivered",
        "cancelled",
        "refunded",
    ]

    TERMINAL_STATUSES = ["delivered", "cancelled", "refunded"]

    # -- Valid status transitions (enforced in fulfillment_service) --
    VALID_TRANSITIONS = {
        "pending_payment": ["paid", "cancelled", "refunded"],
        "paid": ["assigned", "cancelled", "refunded"],
        "assigned": ["picked_up", "cancelled", "refunded"],
        "picked_up": ["in_transit", "cancelled", "refunded"],
        "in_transit": ["delivered", "cancelled", "refunded"],
    }

    PRIORITIES = ["standard", "express", "rush"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(128), nullable=False, index=True)
    pickup_address = db.Column(db.JSON, nullable=False)
    dropoff_address = db.Column(db.JSON, nullable=False)
    items = db.Column(db.JSON, nullable=False, default=list)
    priority = db.Column(
        db.String(20), default="standard", nullable=False
    )  # standard | express | rush
    contact_phone = db.Column(db.String(20), nullable=False)
    scheduled_time = db.Column(db.String(64), nullable=True)

    # --- Frozen estimate ---
    distance_meters = db.Column(db.Integer, nullable=False)
    duration_seconds = db.Column(db.Integer, nullable=False)
    fee = db.Column(db.Numeric(10, 2), nullable=False)
    route_polyline = db.Column(db.Text, nullable=True)
    items_total = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(10, 2), nullable=False)

    status = db.Column(
        db.String(50), default="pending_payment", nullable=False
    )
    stripe_session_id = db.Column(db.String(255), unique=True, nullable=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    driver_id = db.Column(
        db.String(36), db.ForeignKey("drivers.id"), nullable=True
    )
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

    # --- Relationships ---
    driver = db.relationship("Driver", back_populates="deliveries")

    @property
    def estimate(self):
        return {
            "distanceMeters": self.distance_meters,
            "durationSeconds": self.duration_seconds,
            "fee": float(self.fee),
            "routePolyline": self.route_polyline,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "pickupAddress": self.pickup_address,
            "dropoffAddress": self.dropoff_address,
            "items": self.items,
            "priority": self.priority,
            "contactPhone": self.contact_phone,
            "scheduledTime": self.scheduled_time,
            "estimate": self.estimate,
            "itemsTotal": float(self.items_total),
            "total": float(self.total),
            "status": self.status,
            "driverId": self.driver_id,
            "notes": self.notes,
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<DeliveryRequest {self.id} ({self.status})>"
