"""Driver models.

- Driver: a member of the delivery fleet. Only drivers flagged both
  available and active receive new-job notifications.
- DriverNotification: write-only fan-out artifact, one row per driver per
  paid delivery. Carries just enough to accept the job.
"""

import uuid

from otw.extensions import db


class Driver(db.Model):
    __tablename__ = "drivers"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), unique=True, nullable=True
    )
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(40), nullable=True)
    is_available = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    user = db.relationship("User")
    deliveries = db.relationship(
        "DeliveryRequest", back_populates="driver", lazy="dynamic"
    )
    notifications = db.relationship(
        "DriverNotification", back_populates="driver", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Driver {self.name}>"


class DriverNotification(db.Model):
    __tablename__ = "driver_notifications"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    driver_id = db.Column(
        db.String(36), db.ForeignKey("drivers.id"), nullable=False, index=True
    )
    delivery_id = db.Column(
        db.String(36), db.ForeignKey("delivery_requests.id"), nullable=True, index=True
    )
    event_type = db.Column(
        db.String(100), nullable=False
    )  # e.g. "delivery.available"
    payload = db.Column(db.JSON, nullable=False, default=dict)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    driver = db.relationship("Driver", back_populates="notifications")

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.event_type,
            "payload": self.payload,
            "read": self.read_at is not None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DriverNotification {self.event_type} -> {self.driver_id}>"
