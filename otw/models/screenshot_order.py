"""Screenshot order model.

A customer uploads a screenshot of a cart from another restaurant's site
and an operator places the order by phone. Progress is tracked twice: the
`status` string and a set of monotonic workflow flags. Once a flag is set
it is never cleared.
"""

import uuid

from otw.extensions import db


class ScreenshotOrder(db.Model):
    __tablename__ = "screenshot_orders"

    KIND = "screenshot_order"

    # -- Valid statuses --
    STATUSES = [
        "pending_review",
        "confirmed",
        "order_placed",
        "picked_up",
        "out_for_delivery",
        "delivered",
        "cancelled",
        "failed",
    ]

    TERMINAL_STATUSES = ["delivered", "cancelled", "failed"]

    # -- Valid status transitions (enforced in fulfillment_service) --
    VALID_TRANSITIONS = {
        "pending_review": ["confirmed", "cancelled", "failed"],
        "confirmed": ["order_placed", "cancelled", "failed"],
        "order_placed": ["picked_up", "cancelled", "failed"],
        "picked_up": ["out_for_delivery", "cancelled", "failed"],
        "out_for_delivery": ["delivered", "cancelled", "failed"],
    }

    # -- Status -> workflow flag set when that status is reached --
    WORKFLOW_FLAGS = {
        "confirmed": "confirmation_called",
        "order_placed": "order_placed",
        "picked_up": "picked_up",
        "delivered": "delivered",
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_code = db.Column(db.String(32), unique=True, nullable=False)  # SS-<ms>-<nnn>
    status = db.Column(
        db.String(50), default="pending_review", nullable=False
    )

    # --- Customer ---
    customer_name = db.Column(db.String(200), nullable=False)
    customer_phone = db.Column(db.String(40), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)

    # --- Restaurant ---
    restaurant_name = db.Column(db.String(255), nullable=False)
    pickup_location = db.Column(db.String(500), nullable=False)

    # --- Order details ---
    estimated_total = db.Column(db.Numeric(10, 2), nullable=False)
    special_instructions = db.Column(db.Text, default="")
    screenshot_url = db.Column(db.String(1000), nullable=False)
    screenshot_path = db.Column(db.String(500), nullable=True)
    original_filename = db.Column(db.String(255), nullable=True)

    # --- Workflow flags (monotonic) ---
    review_required = db.Column(db.Boolean, default=True, nullable=False)
    confirmation_called = db.Column(db.Boolean, default=False, nullable=False)
    order_placed = db.Column(db.Boolean, default=False, nullable=False)
    picked_up = db.Column(db.Boolean, default=False, nullable=False)
    delivered = db.Column(db.Boolean, default=False, nullable=False)

    admin_notes = db.Column(db.Text, nullable=True)
    last_updated_by = db.Column(db.String(128), nullable=True)

    # --- Submitter metadata ---
    user_agent = db.Column(db.String(500), default="")
    ip_address = db.Column(db.String(64), default="unknown")

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.Index("ix_screenshot_orders_status_created", "status", "created_at"),
    )

    @property
    def workflow(self):
        return {
            "reviewRequired": self.review_required,
            "confirmationCalled": self.confirmation_called,
            "orderPlaced": self.order_placed,
            "pickedUp": self.picked_up,
            "delivered": self.delivered,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "orderId": self.order_code,
            "type": "screenshot",
            "status": self.status,
            "customerInfo": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
            },
            "restaurantInfo": {
                "name": self.restaurant_name,
                "pickupLocation": self.pickup_location,
            },
            "orderDetails": {
                "estimatedTotal": float(self.estimated_total),
                "specialInstructions": self.special_instructions or "",
                "screenshotUrl": self.screenshot_url,
                "originalFileName": self.original_filename,
            },
            "workflow": self.workflow,
            "adminNotes": self.admin_notes,
            "lastUpdatedBy": self.last_updated_by,
            "timestamps": {
                "created": self.created_at.isoformat() if self.created_at else None,
                "updated": self.updated_at.isoformat() if self.updated_at else None,
            },
        }

    def __repr__(self):
        return f"<ScreenshotOrder {self.order_code} ({self.status})>"
