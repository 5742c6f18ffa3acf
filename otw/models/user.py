"""User model.

Local profile for a principal issued by the identity provider. The role
drives every authorization check (see otw.decorators.role_required).
Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from otw.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    # -- Valid roles --
    ROLES = ["customer", "driver", "operator", "admin"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255))
    role = db.Column(
        db.String(50), default="customer", nullable=False
    )  # customer | driver | operator | admin
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    audit_events = db.relationship(
        "AuditEvent", back_populates="actor", lazy="dynamic"
    )

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_operator(self):
        """Operators and admins may drive fulfillment status changes."""
        return self.role in ("operator", "admin")

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
