"""Menu item model.

Partner and house menu entries. Maintained by the menu-scraping job and by
admins through the bulk endpoint; priced into checkout sessions.
"""

import uuid

from otw.extensions import db


class MenuItem(db.Model):
    __tablename__ = "menu_items"

    TYPES = ["classic", "infused"]
    SOURCES = ["broskis", "partner"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    description = db.Column(db.Text, default="")
    image = db.Column(db.String(1000), nullable=True)
    type = db.Column(db.String(20), default="classic", nullable=False)  # classic | infused
    source = db.Column(db.String(20), default="broskis", nullable=False)  # broskis | partner
    category = db.Column(db.String(100), nullable=True)
    is_available = db.Column(db.Boolean, default=True, nullable=False)
    updated_by = db.Column(db.String(36), nullable=True)
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
            "name": self.name,
            "price": float(self.price),
            "description": self.description,
            "image": self.image,
            "type": self.type,
            "source": self.source,
            "category": self.category,
            "isAvailable": self.is_available,
        }

    def __repr__(self):
        return f"<MenuItem {self.name}>"
