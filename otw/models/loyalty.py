"""Loyalty account model.

One row per payer, keyed by the identity provider's user id (no FK: the
payer may never have a local profile). The webhook path only ever
increments these counters.
"""

from otw.extensions import db


class LoyaltyAccount(db.Model):
    __tablename__ = "loyalty_accounts"

    user_id = db.Column(db.String(128), primary_key=True)
    spins_remaining = db.Column(db.Integer, default=0, nullable=False)
    spins_earned = db.Column(db.Integer, default=0, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<LoyaltyAccount {self.user_id} spins={self.spins_remaining}>"
