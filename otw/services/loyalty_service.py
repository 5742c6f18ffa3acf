"""Loyalty service: spins earned by paying for orders.

grant_spin() is the only write path and it only increments. The row is
created on first grant (a merge, not an overwrite), so repeated grants from
different orders accumulate. Duplicate grants for the same order are
prevented upstream by the idempotent paid transition.
"""

import logging

from otw.extensions import db
from otw.models.loyalty import LoyaltyAccount

logger = logging.getLogger(__name__)


def grant_spin(user_id, count=1):
    """Add `count` spins to the payer's account. Flushes only."""
    account = db.session.get(LoyaltyAccount, user_id)
    if account is None:
        account = LoyaltyAccount(user_id=user_id, spins_remaining=0, spins_earned=0)
        db.session.add(account)
        db.session.flush()

    account.spins_remaining = LoyaltyAccount.spins_remaining + count
    account.spins_earned = LoyaltyAccount.spins_earned + count
    db.session.flush()

    logger.info(f"Granted {count} loyalty spin(s) to user {user_id}")
    return account


def get_spins(user_id):
    account = db.session.get(LoyaltyAccount, user_id)
    return account.spins_remaining if account else 0
