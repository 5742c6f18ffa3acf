"""Audit service: the one write path into audit_events.

Callers describe what happened; where it lands is this module's concern.
Flushes but does NOT commit, the caller owns the transaction.
"""

import logging

from otw.extensions import db
from otw.models.audit import AuditEvent

logger = logging.getLogger(__name__)


def record_audit_event(action, metadata=None, actor_user_id=None):
    """Record an audit entry.

    Actor is None for system-initiated events (webhooks, background jobs).
    Returns the AuditEvent instance.
    """
    event = AuditEvent(
        actor_user_id=actor_user_id,
        action=action,
        metadata_=metadata or {},
    )
    db.session.add(event)
    db.session.flush()
    logger.debug(f"Audit: {action} {metadata or {}}")
    return event
