"""Screenshot order intake and operator workflow.

Customers upload a screenshot of a cart from another restaurant; operators
call, place the order and advance it through the ScreenshotOrder statuses.
Status changes go through fulfillment_service.transition(), which also sets
the matching workflow flag.
"""

import logging
import random
import time

import bleach
from sqlalchemy.exc import SQLAlchemyError

from otw.errors import NotFoundError, ValidationError
from otw.extensions import db
from otw.models.screenshot_order import ScreenshotOrder
from otw.services import storage_service
from otw.services.audit_service import record_audit_event
from otw.services.fulfillment_service import positive_decimal, transition

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = [
    "customerName",
    "customerPhone",
    "customerEmail",
    "restaurantName",
    "pickupLocation",
    "estimatedTotal",
]

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


def _clean(value):
    """Strip all markup from customer-supplied text."""
    return bleach.clean(str(value or ""), tags=[], strip=True).strip()


def generate_order_code():
    """SS-<epoch ms>-<3 digits>."""
    return f"SS-{int(time.time() * 1000)}-{random.randint(0, 999):03d}"


def create_screenshot_order(fields, screenshot, metadata=None):
    """Validate intake form fields, store the screenshot and create the order.

    Args:
        fields: Mapping of form fields (request.form).
        screenshot: Werkzeug FileStorage, or None.
        metadata: {"user_agent": ..., "ip_address": ...} of the submitter.

    Returns the ScreenshotOrder (flushed, not committed).
    """
    metadata = metadata or {}
    values = {name: _clean(fields.get(name)) for name in REQUIRED_FIELDS}
    if any(not value for value in values.values()) or screenshot is None:
        raise ValidationError("Missing required fields")

    storage_service.validate_image(screenshot)
    estimated_total = positive_decimal(values["estimatedTotal"], "estimatedTotal")

    order_code = generate_order_code()
    upload = storage_service.upload_screenshot(screenshot, order_code)

    order = ScreenshotOrder(
        order_code=order_code,
        customer_name=values["customerName"],
        customer_phone=values["customerPhone"],
        customer_email=values["customerEmail"],
        restaurant_name=values["restaurantName"],
        pickup_location=values["pickupLocation"],
        estimated_total=estimated_total,
        special_instructions=_clean(fields.get("specialInstructions")),
        screenshot_url=upload["public_url"],
        screenshot_path=upload["storage_path"],
        original_filename=upload["filename"],
        user_agent=(metadata.get("user_agent") or "")[:500],
        ip_address=metadata.get("ip_address") or "unknown",
    )
    db.session.add(order)
    try:
        db.session.flush()
    except SQLAlchemyError:
        db.session.rollback()
        storage_service.delete_file(upload["storage_path"])
        raise

    record_audit_event("screenshot_order.created", {
        "order_id": order.id,
        "order_code": order.order_code,
        "restaurant": order.restaurant_name,
    })
    logger.info(
        f"New screenshot order {order.order_code} from {order.customer_name} "
        f"({order.restaurant_name}, est. ${order.estimated_total})"
    )
    return order


def find_screenshot_order(order_id):
    """Look up by primary key or order code. Raises NotFoundError."""
    order = db.session.get(ScreenshotOrder, order_id)
    if order is None:
        order = ScreenshotOrder.query.filter_by(order_code=order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def list_screenshot_orders(status=None, limit=DEFAULT_LIST_LIMIT):
    """Newest first, optionally filtered by status."""
    if status and status not in ScreenshotOrder.STATUSES:
        raise ValidationError("Invalid status")
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    query = ScreenshotOrder.query
    if status:
        query = query.filter_by(status=status)
    return (
        query.order_by(ScreenshotOrder.created_at.desc(), ScreenshotOrder.order_code.desc())
        .limit(limit)
        .all()
    )


def update_screenshot_status(order_id, status, notes=None, admin_id=None,
                             actor_user_id=None, force=False):
    """Advance a screenshot order. Returns (order, changed)."""
    if not order_id or not status:
        raise ValidationError("Order ID and status are required")

    order = find_screenshot_order(order_id)
    updates = {}
    if admin_id:
        updates["last_updated_by"] = str(admin_id)

    changed = transition(
        order, status,
        actor_user_id=actor_user_id,
        notes=notes or None,
        force=force,
        **updates,
    )
    if not changed and (notes or admin_id):
        # Self-transition still records the operator's note
        if notes:
            order.admin_notes = notes
        if admin_id:
            order.last_updated_by = str(admin_id)
        db.session.flush()
    return order, changed
