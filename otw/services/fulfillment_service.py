"""Fulfillment service: order and delivery creation plus the status machine.

All status changes for Order, DeliveryRequest and ScreenshotOrder go
through transition(). Each model declares its own STATUSES and
VALID_TRANSITIONS; this module owns the rules for applying them:

- unknown status strings are always rejected
- a transition into the current status is a silent no-op
- nothing leaves a TERMINAL_STATUSES state
- otherwise the target must be listed for the current status, unless the
  caller passes force=True (admin override, which also reopens terminal states)

Functions flush but do NOT commit; the caller commits.
"""

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from otw.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from otw.extensions import db
from otw.models.delivery import DeliveryRequest
from otw.models.menu_item import MenuItem
from otw.models.order import Order
from otw.models.screenshot_order import ScreenshotOrder
from otw.services.audit_service import record_audit_event
from otw.services.fee_service import estimate_delivery, format_address

logger = logging.getLogger(__name__)

MODELS_BY_KIND = {
    Order.KIND: Order,
    DeliveryRequest.KIND: DeliveryRequest,
    ScreenshotOrder.KIND: ScreenshotOrder,
}

STATE_RE = re.compile(r"^[A-Za-z]{2}$")
ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
PHONE_RE = re.compile(r"^\+?1?\d{10}$")

MAX_CART_QUANTITY = 99


# ──────────────────────────────────────────────
# Status machine
# ──────────────────────────────────────────────

def transition(record, target_status, actor_user_id=None, notes=None,
               force=False, **updates):
    """Move `record` to `target_status`.

    Args:
        record: An Order, DeliveryRequest or ScreenshotOrder.
        target_status: Desired status string.
        actor_user_id: User performing the change (None for system events).
        notes: Optional note stored on the record.
        force: Skip the transition table check (admin override). Unknown
            statuses are still rejected.
        **updates: Extra column values applied together with the change
            (e.g. stripe_payment_intent_id, driver_id).

    Returns:
        True if the status changed, False for a self-transition no-op.

    Raises:
        InvalidTransitionError: unknown status, or a move the table forbids.
    """
    model = type(record)

    if target_status not in model.STATUSES:
        raise InvalidTransitionError(
            f"Invalid status '{target_status}'. Must be one of: {', '.join(model.STATUSES)}"
        )

    old_status = record.status
    if old_status == target_status:
        logger.debug(f"{model.KIND} {record.id} already {target_status}, no-op")
        return False

    if not force:
        if old_status in model.TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Cannot transition from '{old_status}' to '{target_status}'. "
                "Allowed: none (terminal state)"
            )
        allowed = model.VALID_TRANSITIONS.get(old_status, [])
        if target_status not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from '{old_status}' to '{target_status}'. "
                f"Allowed: {', '.join(allowed)}"
            )

    now = datetime.now(timezone.utc)
    record.status = target_status
    record.updated_at = now

    if target_status == "paid" and hasattr(record, "paid_at"):
        record.paid_at = now
    if target_status == "refunded" and hasattr(record, "refunded_at"):
        record.refunded_at = now

    # Workflow flags only ever go False -> True
    flag = getattr(model, "WORKFLOW_FLAGS", {}).get(target_status)
    if flag:
        setattr(record, flag, True)

    if notes is not None:
        if isinstance(record, ScreenshotOrder):
            record.admin_notes = notes
        else:
            record.notes = notes

    for column, value in updates.items():
        setattr(record, column, value)

    db.session.flush()

    record_audit_event(
        f"{model.KIND}.status_changed",
        {
            "id": record.id,
            "from": old_status,
            "to": target_status,
            "forced": bool(force),
            "notes": notes,
        },
        actor_user_id=actor_user_id,
    )

    logger.info(f"{model.KIND} {record.id}: {old_status} -> {target_status}"
                f"{' (forced)' if force else ''}")
    return True


def get_record(kind, record_id):
    """Load a record by kind and id. Raises NotFoundError if missing."""
    model = MODELS_BY_KIND.get(kind)
    if model is None:
        raise ValidationError(f"Unknown record kind '{kind}'")
    record = db.session.get(model, record_id) if record_id else None
    if record is None:
        raise NotFoundError(f"{kind.replace('_', ' ').capitalize()} {record_id} not found")
    return record


def transition_by_id(kind, record_id, target_status, **kwargs):
    """Load a record and transition it. See transition() for kwargs.

    Returns (record, changed).
    """
    record = get_record(kind, record_id)
    changed = transition(record, target_status, **kwargs)
    return record, changed


def assign_driver(delivery, driver, actor_user_id=None):
    """Hand a paid delivery to `driver`.

    Re-accepting a delivery already assigned to the same driver is a no-op;
    a delivery held by another driver raises ConflictError. `delivery` may
    be a DeliveryRequest or its id.
    """
    if isinstance(delivery, str):
        delivery = get_record("delivery", delivery)
    if not driver.is_active:
        raise ValidationError("Driver is not active.")

    if delivery.driver_id and delivery.driver_id != driver.id:
        raise ConflictError("Delivery is already assigned to another driver.")

    return transition(
        delivery, "assigned",
        actor_user_id=actor_user_id,
        driver_id=driver.id,
    )


# ──────────────────────────────────────────────
# Validation helpers
# ──────────────────────────────────────────────

def positive_decimal(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive number.")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive number.")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be a positive number.")
    return amount


def positive_int(value, field):
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer.")
    return value


def validate_address(data, field):
    """Validate a structured address; returns the normalized dict."""
    if not isinstance(data, dict):
        raise ValidationError(f"{field} must be an address object.")

    street = str(data.get("street") or "").strip()
    city = str(data.get("city") or "").strip()
    state = str(data.get("state") or "").strip()
    zip_code = str(data.get("zipCode") or data.get("zip_code") or "").strip()
    instructions = data.get("instructions")

    errors = []
    if len(street) < 5:
        errors.append(f"{field}.street must be at least 5 characters.")
    if len(city) < 2:
        errors.append(f"{field}.city must be at least 2 characters.")
    if not STATE_RE.match(state):
        errors.append(f"{field}.state must be a 2-letter code.")
    if not ZIP_RE.match(zip_code):
        errors.append(f"{field}.zipCode must be a 5-digit ZIP.")
    if errors:
        raise ValidationError(" ".join(errors))

    address = {
        "street": street,
        "city": city,
        "state": state.upper(),
        "zip_code": zip_code,
    }
    if instructions:
        address["instructions"] = str(instructions).strip()
    return address


def validate_line_items(items, allow_empty=False):
    """Validate [{name, price, quantity}] and return normalized copies.

    Prices come back as strings so the JSON column round-trips exactly.
    """
    if not isinstance(items, list):
        raise ValidationError("items must be a list.")
    if not items and not allow_empty:
        raise ValidationError("At least one item is required.")

    normalized = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object.")
        name = str(item.get("name") or "").strip()
        if not name:
            raise ValidationError(f"items[{index}].name is required.")
        price = positive_decimal(item.get("price"), f"items[{index}].price")
        quantity = positive_int(item.get("quantity"), f"items[{index}].quantity")
        entry = {
            "name": name,
            "unit_price": str(price.quantize(Decimal("0.01"))),
            "quantity": quantity,
        }
        if item.get("menu_item_id"):
            entry["menu_item_id"] = item["menu_item_id"]
        normalized.append(entry)
    return normalized


def items_total(items):
    """Sum of unit_price * quantity over normalized line items."""
    return sum(
        (Decimal(item["unit_price"]) * item["quantity"] for item in items),
        Decimal("0.00"),
    )


def _validate_scheduled_time(value):
    if value in (None, ""):
        return None
    try:
        datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("scheduledTime must be an ISO-8601 datetime.")
    return str(value)


# ──────────────────────────────────────────────
# Orders
# ──────────────────────────────────────────────

def build_cart(cart_items):
    """Resolve [{id, quantity}] against the menu into priced line items.

    Raises ValidationError on an empty cart, unknown or unavailable item,
    or bad quantity.
    """
    if not isinstance(cart_items, list) or not cart_items:
        raise ValidationError("Cart is empty.")

    line_items = []
    for index, entry in enumerate(cart_items):
        if not isinstance(entry, dict) or not entry.get("id"):
            raise ValidationError(f"cartItems[{index}] is missing an id.")
        quantity = entry.get("quantity", 1)
        positive_int(quantity, f"cartItems[{index}].quantity")
        if quantity > MAX_CART_QUANTITY:
            raise ValidationError(f"cartItems[{index}].quantity is too large.")

        menu_item = db.session.get(MenuItem, entry["id"])
        if menu_item is None or not menu_item.is_available:
            raise ValidationError(f"Invalid item: {entry['id']}")

        line_items.append({
            "menu_item_id": menu_item.id,
            "name": menu_item.name,
            "price": menu_item.price,
            "quantity": quantity,
        })
    return validate_line_items(line_items)


def create_order(user_id, items, stripe_session_id=None, status="pending_payment"):
    """Create an Order from line items ({name, price, quantity}).

    The total is fixed here as the sum of line subtotals.
    """
    if not user_id:
        raise ValidationError("userId is required.")
    if status not in Order.STATUSES:
        raise InvalidTransitionError(f"Invalid status '{status}'")

    normalized = validate_line_items(items)
    order = Order(
        user_id=str(user_id),
        items=normalized,
        total=items_total(normalized),
        status=status,
        stripe_session_id=stripe_session_id,
    )
    db.session.add(order)
    db.session.flush()

    record_audit_event("order.created", {
        "order_id": order.id,
        "user_id": order.user_id,
        "total": str(order.total),
    })
    logger.info(f"Created order {order.id} for user {user_id} (${order.total})")
    return order


def find_order_by_session(stripe_session_id):
    if not stripe_session_id:
        return None
    return Order.query.filter_by(stripe_session_id=stripe_session_id).first()


# ──────────────────────────────────────────────
# Deliveries
# ──────────────────────────────────────────────

def validate_delivery_request(payload):
    """Validate a delivery request body. Returns a normalized dict."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid request.")

    priority = payload.get("priority")
    if priority not in DeliveryRequest.PRIORITIES:
        raise ValidationError(
            f"priority must be one of: {', '.join(DeliveryRequest.PRIORITIES)}"
        )

    phone = str(payload.get("contactPhone") or "").strip()
    if not PHONE_RE.match(phone):
        raise ValidationError("contactPhone must be a 10-digit phone number.")

    return {
        "pickup_address": validate_address(payload.get("pickupAddress"), "pickupAddress"),
        "dropoff_address": validate_address(payload.get("dropoffAddress"), "dropoffAddress"),
        "items": validate_line_items(payload.get("items") or [], allow_empty=True),
        "priority": priority,
        "contact_phone": phone,
        "scheduled_time": _validate_scheduled_time(payload.get("scheduledTime")),
    }


def create_delivery_request(user_id, payload, maps_client=None):
    """Validate, price and store a new delivery in pending_payment.

    The estimate is computed now and frozen on the record.
    Returns the DeliveryRequest (flushed, not committed).
    """
    if not user_id:
        raise ValidationError("userId is required.")

    request_data = validate_delivery_request(payload)
    estimate = estimate_delivery(
        format_address(request_data["pickup_address"]),
        format_address(request_data["dropoff_address"]),
        request_data["priority"],
        maps_client=maps_client,
    )

    pickup = dict(request_data["pickup_address"],
                  lat=estimate["pickup"]["lat"], lng=estimate["pickup"]["lng"])
    dropoff = dict(request_data["dropoff_address"],
                   lat=estimate["dropoff"]["lat"], lng=estimate["dropoff"]["lng"])

    goods_total = items_total(request_data["items"])

    delivery = DeliveryRequest(
        user_id=str(user_id),
        pickup_address=pickup,
        dropoff_address=dropoff,
        items=request_data["items"],
        priority=request_data["priority"],
        contact_phone=request_data["contact_phone"],
        scheduled_time=request_data["scheduled_time"],
        distance_meters=estimate["distance_meters"],
        duration_seconds=estimate["duration_seconds"],
        fee=estimate["fee"],
        route_polyline=estimate["route_polyline"],
        items_total=goods_total,
        total=goods_total + estimate["fee"],
        status="pending_payment",
    )
    db.session.add(delivery)
    db.session.flush()

    record_audit_event("delivery.created", {
        "delivery_id": delivery.id,
        "user_id": delivery.user_id,
        "priority": delivery.priority,
        "fee": str(delivery.fee),
    })
    logger.info(f"Created delivery {delivery.id} ({delivery.priority}, fee ${delivery.fee})")
    return delivery


def find_delivery_by_session(stripe_session_id):
    if not stripe_session_id:
        return None
    return DeliveryRequest.query.filter_by(stripe_session_id=stripe_session_id).first()
