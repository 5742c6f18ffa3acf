"""Stripe service: all Stripe API calls and webhook handling.

Responsible for:
- Creating Stripe Checkout Sessions for menu orders and deliveries
- Issuing refunds
- Handling incoming webhooks with signature verification
- Dispatching to event-specific handlers
- Idempotency via the payment_events table (plus no-op self-transitions)

Webhook handlers never surface routing problems to Stripe: a missing record
or an out-of-order event is logged, audited and acknowledged, because Stripe
can only react to a non-2xx by retrying the same payload.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal

import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError

from otw.errors import (
    AmbiguousEventError,
    FanoutError,
    InvalidTransitionError,
    NotFoundError,
    PaymentGatewayError,
    PaymentGatewayUnavailable,
    SignatureError,
    ValidationError,
)
from otw.extensions import db
from otw.models.delivery import DeliveryRequest
from otw.models.order import Order
from otw.models.payment_event import PaymentEvent
from otw.services.audit_service import record_audit_event
from otw.services.fulfillment_service import (
    create_order,
    find_delivery_by_session,
    find_order_by_session,
    positive_int,
    transition,
)
from otw.services.loyalty_service import grant_spin
from otw.services.notification_service import has_been_fanned_out, notify_available_drivers

logger = logging.getLogger(__name__)

PAYMENT_FAILED_NOTE = "Payment failed"


@dataclass
class WebhookResult:
    """Outcome of one webhook delivery.

    `warnings` carries non-fatal side-effect failures (fanout, routing) so
    they are visible to the caller instead of silently dropped.
    """

    ok: bool
    status: str
    warnings: list = field(default_factory=list)


def _configure():
    """Set the API key or raise PaymentGatewayUnavailable."""
    api_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not api_key:
        raise PaymentGatewayUnavailable("Payment gateway is not configured")
    stripe.api_key = api_key


def _as_dict(obj):
    """Plain-dict view of a Stripe object (or pass a dict through)."""
    if isinstance(obj, dict):
        return obj
    return json.loads(str(obj))


def _cents(amount):
    return int((amount * 100).to_integral_value())


def _line_items_for_stripe(items):
    currency = current_app.config.get("STRIPE_CURRENCY", "usd")

    return [
        {
            "price_data": {
                "currency": currency,
                "product_data": {"name": item["name"]},
                "unit_amount": _cents(Decimal(item["unit_price"])),
            },
            "quantity": item["quantity"],
        }
        for item in items
    ]


# ──────────────────────────────────────────────
# Checkout Sessions & Refunds
# ──────────────────────────────────────────────

def _create_session(line_items, metadata, success_path, cancel_path,
                    customer_email=None):
    _configure()
    app_base_url = current_app.config["APP_BASE_URL"]

    params = {
        "mode": "payment",
        "line_items": line_items,
        "success_url": (
            f"{app_base_url}{success_path}?session_id={{CHECKOUT_SESSION_ID}}"
        ),
        "cancel_url": f"{app_base_url}{cancel_path}",
        "metadata": metadata,
        # Copied onto the PaymentIntent so payment_failed events can be routed
        "payment_intent_data": {"metadata": metadata},
    }
    if customer_email:
        params["customer_email"] = customer_email

    try:
        return stripe.checkout.Session.create(**params)
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout session creation failed: {e}")
        raise PaymentGatewayError("Failed to create checkout session") from e


def start_order_checkout(order, customer_email=None):
    """Create a Checkout Session for a pending Order.

    Stores the session id on the order (flush only).
    Returns the hosted checkout URL.
    """
    session = _create_session(
        _line_items_for_stripe(order.items),
        metadata={
            "type": "order",
            "order_id": order.id,
            "user_id": order.user_id,
        },
        success_path="/checkout/success",
        cancel_path="/cart",
        customer_email=customer_email,
    )
    order.stripe_session_id = session.id
    db.session.flush()
    logger.info(f"Checkout session {session.id} created for order {order.id}")
    return session.url


def start_delivery_checkout(delivery, customer_email=None):
    """Create a Checkout Session for a pending DeliveryRequest.

    The goods manifest and a "Delivery Fee (<priority>)" line are billed
    together. Returns the hosted checkout URL.
    """
    items = list(delivery.items or [])
    items.append({
        "name": f"Delivery Fee ({delivery.priority})",
        "unit_price": str(delivery.fee),
        "quantity": 1,
    })

    session = _create_session(
        _line_items_for_stripe(items),
        metadata={
            "type": "delivery",
            "delivery_id": delivery.id,
            "user_id": delivery.user_id,
            "priority": delivery.priority,
        },
        success_path=f"/deliveries/{delivery.id}/success",
        cancel_path=f"/deliveries/{delivery.id}/cancel",
        customer_email=customer_email,
    )
    delivery.stripe_session_id = session.id
    db.session.flush()
    logger.info(f"Checkout session {session.id} created for delivery {delivery.id}")
    return session.url


def create_refund(record, actor_user_id=None, amount=None):
    """Ask Stripe to refund a paid order or delivery.

    The status change arrives later through the charge.refunded webhook.
    Returns the Stripe refund id.
    """
    if not record.stripe_payment_intent_id:
        raise ValidationError("This record has no captured payment to refund.")
    if record.status in ("pending_payment", "cancelled", "refunded"):
        raise ValidationError(f"Cannot refund a record in status '{record.status}'.")
    if amount is not None:
        # Stripe takes the partial amount in cents
        amount = positive_int(amount, "amount")

    _configure()
    kind_key = "delivery_id" if isinstance(record, DeliveryRequest) else "order_id"
    params = {
        "payment_intent": record.stripe_payment_intent_id,
        "metadata": {kind_key: record.id},
    }
    if amount is not None:
        params["amount"] = amount

    try:
        refund = stripe.Refund.create(**params)
    except stripe.StripeError as e:
        logger.error(f"Stripe refund failed for {record.id}: {e}")
        raise PaymentGatewayError("Refund request failed") from e

    record_audit_event(f"{record.KIND}.refund_requested", {
        "id": record.id,
        "refund_id": refund.id,
        "amount": amount,
    }, actor_user_id=actor_user_id)
    logger.info(f"Refund {refund.id} requested for {record.KIND} {record.id}")
    return refund.id


def _session_line_items(session_id):
    """Fetch a session's line items as [{name, price, quantity}]."""
    _configure()
    try:
        result = stripe.checkout.Session.list_line_items(session_id, limit=100)
    except stripe.StripeError as e:
        raise PaymentGatewayError(f"Could not load line items for {session_id}") from e

    items = []
    for raw in result.data:
        item = _as_dict(raw)
        quantity = item.get("quantity") or 1
        unit_amount = (item.get("price") or {}).get("unit_amount")
        if unit_amount is None:
            unit_amount = (item.get("amount_total") or 0) // quantity
        items.append({
            "name": item.get("description") or "Item",
            "price": Decimal(unit_amount) / 100,
            "quantity": quantity,
        })
    return items


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify Stripe webhook signature and construct the event.

    Returns the event as a plain dict.
    Raises SignatureError on a missing header or invalid signature.
    """
    if not sig_header:
        raise SignatureError("Missing signature")
    webhook_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    try:
        event = stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except Exception as e:
        raise SignatureError("Invalid signature") from e
    return _as_dict(event)


def handle_webhook_event(event):
    """Process a verified Stripe webhook event.

    Idempotency: checks payment_events before processing. If the event was
    already processed, returns immediately.

    Returns a WebhookResult. ok=False only for unexpected failures, which
    leave the event unrecorded so Stripe's retry gets another attempt.
    """
    event_id = event["id"]
    event_type = event["type"]

    # --- Idempotency check ---
    existing = PaymentEvent.query.filter_by(stripe_event_id=event_id).first()
    if existing:
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return WebhookResult(True, "already_processed")

    logger.info(f"Processing webhook {event_id} ({event_type})")
    warnings = []

    # --- Route to handler ---
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler:
        try:
            handler(event, warnings)
        except AmbiguousEventError as e:
            db.session.rollback()
            logger.error(f"Ambiguous {event_type} event {event_id}: {e.message}")
            record_audit_event("webhook.ambiguous", {
                "event_id": event_id,
                "event_type": event_type,
                "reason": e.message,
            })
            warnings.append(e.message)
        except InvalidTransitionError as e:
            db.session.rollback()
            logger.warning(f"Rejected transition from {event_type} event {event_id}: {e.message}")
            record_audit_event("webhook.transition_rejected", {
                "event_id": event_id,
                "event_type": event_type,
                "reason": e.message,
            })
            warnings.append(e.message)
        except NotFoundError as e:
            db.session.rollback()
            logger.warning(f"{event_type} event {event_id}: {e.message}")
            warnings.append(e.message)
        except Exception as e:
            logger.error(f"Error handling {event_type}: {e}", exc_info=True)
            db.session.rollback()
            return WebhookResult(False, str(e), warnings)
    else:
        logger.info(f"Unhandled event type: {event_type}")

    # --- Record event for idempotency ---
    db.session.add(PaymentEvent(stripe_event_id=event_id, event_type=event_type))
    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent delivery of the same event won the race
        db.session.rollback()
        logger.info(f"Webhook event {event_id} recorded concurrently, skipping")
        return WebhookResult(True, "already_processed", warnings)

    return WebhookResult(True, "processed", warnings)


def _locate_record(metadata, payment_intent_id, event_type):
    """Find the Order or DeliveryRequest an event refers to.

    Routing metadata wins; the stored payment intent is the fallback.
    Raises NotFoundError if the referenced record is gone and
    AmbiguousEventError if there is nothing to route by.
    """
    delivery_id = metadata.get("delivery_id")
    order_id = metadata.get("order_id")

    if delivery_id:
        record = db.session.get(DeliveryRequest, delivery_id)
        if record is None:
            raise NotFoundError(f"{event_type}: no delivery {delivery_id}")
        return record

    if order_id:
        record = db.session.get(Order, order_id)
        if record is None:
            raise NotFoundError(f"{event_type}: no order {order_id}")
        return record

    if payment_intent_id:
        record = (
            DeliveryRequest.query.filter_by(stripe_payment_intent_id=payment_intent_id).first()
            or Order.query.filter_by(stripe_payment_intent_id=payment_intent_id).first()
        )
        if record is not None:
            return record

    raise AmbiguousEventError(
        f"{event_type} carries no delivery_id/order_id metadata and no record "
        f"matches payment intent {payment_intent_id}"
    )


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def _handle_checkout_completed(event, warnings):
    """Handle checkout.session.completed.

    Delivery sessions (metadata.type == "delivery") mark the delivery paid
    and fan out to drivers. Anything else is a menu order: mark it paid
    (creating it from the session's line items if we never stored it) and
    grant the payer a loyalty spin.
    """
    session = event["data"]["object"]
    metadata = session.get("metadata") or {}

    if metadata.get("type") == "delivery":
        _complete_delivery_checkout(session, metadata, warnings)
    else:
        _complete_order_checkout(session, metadata)


def _cancelled_by_failed_payment(record):
    """A decline cancelled this record; a later success in the same session wins."""
    return record.status == "cancelled" and (record.notes or "").startswith(PAYMENT_FAILED_NOTE)


def _mark_paid(record, payment_intent_id):
    """Move `record` to paid. Returns True if the status changed."""
    if _cancelled_by_failed_payment(record):
        logger.info(f"{record.KIND} {record.id} paid after an earlier decline, reinstating")
        return transition(
            record, "paid",
            notes="Payment succeeded after an earlier decline",
            force=True,
            stripe_payment_intent_id=payment_intent_id,
        )
    return transition(record, "paid", stripe_payment_intent_id=payment_intent_id)


def _complete_delivery_checkout(session, metadata, warnings):
    session_id = session.get("id")
    delivery = None
    if metadata.get("delivery_id"):
        delivery = db.session.get(DeliveryRequest, metadata["delivery_id"])
    if delivery is None:
        delivery = find_delivery_by_session(session_id)
    if delivery is None:
        raise NotFoundError(f"No delivery found for session {session_id}")

    changed = _mark_paid(delivery, session.get("payment_intent"))
    # The payment state is durable before any best-effort side effect runs
    db.session.commit()

    # A redelivered event still owes the fanout if no driver heard about it
    if not changed and (delivery.status != "paid" or has_been_fanned_out(delivery)):
        return

    try:
        notify_available_drivers(delivery)
    except FanoutError as e:
        warnings.append(e.message)
        record_audit_event("delivery.fanout_failed", {
            "delivery_id": delivery.id,
            "reason": e.message,
        })


def _complete_order_checkout(session, metadata):
    session_id = session.get("id")
    order = find_order_by_session(session_id)
    if order is None and metadata.get("order_id"):
        order = db.session.get(Order, metadata["order_id"])

    if order is None:
        user_id = (
            metadata.get("user_id")
            or metadata.get("userId")
            or session.get("client_reference_id")
        )
        if not user_id:
            raise AmbiguousEventError(
                f"checkout.session.completed for unknown session {session_id} has no user_id"
            )
        order = create_order(
            user_id,
            _session_line_items(session_id),
            stripe_session_id=session_id,
        )
        logger.info(f"Created order {order.id} from session {session_id}")

    changed = _mark_paid(order, session.get("payment_intent"))
    if changed:
        grant_spin(order.user_id)


def _handle_payment_failed(event, warnings):
    """Handle payment_intent.payment_failed.

    Only a record still awaiting payment is cancelled. A later state means
    this event arrived out of order (e.g. a retry already succeeded).
    """
    intent = event["data"]["object"]
    record = _locate_record(
        intent.get("metadata") or {}, intent.get("id"), event["type"]
    )

    reason = (intent.get("last_payment_error") or {}).get("message")
    if record.status != "pending_payment":
        logger.info(
            f"payment_failed for {record.KIND} {record.id} ignored, "
            f"status is already {record.status}"
        )
        return

    logger.warning(f"Payment failed for {record.KIND} {record.id}: {reason or 'no reason given'}")
    notes = f"{PAYMENT_FAILED_NOTE}: {reason}" if reason else PAYMENT_FAILED_NOTE
    transition(record, "cancelled", notes=notes)


def _handle_charge_refunded(event, warnings):
    """Handle charge.refunded.

    A full refund moves the record to refunded whatever its fulfillment
    state; the money has already moved at the gateway.
    """
    charge = event["data"]["object"]
    record = _locate_record(
        charge.get("metadata") or {}, charge.get("payment_intent"), event["type"]
    )

    if charge.get("refunded") is False:
        logger.info(f"Partial refund on {record.KIND} {record.id}, status unchanged")
        record_audit_event(f"{record.KIND}.partial_refund", {
            "id": record.id,
            "amount_refunded": charge.get("amount_refunded"),
        })
        return

    transition(record, "refunded", force=True)


WEBHOOK_HANDLERS = {
    "checkout.session.completed": _handle_checkout_completed,
    "payment_intent.payment_failed": _handle_payment_failed,
    "charge.refunded": _handle_charge_refunded,
}
