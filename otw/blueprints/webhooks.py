"""Webhooks blueprint — /webhooks/payment

Receives Stripe webhook events.
Raw body is required for signature verification.
"""

import logging

from flask import Blueprint, jsonify, request

from otw.errors import SignatureError
from otw.services.stripe_service import handle_webhook_event, verify_webhook_signature

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.route("/payment", methods=["POST"])
def payment_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via payment_events table)
    4. Return 200 to acknowledge receipt, 500 so Stripe retries a failure
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature") or request.headers.get("signature")

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(payload, sig_header)
    except SignatureError as e:
        logger.warning(f"Webhook signature verification failed: {e.__cause__ or e.message}")
        raise

    # --- Process event (idempotent) ---
    result = handle_webhook_event(event)

    if not result.ok:
        logger.error(f"Webhook processing failed: {result.status}")
        return jsonify({
            "received": False,
            "error": "Webhook processing failed",
            "code": "INTERNAL_ERROR",
        }), 500

    for warning in result.warnings:
        logger.warning(f"Webhook {event['id']}: {warning}")

    return jsonify({
        "received": True,
        "status": result.status,
        "warnings": result.warnings,
    }), 200
