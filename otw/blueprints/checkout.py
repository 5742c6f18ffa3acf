"""Checkout blueprint — /checkout

Turns a menu cart into a pending Order plus a Stripe Checkout Session.
The order is marked paid later by the checkout.session.completed webhook.

Route Map:
  POST /checkout  — Create order + checkout session
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from otw.errors import ValidationError
from otw.extensions import db
from otw.services import stripe_service
from otw.services.fulfillment_service import build_cart, create_order

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__)


@checkout_bp.route("/checkout", methods=["POST"])
def create_checkout():
    """Body: {cartItems: [{id, quantity}], userId}.

    An authenticated caller is always charged as themselves; userId is only
    read for anonymous carts.
    """
    data = request.get_json(silent=True) or {}

    if current_user.is_authenticated:
        user_id = current_user.id
        customer_email = current_user.email
    else:
        user_id = data.get("userId")
        customer_email = None
    if not user_id:
        raise ValidationError("userId is required.")

    items = build_cart(data.get("cartItems"))
    order = create_order(user_id, items)

    try:
        checkout_url = stripe_service.start_order_checkout(
            order, customer_email=customer_email
        )
    except Exception:
        db.session.rollback()
        raise
    db.session.commit()

    logger.info(f"Checkout started for order {order.id} (${order.total})")
    return jsonify({
        "checkoutUrl": checkout_url,
        "sessionId": order.stripe_session_id,
        "orderId": order.id,
    }), 200
