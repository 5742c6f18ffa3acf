"""Deliveries blueprint — /deliveries/*

Route Map:
  POST /deliveries/estimate        — Price a trip (no record created)
  POST /deliveries                 — Create delivery + checkout session
  GET  /deliveries/<id>            — Owner (or operator) view
  PUT  /deliveries/<id>/status     — Operator status change
  POST /deliveries/<id>/accept     — Driver accepts a paid delivery
  POST /deliveries/<id>/refund     — Admin refund via Stripe
"""

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from otw.decorators import driver_required, login_required, role_required
from otw.errors import AuthorizationError, ValidationError
from otw.extensions import db
from otw.services import stripe_service
from otw.services.fee_service import estimate_delivery, estimate_to_dict
from otw.services.fulfillment_service import (
    assign_driver,
    create_delivery_request,
    get_record,
    transition,
    validate_address,
)

logger = logging.getLogger(__name__)

deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/deliveries")


def _address_arg(value, field):
    """Accept either a free-text address or a structured one."""
    if isinstance(value, str):
        if not value.strip():
            raise ValidationError(f"{field} is required.")
        return value.strip()
    return validate_address(value, field)


@deliveries_bp.route("/estimate", methods=["POST"])
def estimate():
    """Body: {pickupAddress, dropoffAddress, priority}."""
    data = request.get_json(silent=True) or {}
    result = estimate_delivery(
        _address_arg(data.get("pickupAddress"), "pickupAddress"),
        _address_arg(data.get("dropoffAddress"), "dropoffAddress"),
        data.get("priority"),
    )
    return jsonify(estimate_to_dict(result)), 200


@deliveries_bp.route("", methods=["POST"])
@login_required
def create_delivery():
    """Create a pending delivery and start its Stripe checkout."""
    data = request.get_json(silent=True) or {}

    delivery = create_delivery_request(current_user.id, data)
    try:
        checkout_url = stripe_service.start_delivery_checkout(
            delivery, customer_email=current_user.email
        )
    except Exception:
        db.session.rollback()
        raise
    db.session.commit()

    return jsonify({
        "deliveryId": delivery.id,
        "checkoutUrl": checkout_url,
        "estimate": delivery.estimate,
        "total": float(delivery.total),
    }), 201


@deliveries_bp.route("/<delivery_id>", methods=["GET"])
@login_required
def get_delivery(delivery_id):
    delivery = get_record("delivery", delivery_id)
    if delivery.user_id != current_user.id and not current_user.is_operator:
        # Drivers may see the delivery they hold
        driver = delivery.driver
        if driver is None or driver.user_id != current_user.id:
            raise AuthorizationError("You do not have access to this delivery")
    return jsonify({"delivery": delivery.to_dict()}), 200


@deliveries_bp.route("/<delivery_id>/status", methods=["PUT"])
@role_required("operator")
def update_status(delivery_id):
    """Body: {status, notes?, force?}. force is honoured for admins only."""
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        raise ValidationError("status is required.")

    force = bool(data.get("force")) and current_user.is_admin
    delivery = get_record("delivery", delivery_id)
    changed = transition(
        delivery, status,
        actor_user_id=current_user.id,
        notes=data.get("notes"),
        force=force,
    )
    db.session.commit()

    return jsonify({
        "success": True,
        "changed": changed,
        "delivery": delivery.to_dict(),
    }), 200


@deliveries_bp.route("/<delivery_id>/accept", methods=["POST"])
@driver_required
def accept(delivery_id):
    delivery = get_record("delivery", delivery_id)
    changed = assign_driver(delivery, g.driver, actor_user_id=current_user.id)
    db.session.commit()

    if changed:
        logger.info(f"Driver {g.driver.id} accepted delivery {delivery.id}")
    return jsonify({"success": True, "delivery": delivery.to_dict()}), 200


@deliveries_bp.route("/<delivery_id>/refund", methods=["POST"])
@role_required("admin")
def refund(delivery_id):
    """Issue a refund. The status change arrives through the webhook."""
    data = request.get_json(silent=True) or {}
    delivery = get_record("delivery", delivery_id)
    refund_id = stripe_service.create_refund(
        delivery, actor_user_id=current_user.id, amount=data.get("amount")
    )
    db.session.commit()
    return jsonify({"success": True, "refundId": refund_id}), 202
