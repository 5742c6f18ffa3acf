"""Orders blueprint — /orders/*

Menu order refunds and the screenshot order workflow.

Route Map:
  GET  /orders/<id>             — Owner (or operator) view of a menu order
  POST /orders/<id>/refund      — Admin refund via Stripe
  POST /orders/screenshot       — Public screenshot intake (multipart)
  GET  /orders/screenshot       — Operator listing / lookup
  PUT  /orders/screenshot       — Operator status update
"""

import logging

from flask import Blueprint, jsonify, request
from flask_limiter.util import get_remote_address
from flask_login import current_user

from otw.decorators import login_required, role_required
from otw.errors import AuthorizationError
from otw.extensions import db, limiter
from otw.services import screenshot_service, stripe_service
from otw.services.fulfillment_service import get_record

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


# ══════════════════════════════════════════════
#  SCREENSHOT ORDERS
# ══════════════════════════════════════════════

@orders_bp.route("/screenshot", methods=["POST"])
@limiter.limit("10 per hour")
def submit_screenshot():
    """Multipart form: customer/restaurant fields + a `screenshot` image."""
    metadata = {
        "user_agent": request.headers.get("User-Agent", ""),
        "ip_address": (
            request.headers.get("X-Forwarded-For")
            or request.headers.get("X-Real-IP")
            or get_remote_address()
            or "unknown"
        ),
    }
    order = screenshot_service.create_screenshot_order(
        request.form, request.files.get("screenshot"), metadata
    )
    db.session.commit()

    return jsonify({
        "success": True,
        "orderId": order.order_code,
        "message": "Screenshot order submitted successfully",
    }), 200


@orders_bp.route("/screenshot", methods=["GET"])
@role_required("operator")
def list_screenshots():
    order_id = request.args.get("orderId")
    if order_id:
        order = screenshot_service.find_screenshot_order(order_id)
        return jsonify({"order": order.to_dict()}), 200

    orders = screenshot_service.list_screenshot_orders(
        status=request.args.get("status"),
        limit=request.args.get("limit", screenshot_service.DEFAULT_LIST_LIMIT),
    )
    return jsonify({
        "orders": [o.to_dict() for o in orders],
        "count": len(orders),
    }), 200


@orders_bp.route("/screenshot", methods=["PUT"])
@role_required("operator")
def update_screenshot():
    """Body: {orderId, status, notes?, adminId?, force?}."""
    data = request.get_json(silent=True) or {}
    order, changed = screenshot_service.update_screenshot_status(
        data.get("orderId"),
        data.get("status"),
        notes=data.get("notes"),
        admin_id=data.get("adminId") or current_user.id,
        actor_user_id=current_user.id,
        force=bool(data.get("force")) and current_user.is_admin,
    )
    db.session.commit()

    return jsonify({
        "success": True,
        "changed": changed,
        "message": "Order status updated successfully",
        "order": order.to_dict(),
    }), 200


# ══════════════════════════════════════════════
#  MENU ORDERS
# ══════════════════════════════════════════════

@orders_bp.route("/<order_id>", methods=["GET"])
@login_required
def get_order(order_id):
    order = get_record("order", order_id)
    if order.user_id != current_user.id and not current_user.is_operator:
        raise AuthorizationError("You do not have access to this order")
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.route("/<order_id>/refund", methods=["POST"])
@role_required("admin")
def refund(order_id):
    """Issue a refund. The status change arrives through the webhook."""
    data = request.get_json(silent=True) or {}
    order = get_record("order", order_id)
    refund_id = stripe_service.create_refund(
        order, actor_user_id=current_user.id, amount=data.get("amount")
    )
    db.session.commit()
    return jsonify({"success": True, "refundId": refund_id}), 202
