"""Drivers blueprint — /drivers/*

Route Map:
  GET  /drivers/notifications            — Calling driver's notifications
  POST /drivers/notifications/<id>/read  — Mark one read
"""

from flask import Blueprint, g, jsonify, request

from otw.decorators import driver_required
from otw.extensions import db
from otw.services import notification_service

drivers_bp = Blueprint("drivers", __name__, url_prefix="/drivers")


@drivers_bp.route("/notifications", methods=["GET"])
@driver_required
def notifications():
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    items = notification_service.list_notifications(g.driver, unread_only=unread_only)
    return jsonify({
        "notifications": [n.to_dict() for n in items],
        "count": len(items),
    }), 200


@drivers_bp.route("/notifications/<notification_id>/read", methods=["POST"])
@driver_required
def mark_read(notification_id):
    notification = notification_service.mark_read(g.driver, notification_id)
    db.session.commit()
    return jsonify({"notification": notification.to_dict()}), 200
