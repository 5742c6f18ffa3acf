"""Admin blueprint — /admin/*

All routes protected by @role_required("admin").

Route Map:
  POST /admin/menu/bulk  — Bulk update/delete menu items
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from otw.decorators import role_required
from otw.services.bulk_service import apply_bulk_operation

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


# ══════════════════════════════════════════════
#  MENU
# ══════════════════════════════════════════════

@admin_bp.route("/menu/bulk", methods=["POST"])
@role_required("admin")
def bulk_menu():
    """Body: {operation: "update"|"delete", items: [{id, data?}]}."""
    data = request.get_json(silent=True) or {}
    operation = data.get("operation")

    results = apply_bulk_operation(
        operation, data.get("items"), actor_user_id=current_user.id
    )

    verb = "updated" if operation == "update" else "deleted"
    return jsonify({
        "message": (
            f"{len(results['success'])} item(s) {verb}, "
            f"{len(results['failed'])} failed"
        ),
        "results": {
            "successCount": len(results["success"]),
            "failureCount": len(results["failed"]),
            "successful": results["success"],
            "failed": results["failed"],
        },
    }), 200
