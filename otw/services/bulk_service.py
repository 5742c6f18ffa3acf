"""Bulk menu mutations: chunked update/delete with per-item accounting.

Each chunk of up to CHUNK_SIZE items is verified, applied and committed as
one unit. A commit failure rolls back that chunk only; earlier chunks stay
committed. Every input item ends up in exactly one of `success` / `failed`.
"""

import logging
import re
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import SQLAlchemyError

from otw.errors import AllOperationsFailedError, ValidationError
from otw.extensions import db
from otw.models.menu_item import MenuItem
from otw.services.audit_service import record_audit_event

logger = logging.getLogger(__name__)

OPERATIONS = ("update", "delete")
MAX_ITEMS = 1000
CHUNK_SIZE = 500

URL_RE = re.compile(r"^https?://\S+$")


def _check_name(value):
    if not isinstance(value, str) or not value.strip():
        return "name must be a non-empty string"
    return None


def _check_price(value):
    if isinstance(value, bool):
        return "price must be a positive number"
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return "price must be a positive number"
    if not price.is_finite() or price <= 0:
        return "price must be a positive number"
    return None


def _check_string(field):
    def check(value):
        if not isinstance(value, str):
            return f"{field} must be a string"
        return None
    return check


def _check_image(value):
    if not isinstance(value, str) or not URL_RE.match(value):
        return "image must be a valid URL"
    return None


def _check_choice(field, choices):
    def check(value):
        if value not in choices:
            return f"{field} must be one of: {', '.join(choices)}"
        return None
    return check


def _check_bool(value):
    if not isinstance(value, bool):
        return "is_available must be a boolean"
    return None


# Partial schema: any subset of these keys, nothing else
MENU_ITEM_FIELDS = {
    "name": _check_name,
    "price": _check_price,
    "description": _check_string("description"),
    "image": _check_image,
    "type": _check_choice("type", MenuItem.TYPES),
    "source": _check_choice("source", MenuItem.SOURCES),
    "category": _check_string("category"),
    "is_available": _check_bool,
}


def validate_menu_item_update(data):
    """Validate a partial MenuItem update. Returns an error string or None."""
    if not isinstance(data, dict) or not data:
        return "Data field is required for update operations"

    unknown = sorted(set(data) - set(MENU_ITEM_FIELDS))
    if unknown:
        return f"Unknown field(s): {', '.join(unknown)}"

    errors = [
        message
        for field, value in data.items()
        for message in [MENU_ITEM_FIELDS[field](value)]
        if message
    ]
    if errors:
        return "Validation failed: " + "; ".join(errors)
    return None


def _commit_chunk():
    db.session.commit()


def _process_chunk(operation, chunk, actor_user_id):
    """Verify, apply and commit one chunk. Returns (success, failed)."""
    success = []
    failed = []
    verified = []

    for item in chunk:
        item_id = item["id"]
        menu_item = db.session.get(MenuItem, item_id)
        if menu_item is None:
            failed.append({"id": item_id, "error": f"Menu item {item_id} not found"})
            continue

        if operation == "update":
            data = item.get("data")
            error = validate_menu_item_update(data)
            if error:
                failed.append({"id": item_id, "error": error})
                continue
            verified.append((menu_item, item_id, data))
        else:
            verified.append((menu_item, item_id, None))

    if not verified:
        return success, failed

    for menu_item, item_id, data in verified:
        if operation == "update":
            for field, value in data.items():
                setattr(menu_item, field, value)
            menu_item.updated_by = actor_user_id
            success.append({"id": item_id, "data": data})
        else:
            db.session.delete(menu_item)
            success.append({"id": item_id})

    try:
        _commit_chunk()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Bulk {operation} chunk commit failed: {e}")
        failed.extend({"id": entry["id"], "error": "Batch commit failed"} for entry in success)
        success = []

    return success, failed


def apply_bulk_operation(operation, items, actor_user_id=None, chunk_size=CHUNK_SIZE):
    """Apply `operation` ("update" | "delete") to a list of menu items.

    Args:
        operation: "update" or "delete".
        items: [{"id": ..., "data": {...}}], 1..MAX_ITEMS entries.
        actor_user_id: Admin performing the change, stamped on updates.
        chunk_size: Items per commit.

    Returns:
        {"success": [{id, data?}], "failed": [{id, error}]}

    Raises:
        ValidationError: bad operation, empty/oversized list, or an item without an id.
        AllOperationsFailedError: nothing succeeded and something failed.
    """
    if operation not in OPERATIONS:
        raise ValidationError(f"operation must be one of: {', '.join(OPERATIONS)}")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    if len(items) > MAX_ITEMS:
        raise ValidationError(f"A maximum of {MAX_ITEMS} items can be processed at once")
    for index, item in enumerate(items):
        if not isinstance(item, dict) or not item.get("id"):
            raise ValidationError(f"items[{index}] is missing an id")

    success = []
    failed = []
    for start in range(0, len(items), chunk_size):
        chunk_success, chunk_failed = _process_chunk(
            operation, items[start:start + chunk_size], actor_user_id
        )
        success.extend(chunk_success)
        failed.extend(chunk_failed)

    logger.info(
        f"Bulk {operation}: {len(success)} succeeded, {len(failed)} failed "
        f"({len(items)} requested)"
    )

    if not success and failed:
        raise AllOperationsFailedError(failed)

    record_audit_event("menu.bulk_" + operation, {
        "requested": len(items),
        "succeeded": len(success),
        "failed": len(failed),
    }, actor_user_id=actor_user_id)
    db.session.commit()

    return {"success": success, "failed": failed}
