"""Tests for screenshot order intake and the operator workflow.

Covers:
- Multipart intake: stored file, sanitized text, submitter metadata
- Missing fields / non-image uploads rejected
- Supabase upload when configured
- Operator listing, lookup and status updates with workflow flags
- Unknown status and illegal moves rejected
"""

import io
import os
import re
from unittest.mock import MagicMock, patch

import pytest

from otw.extensions import db
from otw.models.screenshot_order import ScreenshotOrder
from otw.services.screenshot_service import generate_order_code

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def uploads_dir(app, tmp_path, monkeypatch):
    monkeypatch.setattr(app, "instance_path", str(tmp_path))
    return tmp_path


def _form(**overrides):
    form = {
        "customerName": "Jane Customer",
        "customerPhone": "5125550100",
        "customerEmail": "jane@example.com",
        "restaurantName": "Taco Joint",
        "pickupLocation": "5th and Main",
        "estimatedTotal": "23.50",
        "specialInstructions": "Extra salsa <script>alert(1)</script>",
        "screenshot": (io.BytesIO(PNG_BYTES), "cart.png", "image/png"),
    }
    form.update(overrides)
    return {k: v for k, v in form.items() if v is not None}


def _submit(client, **overrides):
    return client.post(
        "/orders/screenshot",
        data=_form(**overrides),
        content_type="multipart/form-data",
        headers={"User-Agent": "pytest-browser", "X-Forwarded-For": "203.0.113.9"},
    )


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


class TestIntake:

    def test_submit_creates_pending_review_order(self, client, uploads_dir):
        resp = _submit(client)

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert re.match(r"^SS-\d{13}-\d{3}$", data["orderId"])

        order = ScreenshotOrder.query.filter_by(order_code=data["orderId"]).one()
        assert order.status == "pending_review"
        assert order.review_required is True
        assert order.confirmation_called is False
        assert order.special_instructions == "Extra salsa alert(1)"
        assert order.user_agent == "pytest-browser"
        assert order.ip_address == "203.0.113.9"
        assert order.original_filename == "cart.png"
        assert order.screenshot_url == f"/uploads/screenshots/{data['orderId']}.png"
        assert os.path.exists(uploads_dir / "uploads" / "screenshots" / f"{data['orderId']}.png")

    def test_missing_field_is_400(self, client, uploads_dir):
        resp = _submit(client, restaurantName=None)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Missing required fields"
        assert ScreenshotOrder.query.count() == 0

    def test_missing_file_is_400(self, client, uploads_dir):
        resp = _submit(client, screenshot=None)
        assert resp.status_code == 400

    def test_non_image_is_400(self, client, uploads_dir):
        resp = _submit(client, screenshot=(io.BytesIO(b"%PDF-1.4"), "cart.pdf", "application/pdf"))
        assert resp.status_code == 400
        assert "image" in resp.get_json()["error"]

    def test_bad_total_is_400(self, client, uploads_dir):
        resp = _submit(client, estimatedTotal="lots")
        assert resp.status_code == 400

    @patch("otw.services.storage_service.requests.post")
    def test_uploads_to_supabase_when_configured(self, mock_post, app, client):
        mock_post.return_value = MagicMock(status_code=200)
        app.config["SUPABASE_URL"] = "https://xyz.supabase.co"
        app.config["SUPABASE_SERVICE_KEY"] = "service-key"
        try:
            resp = _submit(client)
        finally:
            app.config["SUPABASE_URL"] = None
            app.config["SUPABASE_SERVICE_KEY"] = None

        code = resp.get_json()["orderId"]
        order = ScreenshotOrder.query.filter_by(order_code=code).one()
        assert order.screenshot_url == (
            f"https://xyz.supabase.co/storage/v1/object/public/screenshots/screenshots/{code}.png"
        )
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer service-key"

    def test_order_code_format(self):
        assert re.match(r"^SS-\d{13}-\d{3}$", generate_order_code())


class TestOperatorWorkflow:

    @pytest.fixture
    def order_code(self, client, uploads_dir):
        return _submit(client).get_json()["orderId"]

    def test_customer_cannot_list(self, client, seed_data):
        resp = client.get("/orders/screenshot", headers=_auth(seed_data["customer_token"]))
        assert resp.status_code == 403

    def test_list_and_lookup(self, client, seed_data, order_code):
        resp = client.get("/orders/screenshot?status=pending_review",
                          headers=_auth(seed_data["operator_token"]))
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1

        resp = client.get(f"/orders/screenshot?orderId={order_code}",
                          headers=_auth(seed_data["operator_token"]))
        assert resp.get_json()["order"]["orderId"] == order_code

        resp = client.get("/orders/screenshot?orderId=SS-0-000",
                          headers=_auth(seed_data["operator_token"]))
        assert resp.status_code == 404

    def test_confirm_sets_confirmation_called(self, client, seed_data, order_code):
        resp = client.put("/orders/screenshot", json={
            "orderId": order_code,
            "status": "confirmed",
            "notes": "Called, customer confirmed",
            "adminId": "ops-7",
        }, headers=_auth(seed_data["operator_token"]))

        assert resp.status_code == 200
        order = ScreenshotOrder.query.filter_by(order_code=order_code).one()
        assert order.status == "confirmed"
        assert order.confirmation_called is True
        assert order.admin_notes == "Called, customer confirmed"
        assert order.last_updated_by == "ops-7"
        assert resp.get_json()["order"]["workflow"]["confirmationCalled"] is True

    def test_unknown_status_is_400(self, client, seed_data, order_code):
        resp = client.put("/orders/screenshot", json={
            "orderId": order_code,
            "status": "teleported",
        }, headers=_auth(seed_data["operator_token"]))

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_TRANSITION"
        order = ScreenshotOrder.query.filter_by(order_code=order_code).one()
        assert order.status == "pending_review"

    def test_skipping_ahead_needs_admin_force(self, client, seed_data, order_code):
        body = {"orderId": order_code, "status": "delivered", "force": True}

        resp = client.put("/orders/screenshot", json=body,
                          headers=_auth(seed_data["operator_token"]))
        assert resp.status_code == 400

        resp = client.put("/orders/screenshot", json=body,
                          headers=_auth(seed_data["admin_token"]))
        assert resp.status_code == 200
        order = ScreenshotOrder.query.filter_by(order_code=order_code).one()
        assert order.delivered is True

    def test_missing_order_id_is_400(self, client, seed_data):
        resp = client.put("/orders/screenshot", json={"status": "confirmed"},
                          headers=_auth(seed_data["operator_token"]))
        assert resp.status_code == 400
