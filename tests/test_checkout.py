"""Tests for menu checkout and order refunds.

Covers:
- POST /checkout creates a pending order and a Stripe session
- Empty cart / invalid item / missing user -> 400
- Stripe not configured -> 503, Stripe failure -> 502, nothing persisted
- POST /orders/<id>/refund (admin only)
- GET /orders/<id> ownership
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import stripe

from otw.extensions import db
from otw.models.audit import AuditEvent
from otw.models.order import Order


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def _session(session_id="cs_test_1"):
    return MagicMock(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")


class TestCheckout:

    @patch("otw.services.stripe_service.stripe.checkout.Session.create")
    def test_creates_order_and_session(self, mock_create, client, seed_data):
        mock_create.return_value = _session()

        resp = client.post("/checkout", json={
            "cartItems": [
                {"id": seed_data["burger_id"], "quantity": 2},
                {"id": seed_data["fries_id"], "quantity": 1},
            ],
            "userId": "guest-1",
        })

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["sessionId"] == "cs_test_1"
        assert data["checkoutUrl"].endswith("cs_test_1")

        order = db.session.get(Order, data["orderId"])
        assert order.status == "pending_payment"
        assert order.user_id == "guest-1"
        assert order.total == Decimal("32.48")
        assert order.stripe_session_id == "cs_test_1"

        kwargs = mock_create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["metadata"] == {"type": "order", "order_id": order.id, "user_id": "guest-1"}
        assert kwargs["payment_intent_data"]["metadata"]["order_id"] == order.id
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 1299
        assert kwargs["line_items"][0]["quantity"] == 2
        assert kwargs["success_url"].startswith("http://localhost:5000/checkout/success")

    @patch("otw.services.stripe_service.stripe.checkout.Session.create")
    def test_authenticated_user_charged_as_self(self, mock_create, client, seed_data):
        mock_create.return_value = _session("cs_auth")
        resp = client.post("/checkout", json={
            "cartItems": [{"id": seed_data["burger_id"], "quantity": 1}],
            "userId": "someone-else",
        }, headers=_auth(seed_data["customer_token"]))

        order = db.session.get(Order, resp.get_json()["orderId"])
        assert order.user_id == seed_data["customer_id"]
        assert mock_create.call_args.kwargs["customer_email"] == "jane@example.com"

    def test_empty_cart_is_400(self, client):
        resp = client.post("/checkout", json={"cartItems": [], "userId": "guest-1"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Cart is empty."

    def test_invalid_item_is_400(self, client, seed_data):
        resp = client.post("/checkout", json={
            "cartItems": [{"id": "bogus", "quantity": 1}],
            "userId": "guest-1",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid item: bogus"

    def test_missing_user_is_400(self, client, seed_data):
        resp = client.post("/checkout", json={
            "cartItems": [{"id": seed_data["burger_id"], "quantity": 1}],
        })
        assert resp.status_code == 400

    def test_stripe_unconfigured_is_503(self, app, client, seed_data):
        app.config["STRIPE_SECRET_KEY"] = None
        try:
            resp = client.post("/checkout", json={
                "cartItems": [{"id": seed_data["burger_id"], "quantity": 1}],
                "userId": "guest-1",
            })
        finally:
            app.config["STRIPE_SECRET_KEY"] = "sk_test_fake"

        assert resp.status_code == 503
        assert resp.get_json()["code"] == "PAYMENT_GATEWAY_UNAVAILABLE"
        assert Order.query.count() == 0

    @patch("otw.services.stripe_service.stripe.checkout.Session.create")
    def test_stripe_error_is_502(self, mock_create, client, seed_data):
        mock_create.side_effect = stripe.StripeError("card network down")
        resp = client.post("/checkout", json={
            "cartItems": [{"id": seed_data["burger_id"], "quantity": 1}],
            "userId": "guest-1",
        })
        assert resp.status_code == 502
        assert Order.query.count() == 0


class TestOrderRefund:

    @patch("otw.services.stripe_service.stripe.Refund.create")
    def test_admin_refund(self, mock_refund, client, seed_data, make_order):
        mock_refund.return_value = MagicMock(id="re_123")
        order = make_order(status="paid", stripe_payment_intent_id="pi_paid")

        resp = client.post(f"/orders/{order.id}/refund", headers=_auth(seed_data["admin_token"]))

        assert resp.status_code == 202
        assert resp.get_json()["refundId"] == "re_123"
        mock_refund.assert_called_once_with(
            payment_intent="pi_paid", metadata={"order_id": order.id}
        )
        # Status follows later via charge.refunded
        assert db.session.get(Order, order.id).status == "paid"
        assert AuditEvent.query.filter_by(action="order.refund_requested").count() == 1

    @patch("otw.services.stripe_service.stripe.Refund.create")
    def test_negative_amount_is_400(self, mock_refund, client, seed_data, make_order):
        order = make_order(status="paid", stripe_payment_intent_id="pi_paid")

        resp = client.post(f"/orders/{order.id}/refund", json={"amount": -5},
                           headers=_auth(seed_data["admin_token"]))

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"
        mock_refund.assert_not_called()

    def test_operator_cannot_refund(self, client, seed_data, make_order):
        order = make_order(status="paid", stripe_payment_intent_id="pi_paid")
        resp = client.post(f"/orders/{order.id}/refund", headers=_auth(seed_data["operator_token"]))
        assert resp.status_code == 403

    def test_unpaid_order_cannot_be_refunded(self, client, seed_data, make_order):
        order = make_order(status="pending_payment")
        resp = client.post(f"/orders/{order.id}/refund", headers=_auth(seed_data["admin_token"]))
        assert resp.status_code == 400


class TestGetOrder:

    def test_owner_can_read(self, client, seed_data, make_order):
        order = make_order(user_id=seed_data["customer_id"])
        resp = client.get(f"/orders/{order.id}", headers=_auth(seed_data["customer_token"]))
        assert resp.status_code == 200
        assert resp.get_json()["order"]["id"] == order.id

    def test_stranger_forbidden(self, client, seed_data, make_order):
        order = make_order(user_id="someone-else")
        resp = client.get(f"/orders/{order.id}", headers=_auth(seed_data["customer_token"]))
        assert resp.status_code == 403

    def test_operator_can_read_any(self, client, seed_data, make_order):
        order = make_order(user_id="someone-else")
        resp = client.get(f"/orders/{order.id}", headers=_auth(seed_data["operator_token"]))
        assert resp.status_code == 200
