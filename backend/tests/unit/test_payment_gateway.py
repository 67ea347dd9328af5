"""
Unit tests for the Razorpay gateway client.
"""

import base64
import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest
import respx

from core.exceptions import PaymentGatewayError
from services.payment_gateway import RazorpayGateway

BASE = "https://api.razorpay.test/v1"


@pytest.fixture
def gateway():
    return RazorpayGateway(key_id="rzp_key", key_secret="rzp_secret", base_url=BASE, currency="INR")


def _sign(order_id, payment_id, secret="rzp_secret"):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


class TestVerifyPayment:

    def test_valid_signature(self, gateway):
        assert gateway.verify_payment("pay_1", "order_1", _sign("order_1", "pay_1"))

    def test_signature_over_swapped_ids_is_rejected(self, gateway):
        assert not gateway.verify_payment("pay_1", "order_1", _sign("pay_1", "order_1"))

    def test_wrong_secret_is_rejected(self, gateway):
        assert not gateway.verify_payment("pay_1", "order_1", _sign("order_1", "pay_1", secret="other"))

    def test_missing_fields_are_rejected(self, gateway):
        assert not gateway.verify_payment("", "order_1", "sig")

    def test_unconfigured_secret_never_verifies(self):
        assert not RazorpayGateway(key_id="k", key_secret="", base_url=BASE).verify_payment("p", "o", "s")


class TestCreateOrder:

    def test_sends_amount_in_paise_with_basic_auth(self, gateway):
        with respx.mock(base_url=BASE) as m:
            route = m.post("/orders").respond(200, json={"id": "order_abc", "status": "created"})

            order_id = gateway.create_order(Decimal("590.00"), "rcpt_1", notes={"service_id": "svc"})

        assert order_id == "order_abc"
        request = route.calls.last.request
        body = json.loads(request.content)
        assert body["amount"] == 59000
        assert body["currency"] == "INR"
        assert body["receipt"] == "rcpt_1"
        expected_auth = base64.b64encode(b"rzp_key:rzp_secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected_auth}"

    def test_gateway_rejection_raises(self, gateway):
        with respx.mock(base_url=BASE) as m:
            m.post("/orders").respond(400, json={"error": {"description": "bad amount"}})

            with pytest.raises(PaymentGatewayError):
                gateway.create_order(Decimal("1"), "rcpt_1")

    def test_network_failure_raises(self, gateway):
        with respx.mock(base_url=BASE) as m:
            m.post("/orders").mock(side_effect=httpx.ConnectError("unreachable"))

            with pytest.raises(PaymentGatewayError):
                gateway.create_order(Decimal("1"), "rcpt_1")

    def test_missing_credentials_raise_without_calling(self):
        with pytest.raises(PaymentGatewayError):
            RazorpayGateway(key_id="", key_secret="", base_url=BASE).create_order(Decimal("1"), "r")


class TestRefund:

    def test_refund_posts_to_payment(self, gateway):
        with respx.mock(base_url=BASE) as m:
            route = m.post("/payments/pay_1/refund").respond(200, json={"id": "rfnd_1"})

            refund_id = gateway.refund("pay_1", Decimal("590.00"), "cancelled")

        assert refund_id == "rfnd_1"
        body = json.loads(route.calls.last.request.content)
        assert body["amount"] == 59000
        assert body["notes"] == {"reason": "cancelled"}
        assert "receipt" not in body

    def test_refund_carries_receipt(self, gateway):
        with respx.mock(base_url=BASE) as m:
            route = m.post("/payments/pay_1/refund").respond(200, json={"id": "rfnd_1"})

            gateway.refund("pay_1", Decimal("100"), receipt="refund_apt_1")

        assert json.loads(route.calls.last.request.content)["receipt"] == "refund_apt_1"

    def test_refund_without_id_raises(self, gateway):
        with respx.mock(base_url=BASE) as m:
            m.post("/payments/pay_1/refund").respond(200, json={})

            with pytest.raises(PaymentGatewayError):
                gateway.refund("pay_1", Decimal("10"))


class TestFetchOrder:

    def test_returns_order_as_recorded(self, gateway):
        order = {"id": "order_1", "amount": 59000, "currency": "INR", "status": "paid", "notes": {"service_id": "svc"}}
        with respx.mock(base_url=BASE) as m:
            route = m.get("/orders/order_1").respond(200, json=order)

            fetched = gateway.fetch_order("order_1")

        assert fetched == order
        expected_auth = base64.b64encode(b"rzp_key:rzp_secret").decode()
        assert route.calls.last.request.headers["Authorization"] == f"Basic {expected_auth}"

    def test_unknown_order_raises(self, gateway):
        with respx.mock(base_url=BASE) as m:
            m.get("/orders/order_missing").respond(400, json={"error": {"code": "BAD_REQUEST_ERROR"}})

            with pytest.raises(PaymentGatewayError):
                gateway.fetch_order("order_missing")

    def test_mismatched_order_id_raises(self, gateway):
        with respx.mock(base_url=BASE) as m:
            m.get("/orders/order_1").respond(200, json={"id": "order_2", "amount": 59000})

            with pytest.raises(PaymentGatewayError):
                gateway.fetch_order("order_1")
