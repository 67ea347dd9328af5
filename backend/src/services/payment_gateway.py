# pyright: reportUnknownMemberType=false
"""
Razorpay payment gateway client.

Orders and refunds go over the Razorpay REST API with HTTP basic auth.
Checkout signatures are verified locally: Razorpay signs
``"{order_id}|{payment_id}"`` with HMAC-SHA256 using the key secret.
"""

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from core import config
from core.constants import PAYMENT_GATEWAY_TIMEOUT_SECONDS
from core.exceptions import PaymentGatewayError
from utils.pricing import to_paise

logger = logging.getLogger(__name__)


class RazorpayGateway:
    """Thin synchronous client for the parts of Razorpay the engine consumes."""

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        currency: Optional[str] = None,
        timeout: float = PAYMENT_GATEWAY_TIMEOUT_SECONDS,
    ):
        self.key_id = config.RAZORPAY_KEY_ID if key_id is None else key_id
        self.key_secret = config.RAZORPAY_KEY_SECRET if key_secret is None else key_secret
        self.base_url = (base_url or config.RAZORPAY_BASE_URL).rstrip("/")
        self.currency = currency or config.PAYMENT_CURRENCY
        self.timeout = timeout

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.key_id or not self.key_secret:
            raise PaymentGatewayError("Payment gateway credentials are not configured.")
        try:
            response = httpx.request(
                method,
                f"{self.base_url}{path}",
                json=body,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Razorpay rejected {path}: {e.response.status_code} - {e.response.text}")
            raise PaymentGatewayError(status_code=e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Razorpay request {path} failed: {e}")
            raise PaymentGatewayError() from e

    def create_order(self, amount: Decimal, receipt: str, notes: Optional[Dict[str, str]] = None) -> str:
        """
        Create a payment order.

        Args:
            amount: Amount in rupees; sent to the gateway in paise
            receipt: Merchant receipt reference
            notes: Free-form key/value notes stored on the order

        Returns:
            Gateway order ID

        Raises:
            PaymentGatewayError: If the gateway is unreachable or rejects the order
        """
        order = self._request("POST", "/orders", {
            "amount": to_paise(amount),
            "currency": self.currency,
            "receipt": receipt,
            "notes": notes or {},
        })
        order_id = order.get("id")
        if not order_id:
            raise PaymentGatewayError("Payment gateway returned an order without an id.")
        logger.info(f"Created payment order {order_id} for receipt {receipt}")
        return order_id

    def fetch_order(self, order_id: str) -> Dict[str, Any]:
        """
        Fetch an order as the gateway recorded it.

        The returned dict carries ``amount`` (paise), ``currency``, ``status``
        ('created', 'attempted' or 'paid') and the ``notes`` set at creation.

        Raises:
            PaymentGatewayError: If the gateway is unreachable or does not know the order
        """
        order = self._request("GET", f"/orders/{order_id}")
        if order.get("id") != order_id:
            raise PaymentGatewayError("Payment gateway returned a different order.")
        return order

    def verify_payment(self, payment_id: str, order_id: str, signature: str) -> bool:
        """
        Verify a checkout signature.

        Returns:
            True only if the signature matches; never raises
        """
        if not self.key_secret:
            logger.warning("Cannot verify payment signature: key secret not configured")
            return False
        if not payment_id or not order_id or not signature:
            return False

        expected = hmac.new(
            self.key_secret.encode("utf-8"),
            f"{order_id}|{payment_id}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature)

    def refund(
        self,
        payment_id: str,
        amount: Decimal,
        reason: Optional[str] = None,
        receipt: Optional[str] = None,
    ) -> str:
        """
        Refund (part of) a captured payment.

        ``receipt`` is the merchant reference stored on the refund, one per
        appointment, so a repeated request can be traced at the gateway.

        Returns:
            Gateway refund ID

        Raises:
            PaymentGatewayError: If the gateway is unreachable or rejects the refund
        """
        body: Dict[str, Any] = {
            "amount": to_paise(amount),
            "notes": {"reason": reason or ""},
        }
        if receipt:
            body["receipt"] = receipt
        refund = self._request("POST", f"/payments/{payment_id}/refund", body)
        refund_id = refund.get("id")
        if not refund_id:
            raise PaymentGatewayError("Payment gateway returned a refund without an id.")
        logger.info(f"Refunded {amount} on payment {payment_id} ({refund_id})")
        return refund_id


def get_payment_gateway() -> RazorpayGateway:
    """FastAPI dependency returning a gateway built from current configuration."""
    return RazorpayGateway()
