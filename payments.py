"""
Razorpay gateway adapter.

Only two calls matter to the store: creating a gateway order for an amount,
and checking the signature Razorpay's checkout hands back to the browser.
"""
import hashlib
import hmac
import logging
from typing import Optional

import requests

import config
import errors

log = logging.getLogger(__name__)


def to_minor_units(amount: int) -> int:
    # Razorpay amounts are in paise
    return int(round(amount * 100))


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class RazorpayGateway:
    def __init__(self, key_id: str, key_secret: str, api_url: str = "https://api.razorpay.com/v1",
                 currency: str = "INR", timeout: float = 15):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self.currency = currency
        self.timeout = timeout

    @classmethod
    def from_config(cls) -> "RazorpayGateway":
        return cls(
            key_id=config.RAZORPAY_KEY_ID,
            key_secret=config.RAZORPAY_KEY_SECRET,
            api_url=config.RAZORPAY_API_URL,
            currency=config.CURRENCY,
            timeout=config.GATEWAY_TIMEOUT,
        )

    def _require_keys(self):
        if not self.key_id or not self.key_secret:
            raise errors.UpstreamFailure("Online payments are not configured")

    def create_order(self, amount_minor: int, receipt: str, notes: Optional[dict] = None) -> dict:
        """Create a gateway order; returns Razorpay's ``{id, amount, currency, ...}``."""
        self._require_keys()
        payload = {
            "amount": amount_minor,
            "currency": self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            resp = requests.post(
                f"{self.api_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            log.error("Razorpay order creation failed for receipt %s: %s", receipt, e)
            raise errors.UpstreamFailure("Failed to create payment order")
        if "id" not in data:
            log.error("Razorpay returned no order id for receipt %s: %r", receipt, data)
            raise errors.UpstreamFailure("Failed to create payment order")
        return data

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        self._require_keys()
        expected = compute_signature(order_id, payment_id, self.key_secret)
        return hmac.compare_digest(expected.encode(), signature.encode())
