"""
Razorpay gateway client and payment signature checks
"""

import hashlib
import hmac
import logging
from typing import Optional

import razorpay

from academy.core.config import config
from academy.core.errors import ValidationError

logger = logging.getLogger(__name__)


# ==================== SIGNATURES ====================

def compute_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    """HMAC-SHA256 hex digest of "<order>|<payment>" keyed with the gateway secret"""
    message = f"{gateway_order_id}|{gateway_payment_id}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify_payment_signature(
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    secret: str
) -> bool:
    """Constant-time comparison of the provided signature against the expected one"""
    if not secret or not signature:
        return False
    try:
        expected = compute_signature(gateway_order_id, gateway_payment_id, secret)
        return hmac.compare_digest(expected, signature)
    except (TypeError, AttributeError) as e:
        logger.warning("Signature verification error: %s", e)
        return False


# ==================== CLIENT ====================

class PaymentGateway:
    """Thin wrapper over razorpay.Client"""

    def __init__(self, key_id: str, key_secret: str, currency: str = "INR"):
        self.key_id = key_id
        self.key_secret = key_secret
        self.currency = currency
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_order(
        self,
        amount: float,
        currency: Optional[str] = None,
        receipt: Optional[str] = None,
        notes: Optional[dict] = None
    ) -> dict:
        """Create a gateway order; amount is in major units, the gateway takes paise"""
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        order_data = {
            "amount": int(round(amount * 100)),
            "currency": currency or self.currency,
            "receipt": receipt or "",
            "notes": notes or {},
        }
        try:
            order = self.client.order.create(data=order_data)
        except razorpay.errors.BadRequestError as e:
            raise ValidationError(f"Payment gateway rejected the order: {e}")

        logger.info("Gateway order created: %s (%s %s)", order["id"], order_data["amount"], order_data["currency"])
        return order

    def fetch_payment(self, payment_id: str) -> dict:
        try:
            return self.client.payment.fetch(payment_id)
        except razorpay.errors.BadRequestError as e:
            raise ValidationError(f"Invalid payment ID: {e}")


gateway = PaymentGateway(config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET, config.DEFAULT_CURRENCY)


def get_gateway() -> PaymentGateway:
    return gateway
