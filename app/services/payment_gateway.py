import logging
from typing import Any, Dict, Optional

import razorpay
import requests

from app.services.exceptions import UpstreamGatewayError

logger = logging.getLogger(__name__)

SIMULATED_SIGNATURE = "simulated_signature"

_GATEWAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.exceptions.RequestException,
)


def to_paise(amount: float) -> int:
    return int(round(amount * 100))


class RazorpayGateway:
    name = "razorpay"

    def __init__(self, key_id: str, key_secret: str, allow_simulated: bool = False, client=None):
        self.key_id = key_id
        self.allow_simulated = allow_simulated
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            return self.client.order.create({
                "amount": to_paise(amount),
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            })
        except _GATEWAY_ERRORS as e:
            logger.error(f"Razorpay order creation failed for {receipt}: {e}")
            raise UpstreamGatewayError("Payment gateway unavailable") from e

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """HMAC-SHA256 of ``order_id|payment_id``, compared in constant time."""
        if self.allow_simulated and signature == SIMULATED_SIGNATURE:
            logger.warning(f"Accepting simulated signature for order {order_id}")
            return True

        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
        except razorpay.errors.SignatureVerificationError:
            return False
        return True

    def refund(self, payment_id: str, amount: float) -> Dict[str, Any]:
        logger.info(f"Processing refund: {payment_id}, amount: {amount}")
        try:
            return self.client.payment.refund(payment_id, {"amount": to_paise(amount)})
        except _GATEWAY_ERRORS as e:
            logger.error(f"Razorpay refund failed for {payment_id}: {e}")
            raise UpstreamGatewayError("Payment gateway unavailable") from e
