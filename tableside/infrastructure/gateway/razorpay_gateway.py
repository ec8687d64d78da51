import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Protocol

import razorpay

from tableside.domain.exceptions import GatewayError

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    provider: str
    key_id: str | None

    def create_gateway_order(
        self,
        amount_minor_units: int,
        currency: str,
        metadata: dict,
    ) -> str:
        ...


class RazorpayGateway:
    """Creates Razorpay orders. Every call is bounded by a timeout."""

    provider = "RAZORPAY"

    def __init__(self, key_id: str, key_secret: str, timeout_seconds: float = 10.0):
        if not key_id or not key_secret:
            raise ValueError(
                "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )
        self.key_id = key_id
        self._key_secret = key_secret
        self.timeout_seconds = timeout_seconds
        self._client = None
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="razorpay")

    def _razorpay_client(self):
        if self._client is None:
            self._client = razorpay.Client(auth=(self.key_id, self._key_secret))
        return self._client

    def create_gateway_order(
        self,
        amount_minor_units: int,
        currency: str,
        metadata: dict,
    ) -> str:
        request = {
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": metadata.get("receipt", ""),
            "payment_capture": 1,
            "notes": {key: str(value) for key, value in metadata.items()},
        }
        future = self._executor.submit(self._razorpay_client().order.create, request)
        try:
            order = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError as exc:
            future.cancel()
            logger.warning(
                "Razorpay order creation timed out after %.1f seconds. receipt=%s",
                self.timeout_seconds,
                request["receipt"],
            )
            raise GatewayError("Payment gateway timed out.") from exc
        except Exception as exc:
            logger.warning("Razorpay order creation failed: %s", exc)
            raise GatewayError(f"Payment gateway error: {exc}") from exc

        gateway_order_ref = order.get("id")
        if not gateway_order_ref:
            raise GatewayError("Payment gateway returned no order id.")
        return gateway_order_ref

    def close(self) -> None:
        self._executor.shutdown(wait=False)
