# salon_booking/services/collaborators/payment.py
"""
Payment processor boundary. Only deposit capture and no-show charges are
requested from here; the gateway protocol itself lives elsewhere.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

import httpx

from salon_booking.config.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class PaymentResult:
    success: bool
    reference: Optional[str] = None
    error: Optional[str] = None


class PaymentProcessor(Protocol):
    def charge_deposit(self, appointment, amount: Decimal) -> PaymentResult:
        ...

    def charge_no_show(self, appointment, amount: Decimal) -> PaymentResult:
        ...


class HttpPaymentProcessor:
    """Posts charge requests to the payment service. Failures are returned, never retried here."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = base_url or settings.PAYMENT_SERVICE_URL
        self.token = token if token is not None else settings.PAYMENT_SERVICE_TOKEN
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    def charge_deposit(self, appointment, amount: Decimal) -> PaymentResult:
        return self._charge("deposits", appointment, amount)

    def charge_no_show(self, appointment, amount: Decimal) -> PaymentResult:
        return self._charge("no-show-charges", appointment, amount)

    def _charge(self, path: str, appointment, amount: Decimal) -> PaymentResult:
        if not self.base_url:
            return PaymentResult(success=False, error="Payment service not configured")

        payload = {
            "appointment_id": str(appointment.id),
            "salon_id": str(appointment.salon_id),
            "customer_id": str(appointment.customer_id),
            "amount_chf": str(amount),
            "idempotency_key": f"{path}:{appointment.id}",
        }
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(f"{self.base_url.rstrip('/')}/{path}", json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error(f"Payment request timed out for appointment {appointment.id}")
            return PaymentResult(success=False, error=f"Request timeout ({self.timeout}s)")
        except httpx.RequestError as e:
            logger.error(f"Payment request failed for appointment {appointment.id}: {e}")
            return PaymentResult(success=False, error=f"Request error: {str(e)[:200]}")

        if 200 <= response.status_code < 300:
            body = response.json()
            return PaymentResult(success=bool(body.get("success", True)), reference=body.get("reference"),
                                 error=body.get("error"))

        logger.warning(f"Payment service returned HTTP {response.status_code} for appointment {appointment.id}")
        return PaymentResult(success=False, error=f"HTTP {response.status_code}: {response.text[:200]}")
