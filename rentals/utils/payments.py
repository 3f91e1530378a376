"""
Payment gateway integration.

The rental core never charges anyone; the use-case layer does, through this
port. HttpPaymentGateway talks to the configured gateway and falls back to
local emulation when no gateway URL is set (development, demos).
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

import requests

from rentals.utils.exceptions import PaymentFailed

logger = logging.getLogger(__name__)


class ChargeStatus:
    SUCCEEDED = "succeeded"
    PENDING   = "pending"
    FAILED    = "failed"


@dataclass(frozen=True)
class Charge:
    id:     str
    status: str

    @property
    def succeeded(self) -> bool:
        return self.status == ChargeStatus.SUCCEEDED


class PaymentGateway(ABC):

    @abstractmethod
    def create_charge(self, amount: Decimal, rental_id: str) -> Charge:
        """Raises PaymentFailed when the gateway cannot be reached or rejects the request."""
        pass


class HttpPaymentGateway(PaymentGateway):

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        retry_attempts: int = 2,
        session: requests.Session | None = None,
    ):
        self.base_url       = base_url.rstrip("/")
        self.api_key        = api_key
        self.timeout        = timeout
        self.retry_attempts = max(0, retry_attempts)
        self.session        = session or requests.Session()

    def create_charge(self, amount: Decimal, rental_id: str) -> Charge:
        if not self.base_url:
            charge_id = f"emu_{uuid.uuid4().hex[:16]}"
            logger.warning(f"[PAYMENT] Gateway not configured, emulating charge {charge_id} "
                           f"for rental {rental_id} ({amount})")
            return Charge(id=charge_id, status=ChargeStatus.SUCCEEDED)

        # Same key on every retry so the gateway never charges twice
        idempotency_key = uuid.uuid4().hex
        payload = {"amount": str(amount), "rentalId": rental_id}
        headers = {
            "Authorization":   f"Bearer {self.api_key}",
            "Idempotency-Key": idempotency_key,
        }

        last_error = None
        for attempt in range(1, self.retry_attempts + 2):
            try:
                resp = self.session.post(
                    f"{self.base_url}/charges", json=payload, headers=headers, timeout=self.timeout,
                )
            except requests.RequestException as e:
                last_error = str(e)
                logger.warning(f"[PAYMENT] Attempt {attempt} for rental {rental_id} failed: {e}")
            else:
                if resp.status_code >= 500:
                    last_error = f"gateway returned {resp.status_code}"
                    logger.warning(f"[PAYMENT] Attempt {attempt} for rental {rental_id}: {last_error}")
                elif resp.status_code >= 400:
                    raise PaymentFailed(f"Payment rejected by gateway ({resp.status_code})")
                else:
                    try:
                        body = resp.json()
                        charge_id = body["id"]
                    except (ValueError, KeyError, TypeError) as e:
                        # Not retried: the gateway may already have taken the money
                        logger.error(f"[PAYMENT] Unreadable {resp.status_code} reply for rental {rental_id} "
                                     f"(idempotency key {idempotency_key}): {e!r}")
                        raise PaymentFailed("Payment gateway returned an unreadable response")
                    charge = Charge(id=str(charge_id), status=body.get("status", ChargeStatus.PENDING))
                    logger.info(f"[PAYMENT] Charge {charge.id} for rental {rental_id}: {charge.status}")
                    return charge

            if attempt <= self.retry_attempts:
                time.sleep(min(0.2 * attempt, 1.0))

        raise PaymentFailed(f"Payment gateway unavailable: {last_error}")
