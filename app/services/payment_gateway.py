# app/services/payment_gateway.py
"""
Payment gateway client (Stripe PaymentIntents over REST).

Only two calls are needed by the reservation flow:
  create_intent(amount, currency, metadata) → client secret + intent id
  retrieve_intent(intent_id)                → status ("succeeded" gates reserve)

Amounts are passed in major units and sent in minor units (× 100).
Every transport or gateway failure surfaces as UpstreamPaymentError.
"""

from dataclasses import dataclass
from typing import Optional
import requests
from app.config import settings
from app.exceptions import UpstreamPaymentError, ValidationError
from app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PaymentIntent:
    intent_id: str
    status: str
    client_secret: Optional[str] = None
    amount: Optional[int] = None      # minor units
    currency: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "PaymentIntent":
        return cls(
            intent_id=payload["id"],
            status=payload.get("status", "unknown"),
            client_secret=payload.get("client_secret"),
            amount=payload.get("amount"),
            currency=payload.get("currency"),
        )


class StripeGateway:
    def __init__(self, secret_key: str, api_base: str = "https://api.stripe.com/v1",
                 timeout: int = 10, session: Optional[requests.Session] = None):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        url = f"{self.api_base}{path}"
        try:
            resp = self.session.request(method, url, data=data, auth=(self.secret_key, ""), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"[PAYMENT] {method} {path} failed: {e}")
            raise UpstreamPaymentError(f"Payment gateway unreachable: {e}")

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if resp.status_code >= 400:
            message = (payload.get("error") or {}).get("message") or f"HTTP {resp.status_code}"
            logger.error(f"[PAYMENT] {method} {path} → {resp.status_code}: {message}")
            raise UpstreamPaymentError(f"Payment gateway error: {message}", upstream_status=resp.status_code)
        return payload

    def create_intent(self, amount: float, currency: str, metadata: Optional[dict] = None) -> PaymentIntent:
        minor_units = round(amount * 100)
        if minor_units <= 0:
            raise ValidationError.single("amount", "Amount must be a valid positive number")

        data = {
            "amount": minor_units,
            "currency": currency,
            "payment_method_types[]": "card",
        }
        for key, value in (metadata or {}).items():
            data[f"metadata[{key}]"] = "" if value is None else str(value)

        intent = PaymentIntent.from_payload(self._request("POST", "/payment_intents", data))
        logger.info(f"[PAYMENT] Intent {intent.intent_id} created for {minor_units} {currency}")
        return intent

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        if not intent_id:
            raise ValidationError.single("payment_intent_id", "Missing payment intent ID")
        return PaymentIntent.from_payload(self._request("GET", f"/payment_intents/{intent_id}"))


def get_payment_gateway() -> StripeGateway:
    """FastAPI dependency — gateway built from settings."""
    if not settings.STRIPE_SECRET_KEY:
        raise UpstreamPaymentError("Payment gateway is not configured")
    return StripeGateway(
        secret_key=settings.STRIPE_SECRET_KEY,
        api_base=settings.STRIPE_API_BASE,
        timeout=settings.PAYMENT_TIMEOUT_SECONDS,
    )
