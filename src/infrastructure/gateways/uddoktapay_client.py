# src/infrastructure/gateways/uddoktapay_client.py

import logging
from dataclasses import dataclass
from decimal import Decimal

import requests

from src.config.settings import Settings
from src.domain.exceptions import PaymentProviderError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "RT-UDDOKTAPAY-API-KEY"


@dataclass(frozen=True)
class CheckoutRequest:
    booking_id: str
    invoice_id: str
    amount: Decimal
    customer_name: str
    customer_phone: str
    redirect_url: str
    cancel_url: str
    webhook_url: str
    customer_email: str | None = None


@dataclass(frozen=True)
class CheckoutSession:
    payment_url: str
    raw: dict


class UddoktaPayClient:
    """
    Thin HTTP adapter over the hosted-checkout provider.

    Every call carries a timeout and is made exactly once; failures come
    back as PaymentProviderError and the caller decides what to do.
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self.settings = settings
        self.http = session or requests.Session()

    def _headers(self) -> dict:
        if not self.settings.uddoktapay_api_key:
            raise PaymentProviderError("Payment gateway not configured")
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            API_KEY_HEADER: self.settings.uddoktapay_api_key,
        }

    def _post(self, url: str, payload: dict) -> tuple[int, dict]:
        headers = self._headers()
        try:
            response = self.http.post(
                url,
                json=payload,
                headers=headers,
                timeout=self.settings.payment_provider_timeout,
            )
        except requests.exceptions.Timeout as exc:
            logger.error("Payment provider timed out. url=%s", url)
            raise PaymentProviderError("Payment provider timed out") from exc
        except requests.exceptions.RequestException as exc:
            logger.error("Payment provider request failed. url=%s error=%s", url, exc)
            raise PaymentProviderError("Payment provider unreachable") from exc

        try:
            data = response.json()
        except ValueError:
            data = {"raw_response": response.text}
        if not isinstance(data, dict):
            data = {"raw_response": data}
        return response.status_code, data

    def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        payload = {
            "full_name": request.customer_name,
            "email": request.customer_email or f"{request.customer_phone}@placeholder.com",
            "amount": str(request.amount),
            "metadata": {
                "booking_id": request.booking_id,
                "invoice_id": request.invoice_id,
            },
            "redirect_url": request.redirect_url,
            "cancel_url": request.cancel_url,
            "webhook_url": request.webhook_url,
        }
        status_code, data = self._post(self.settings.checkout_url, payload)

        payment_url = data.get("payment_url")
        if status_code >= 400 or not payment_url:
            logger.error(
                "Checkout creation rejected. invoice_id=%s status=%s payload=%s",
                request.invoice_id,
                status_code,
                data,
            )
            raise PaymentProviderError("Payment initiation failed", payload=data)

        return CheckoutSession(payment_url=payment_url, raw=data)

    def verify_payment(self, invoice_id: str) -> dict:
        status_code, data = self._post(
            self.settings.verify_url,
            {"invoice_id": invoice_id},
        )
        if status_code >= 400:
            logger.error(
                "Payment verification rejected. invoice_id=%s status=%s payload=%s",
                invoice_id,
                status_code,
                data,
            )
            raise PaymentProviderError("Payment verification failed", payload=data)
        return data
