# src/infrastructure/gateways/sms_client.py

import logging
from dataclasses import dataclass

import requests

from src.config.settings import Settings
from src.domain.phone import normalize_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmsResult:
    success: bool
    message: str | None = None
    error: str | None = None


class SmsClient:
    """SMS gateway adapter. Never raises; failures come back in the result."""

    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self.settings = settings
        self.http = session or requests.Session()

    def send(self, phone: str, message: str) -> SmsResult:
        api_key = self.settings.sms_api_key
        sender_id = self.settings.sms_sender_id
        if not api_key or not sender_id:
            logger.warning("SMS credentials not configured; dropping message")
            return SmsResult(
                success=False,
                error="SMS sending failed (credentials may not be configured)",
            )

        to = normalize_phone(phone, self.settings.sms_country_code)
        try:
            response = self.http.post(
                self.settings.sms_api_url,
                json={
                    "api_key": api_key,
                    "sender_id": sender_id,
                    "to": to,
                    "message": message,
                    "type": "text",
                },
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self.settings.sms_timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.error("SMS sending error. to=%s error=%s", to, exc)
            return SmsResult(success=False, error="SMS gateway unreachable")

        if not response.ok:
            logger.error(
                "SMS gateway rejected message. to=%s status=%s body=%s",
                to,
                response.status_code,
                response.text[:500],
            )
            return SmsResult(success=False, error=f"SMS gateway returned {response.status_code}")

        logger.info("SMS sent. to=%s", to)
        return SmsResult(success=True, message="SMS sent successfully")
