from __future__ import annotations

import requests

from movemarket.integrations.common import error_detail
from movemarket.integrations.messaging.base import MessagingProvider, MessageResult


TWILIO_BASE = "https://api.twilio.com/2010-04-01"


def _map_error(status: int) -> str:
    if status in (401, 403):
        return "TWILIO_AUTH_FAILED"
    if status == 429:
        return "TWILIO_RATE_LIMITED"
    if status in (400, 404, 422):
        return "TWILIO_INVALID_RECIPIENT"
    return "TWILIO_PROVIDER_DOWN"


class TwilioMessagingProvider(MessagingProvider):
    name = "twilio"

    def __init__(self, *, account_sid: str, auth_token: str, sms_number: str, whatsapp_number: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.sms_number = sms_number
        self.whatsapp_number = whatsapp_number

    def _addresses(self, channel: str, to: str) -> tuple[str, str]:
        to = (to or "").strip()
        if channel == "whatsapp":
            return f"whatsapp:{self.whatsapp_number}", f"whatsapp:{to}"
        return self.sms_number, to

    def send(self, *, channel: str, to: str, subject: str, body: str, reference: str = "") -> MessageResult:
        sender, recipient = self._addresses(channel, to)
        data = {"From": sender, "To": recipient, "Body": body or ""}
        url = f"{TWILIO_BASE}/Accounts/{self.account_sid}/Messages.json"
        try:
            r = requests.post(url, data=data, auth=(self.account_sid, self.auth_token), timeout=12)
        except requests.Timeout:
            return MessageResult(ok=False, code="TWILIO_PROVIDER_DOWN", message="timeout")
        except requests.RequestException as e:
            return MessageResult(ok=False, code="TWILIO_PROVIDER_DOWN", message=str(e)[:200])
        if 200 <= r.status_code < 300:
            try:
                payload = r.json() if r.content else {}
            except ValueError:
                payload = {}
            return MessageResult(ok=True, code="OK", message="sent", raw=payload if isinstance(payload, dict) else {})
        return MessageResult(ok=False, code=_map_error(r.status_code), message=error_detail(r)[:200])
