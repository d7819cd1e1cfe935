from __future__ import annotations

import requests

from movemarket.integrations.common import error_detail
from movemarket.integrations.messaging.base import MessagingProvider, MessageResult


SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


def _map_error(status: int) -> str:
    if status in (401, 403):
        return "SENDGRID_AUTH_FAILED"
    if status == 429:
        return "SENDGRID_RATE_LIMITED"
    if status in (400, 413):
        return "SENDGRID_INVALID_REQUEST"
    return "SENDGRID_PROVIDER_DOWN"


class SendGridMessagingProvider(MessagingProvider):
    name = "sendgrid"

    def __init__(self, *, api_key: str, from_email: str):
        self.api_key = api_key
        self.from_email = from_email

    def send(self, *, channel: str, to: str, subject: str, body: str, reference: str = "") -> MessageResult:
        payload = {
            "personalizations": [{"to": [{"email": (to or "").strip()}]}],
            "from": {"email": self.from_email},
            "subject": subject or "Notification",
            "content": [{"type": "text/plain", "value": body or ""}],
        }
        if reference:
            payload["custom_args"] = {"reference": reference[:64]}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            r = requests.post(SENDGRID_URL, headers=headers, json=payload, timeout=12)
        except requests.Timeout:
            return MessageResult(ok=False, code="SENDGRID_PROVIDER_DOWN", message="timeout")
        except requests.RequestException as e:
            return MessageResult(ok=False, code="SENDGRID_PROVIDER_DOWN", message=str(e)[:200])
        if 200 <= r.status_code < 300:
            return MessageResult(
                ok=True,
                code="OK",
                message="sent",
                raw={"message_id": r.headers.get("X-Message-Id", "")},
            )
        return MessageResult(ok=False, code=_map_error(r.status_code), message=error_detail(r)[:200])
