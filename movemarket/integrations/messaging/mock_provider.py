from __future__ import annotations

import os

from movemarket.integrations.messaging.base import MessagingProvider, MessageResult


class MockMessagingProvider(MessagingProvider):
    name = "mock"

    def __init__(self):
        self.sent: list[dict] = []

    def _force_failure(self, body: str) -> bool:
        msg = (body or "").lower()
        return "[fail]" in msg or (os.getenv("MOCK_NOTIFY_FORCE_FAIL") or "").strip() == "1"

    def send(self, *, channel: str, to: str, subject: str, body: str, reference: str = "") -> MessageResult:
        if self._force_failure(body):
            return MessageResult(ok=False, code="PROVIDER_DOWN", message="mock forced failure")
        self.sent.append({"channel": channel, "to": to, "subject": subject, "body": body, "reference": reference})
        return MessageResult(ok=True, code="OK", message="mock_sent", raw={"to": to, "reference": reference})
