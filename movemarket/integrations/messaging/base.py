from __future__ import annotations

from dataclasses import dataclass


CHANNELS = ("email", "sms", "whatsapp", "in_app")


@dataclass
class MessageResult:
    ok: bool
    code: str = ""
    message: str = ""
    raw: dict | None = None


class MessagingProvider:
    name = "unknown"

    def send(self, *, channel: str, to: str, subject: str, body: str, reference: str = "") -> MessageResult:
        raise NotImplementedError
