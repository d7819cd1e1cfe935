from __future__ import annotations

from movemarket.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from movemarket.integrations.messaging.base import CHANNELS, MessagingProvider
from movemarket.integrations.messaging.mock_provider import MockMessagingProvider
from movemarket.integrations.messaging.sendgrid_provider import SendGridMessagingProvider
from movemarket.integrations.messaging.twilio_provider import TwilioMessagingProvider


def build_messaging_provider(settings, *, channel: str) -> MessagingProvider:
    ch = (channel or "").strip().lower()
    if ch not in CHANNELS or ch == "in_app":
        raise IntegrationDisabledError(f"INTEGRATION_DISABLED:{ch or 'unknown'}")

    mode = (getattr(settings, "messaging_provider", "mock") or "mock").strip().lower()
    if mode == "mock":
        return MockMessagingProvider()
    if mode == "disabled":
        raise IntegrationDisabledError(f"INTEGRATION_DISABLED:{ch}")

    if ch == "email":
        api_key = (getattr(settings, "sendgrid_api_key", "") or "").strip()
        if not api_key:
            raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing SENDGRID_API_KEY")
        return SendGridMessagingProvider(
            api_key=api_key,
            from_email=(getattr(settings, "sendgrid_from_email", "") or "").strip(),
        )

    sid = (getattr(settings, "twilio_account_sid", "") or "").strip()
    token = (getattr(settings, "twilio_auth_token", "") or "").strip()
    sms_number = (getattr(settings, "twilio_sms_number", "") or "").strip()
    wa_number = (getattr(settings, "twilio_whatsapp_number", "") or "").strip()
    missing = []
    if not sid:
        missing.append("TWILIO_ACCOUNT_SID")
    if not token:
        missing.append("TWILIO_AUTH_TOKEN")
    if ch == "sms" and not sms_number:
        missing.append("TWILIO_SMS_NUMBER")
    if ch == "whatsapp" and not wa_number:
        missing.append("TWILIO_WHATSAPP_NUMBER")
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return TwilioMessagingProvider(
        account_sid=sid,
        auth_token=token,
        sms_number=sms_number,
        whatsapp_number=wa_number,
    )


def messaging_health(settings) -> dict:
    mode = (getattr(settings, "messaging_provider", "mock") or "mock").strip().lower()
    channels = {}
    for ch in ("email", "sms", "whatsapp"):
        try:
            build_messaging_provider(settings, channel=ch)
            channels[ch] = "configured"
        except IntegrationDisabledError:
            channels[ch] = "disabled"
        except IntegrationMisconfiguredError as e:
            channels[ch] = f"misconfigured:{str(e).split('missing ', 1)[-1]}"
    return {"mode": mode, "channels": channels}
