from __future__ import annotations

import os
from dataclasses import dataclass


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default or "").strip()


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def _env_float(name: str, default: float, *, minimum: float = 0.0, maximum: float = 100.0) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = float(default)
    else:
        try:
            value = float(raw)
        except Exception:
            value = float(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


@dataclass(frozen=True)
class MarketplaceSettings:
    env: str
    payments_provider: str
    razorpay_key_id: str
    razorpay_key_secret: str
    payment_currency: str
    gateway_timeout_seconds: int
    commission_standard_rate: float
    commission_discounted_rate: float
    messaging_provider: str
    sendgrid_api_key: str
    sendgrid_from_email: str
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_sms_number: str
    twilio_whatsapp_number: str
    notification_max_attempts: int
    notification_dispatch_limit: int
    notification_dispatch_interval_seconds: int
    rider_sweep_interval_seconds: int
    celery_broker_url: str
    celery_result_backend: str

    @property
    def is_production(self) -> bool:
        return self.env in ("prod", "production")

    def to_dict(self) -> dict:
        # Secrets never leave the process.
        return {
            "env": self.env,
            "payments_provider": self.payments_provider,
            "razorpay_key_id": self.razorpay_key_id,
            "payment_currency": self.payment_currency,
            "gateway_timeout_seconds": int(self.gateway_timeout_seconds),
            "commission_standard_rate": float(self.commission_standard_rate),
            "commission_discounted_rate": float(self.commission_discounted_rate),
            "messaging_provider": self.messaging_provider,
            "notification_max_attempts": int(self.notification_max_attempts),
            "notification_dispatch_limit": int(self.notification_dispatch_limit),
        }


def current_env() -> str:
    return (_env_str("MOVEMARKET_ENV", "dev") or "dev").lower()


def load_settings() -> MarketplaceSettings:
    env = current_env()
    default_provider = "razorpay" if env in ("prod", "production") else "mock"
    broker = _env_str("CELERY_BROKER_URL") or _env_str("REDIS_URL") or "redis://localhost:6379/0"
    return MarketplaceSettings(
        env=env,
        payments_provider=(_env_str("PAYMENTS_PROVIDER", default_provider) or default_provider).lower(),
        razorpay_key_id=_env_str("RAZORPAY_KEY_ID"),
        razorpay_key_secret=_env_str("RAZORPAY_KEY_SECRET"),
        payment_currency=(_env_str("PAYMENT_CURRENCY", "INR") or "INR").upper(),
        gateway_timeout_seconds=_env_int("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 25, minimum=10, maximum=30),
        commission_standard_rate=_env_float("COMMISSION_STANDARD_RATE", 20.0),
        commission_discounted_rate=_env_float("COMMISSION_DISCOUNTED_RATE", 5.0),
        messaging_provider=(_env_str("MESSAGING_PROVIDER", "mock") or "mock").lower(),
        sendgrid_api_key=_env_str("SENDGRID_API_KEY"),
        sendgrid_from_email=_env_str("SENDGRID_FROM_EMAIL", "noreply@movemarket.local"),
        twilio_account_sid=_env_str("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=_env_str("TWILIO_AUTH_TOKEN"),
        twilio_sms_number=_env_str("TWILIO_SMS_NUMBER"),
        twilio_whatsapp_number=_env_str("TWILIO_WHATSAPP_NUMBER"),
        notification_max_attempts=_env_int("NOTIFICATION_MAX_ATTEMPTS", 5, minimum=1, maximum=20),
        notification_dispatch_limit=_env_int("NOTIFICATION_DISPATCH_LIMIT", 100, minimum=1, maximum=1000),
        notification_dispatch_interval_seconds=_env_int(
            "NOTIFICATION_DISPATCH_INTERVAL_SECONDS", 30, minimum=5, maximum=3600
        ),
        rider_sweep_interval_seconds=_env_int("RIDER_SWEEP_INTERVAL_SECONDS", 120, minimum=30, maximum=3600),
        celery_broker_url=broker,
        celery_result_backend=_env_str("CELERY_RESULT_BACKEND") or broker,
    )


def check_production_settings(settings: MarketplaceSettings) -> None:
    if not settings.is_production:
        return
    secret = _env_str("SECRET_KEY")
    if not secret or len(secret) < 16:
        raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
    if not _env_str("DATABASE_URL") and not _env_str("SQLALCHEMY_DATABASE_URI"):
        raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
    if settings.payments_provider == "razorpay":
        if not settings.razorpay_key_id or not settings.razorpay_key_secret:
            raise RuntimeError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be set in production")
