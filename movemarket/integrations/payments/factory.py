from __future__ import annotations

from movemarket.integrations.common import IntegrationMisconfiguredError
from movemarket.integrations.payments.base import PaymentsProvider
from movemarket.integrations.payments.mock_provider import MockPaymentsProvider
from movemarket.integrations.payments.razorpay_provider import RazorpayPaymentsProvider


def build_payments_provider(settings) -> PaymentsProvider:
    provider = (getattr(settings, "payments_provider", "mock") or "mock").strip().lower()
    key_id = (getattr(settings, "razorpay_key_id", "") or "").strip()
    key_secret = (getattr(settings, "razorpay_key_secret", "") or "").strip()
    timeout = int(getattr(settings, "gateway_timeout_seconds", 25) or 25)

    if provider == "mock":
        return MockPaymentsProvider(
            key_id=key_id or "rzp_test_mock",
            key_secret=key_secret or "mock-secret",
            timeout=timeout,
        )

    if provider != "razorpay":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    missing = []
    if not key_id:
        missing.append("RAZORPAY_KEY_ID")
    if not key_secret:
        missing.append("RAZORPAY_KEY_SECRET")
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return RazorpayPaymentsProvider(key_id=key_id, key_secret=key_secret, timeout=timeout)


def payment_health(settings) -> dict:
    provider = (getattr(settings, "payments_provider", "mock") or "mock").strip().lower()
    missing = []
    if provider == "razorpay":
        if not (getattr(settings, "razorpay_key_id", "") or "").strip():
            missing.append("RAZORPAY_KEY_ID")
        if not (getattr(settings, "razorpay_key_secret", "") or "").strip():
            missing.append("RAZORPAY_KEY_SECRET")
    if provider not in ("mock", "razorpay"):
        status = "misconfigured"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {"status": status, "provider": provider, "missing": missing}
