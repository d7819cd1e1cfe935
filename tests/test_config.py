from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from movemarket.config import check_production_settings, load_settings
from movemarket.integrations.common import IntegrationMisconfiguredError
from movemarket.integrations.messaging.factory import build_messaging_provider, messaging_health
from movemarket.integrations.payments.factory import build_payments_provider, payment_health


class SettingsTestCase(unittest.TestCase):
    def test_defaults_outside_production(self):
        with patch.dict(os.environ, {"MOVEMARKET_ENV": "dev", "PAYMENTS_PROVIDER": "", "COMMISSION_STANDARD_RATE": ""}):
            settings = load_settings()
        self.assertFalse(settings.is_production)
        self.assertEqual(settings.payments_provider, "mock")
        self.assertEqual(settings.commission_standard_rate, 20.0)
        self.assertEqual(settings.commission_discounted_rate, 5.0)
        self.assertNotIn("razorpay_key_secret", settings.to_dict())

    def test_numeric_settings_are_clamped(self):
        env = {"NOTIFICATION_MAX_ATTEMPTS": "500", "PAYMENT_GATEWAY_TIMEOUT_SECONDS": "nope"}
        with patch.dict(os.environ, env):
            settings = load_settings()
        self.assertEqual(settings.notification_max_attempts, 20)
        self.assertEqual(settings.gateway_timeout_seconds, 25)

    def test_production_requires_secrets(self):
        env = {
            "MOVEMARKET_ENV": "production",
            "SECRET_KEY": "",
            "DATABASE_URL": "postgresql://db/movemarket",
            "PAYMENTS_PROVIDER": "razorpay",
        }
        with patch.dict(os.environ, env):
            settings = load_settings()
            with self.assertRaises(RuntimeError):
                check_production_settings(settings)

        env.update({"SECRET_KEY": "x" * 32, "RAZORPAY_KEY_ID": "", "RAZORPAY_KEY_SECRET": ""})
        with patch.dict(os.environ, env):
            settings = load_settings()
            with self.assertRaises(RuntimeError) as ctx:
                check_production_settings(settings)
        self.assertIn("RAZORPAY_KEY_ID", str(ctx.exception))

        env.update({"RAZORPAY_KEY_ID": "rzp_live_x", "RAZORPAY_KEY_SECRET": "s3cret"})
        with patch.dict(os.environ, env):
            check_production_settings(load_settings())


class ProviderFactoryTestCase(unittest.TestCase):
    def test_razorpay_without_keys_is_misconfigured(self):
        with patch.dict(os.environ, {"PAYMENTS_PROVIDER": "razorpay", "RAZORPAY_KEY_ID": "", "RAZORPAY_KEY_SECRET": ""}):
            settings = load_settings()
        with self.assertRaises(IntegrationMisconfiguredError):
            build_payments_provider(settings)
        health = payment_health(settings)
        self.assertEqual(health["status"], "misconfigured")
        self.assertEqual(health["missing"], ["RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET"])

    def test_live_messaging_reports_missing_credentials(self):
        env = {
            "MESSAGING_PROVIDER": "live",
            "SENDGRID_API_KEY": "",
            "TWILIO_ACCOUNT_SID": "AC1",
            "TWILIO_AUTH_TOKEN": "tok",
            "TWILIO_SMS_NUMBER": "+15550001111",
            "TWILIO_WHATSAPP_NUMBER": "",
        }
        with patch.dict(os.environ, env):
            settings = load_settings()
        health = messaging_health(settings)
        self.assertEqual(health["channels"]["sms"], "configured")
        self.assertTrue(health["channels"]["email"].startswith("misconfigured"))
        self.assertTrue(health["channels"]["whatsapp"].startswith("misconfigured"))
        with self.assertRaises(IntegrationMisconfiguredError):
            build_messaging_provider(settings, channel="email")


if __name__ == "__main__":
    unittest.main()
