from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from flask import Flask

from movemarket.utils.observability import _before_send_scrub, init_sentry


class SentryOptionalInitTestCase(unittest.TestCase):
    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}, clear=False):
            init_sentry(app)

    def test_scrubber_redacts_signatures(self):
        event = {
            "request": {
                "headers": {"Authorization": "Bearer abc", "X-Razorpay-Signature": "sig", "Accept": "json"},
                "data": {"razorpay_signature": "sig", "customer_email": "a@example.com", "order_id": "o1"},
            }
        }
        scrubbed = _before_send_scrub(event, None)
        headers = scrubbed["request"]["headers"]
        self.assertEqual(headers["Authorization"], "[REDACTED]")
        self.assertEqual(headers["X-Razorpay-Signature"], "[REDACTED]")
        self.assertEqual(headers["Accept"], "json")
        self.assertEqual(scrubbed["request"]["data"]["razorpay_signature"], "[REDACTED]")
        self.assertEqual(scrubbed["request"]["data"]["customer_email"], "[REDACTED]")
        self.assertEqual(scrubbed["request"]["data"]["order_id"], "o1")


if __name__ == "__main__":
    unittest.main()
