from __future__ import annotations

import unittest

from movemarket.integrations.payments.base import compute_signature
from tests.base import MarketplaceTestCase


class ApiErrorContractTestCase(MarketplaceTestCase):
    def _assert_error(self, res, status: int, code: str | None = None) -> dict:
        self.assertEqual(res.status_code, status)
        self.assertTrue(res.is_json)
        body = res.get_json(force=True) or {}
        self.assertFalse(bool(body.get("ok", True)))
        self.assertTrue(str(body.get("error") or "").strip())
        self.assertTrue(str(body.get("message") or "").strip())
        self.assertEqual(int(body.get("status") or 0), status)
        self.assertEqual((body.get("trace_id") or "").strip(), (res.headers.get("X-Request-Id") or "").strip())
        if code is not None:
            self.assertEqual(body.get("error"), code)
        return body

    def test_unknown_api_route_returns_json_error_shape(self):
        res = self.client.get("/api/does-not-exist")
        self._assert_error(res, 404)

    def test_missing_token_is_unauthorized(self):
        res = self.client.post("/api/orders", json={"pickup_pincode": "560001"})
        self._assert_error(res, 401, "UNAUTHORIZED")

    def test_domain_errors_map_to_status_codes(self):
        customer = self.make_user()
        headers = self.auth_headers(customer)
        res = self.client.post("/api/orders", json={"destination_pincode": "560034"}, headers=headers)
        body = self._assert_error(res, 400, "VALIDATION_ERROR")
        self.assertIn("pickup_pincode", body["message"])

        res = self.client.get("/api/orders/not-a-real-order", headers=headers)
        self._assert_error(res, 404, "NOT_FOUND")

        res = self.client.get("/api/admin/notifications", headers=headers)
        self._assert_error(res, 403, "FORBIDDEN")

    def test_echoes_request_id_when_provided(self):
        res = self.client.get("/api/health", headers={"X-Request-Id": "rid-test-123"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.headers.get("X-Request-Id"), "rid-test-123")
        body = res.get_json(force=True)
        self.assertEqual(body["db"], "ok")
        self.assertEqual(body["payments"]["status"], "configured")

    def test_quote_to_payment_flow_over_http(self):
        customer = self.make_user()
        vendor_user = self.make_user("vendor")
        vendor = self.make_vendor("Http Movers", user=vendor_user)
        vendor_id = vendor.id
        customer_headers = self.auth_headers(customer)
        vendor_headers = self.auth_headers(vendor_user)

        res = self.client.post(
            "/api/orders",
            json={"pickup_pincode": "560001", "destination_pincode": "560034", "move_size": "2BHK"},
            headers=customer_headers,
        )
        self.assertEqual(res.status_code, 201)
        order_id = res.get_json()["order"]["id"]

        res = self.client.post(f"/api/orders/{order_id}/quote-requests", json={"vendor_ids": [vendor_id]}, headers=customer_headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["order"]["status"], "Quotes Requested")

        res = self.client.post(f"/api/orders/{order_id}/quotes", json={"amount": 4500}, headers=vendor_headers)
        self.assertEqual(res.status_code, 201)

        res = self.client.get("/api/orders", headers=vendor_headers)
        self.assertIn(order_id, [o["id"] for o in res.get_json()["items"]])

        res = self.client.post("/api/payments/orders", json={"order_id": order_id, "vendor_id": vendor_id}, headers=customer_headers)
        self.assertEqual(res.status_code, 201)
        remote = res.get_json()["payment_order"]
        self.assertEqual(remote["amount"], 450000)

        secret = self.services.payments.provider.key_secret
        bad = self.client.post(
            "/api/payments/verify",
            json={
                "order_id": order_id,
                "vendor_id": vendor_id,
                "razorpay_order_id": remote["id"],
                "razorpay_payment_id": "pay_http_1",
                "razorpay_signature": "f" * 64,
            },
            headers=customer_headers,
        )
        self._assert_error(bad, 400, "SIGNATURE_INVALID")

        res = self.client.post(
            "/api/payments/verify",
            json={
                "order_id": order_id,
                "vendor_id": vendor_id,
                "razorpay_order_id": remote["id"],
                "razorpay_payment_id": "pay_http_1",
                "razorpay_signature": compute_signature(remote["id"], "pay_http_1", secret),
            },
            headers=customer_headers,
        )
        self.assertEqual(res.status_code, 200)
        paid = res.get_json()["order"]
        self.assertEqual(paid["status"], "Paid")
        self.assertEqual(paid["payment"]["amount_minor"], 450000)

        res = self.client.get(f"/api/orders/{order_id}/history", headers=customer_headers)
        statuses = [h["status"] for h in res.get_json()["items"]]
        self.assertEqual(statuses, ["Initiated", "Quotes Requested", "Paid"])

        res = self.client.post(f"/api/orders/{order_id}/cancel", json={}, headers=customer_headers)
        self._assert_error(res, 409, "CONFLICT")


if __name__ == "__main__":
    unittest.main()
