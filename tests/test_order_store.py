from __future__ import annotations

import unittest

from movemarket.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from movemarket.models import OrderStatus
from tests.base import MarketplaceTestCase


class OrderStoreTestCase(MarketplaceTestCase):
    def test_create_records_initiated_history(self):
        order = self.make_order("Mixed.Case@Example.com", move_size="2BHK")
        self.assertEqual(order.status, OrderStatus.INITIATED)
        self.assertEqual(order.user_email, "mixed.case@example.com")
        self.assertTrue(order.order_number.startswith("ORD-"))
        history = self.services.orders.history(order.id)
        self.assertEqual([h.status for h in history], [OrderStatus.INITIATED])

    def test_create_rejects_bad_input(self):
        orders = self.services.orders
        with self.assertRaises(ValidationError):
            orders.create(user_email="not-an-email", pickup_pincode="560001")
        with self.assertRaises(ValidationError):
            orders.create(user_email="a@example.com", pickup_pincode="")
        with self.assertRaises(ValidationError):
            orders.create(user_email="a@example.com", pickup_pincode="56A001")
        with self.assertRaises(ValidationError):
            orders.create(user_email="a@example.com", order_type="freight", pickup_pincode="560001")
        with self.assertRaises(ValidationError):
            orders.create(user_email="a@example.com", pickup_pincode="560001", favourite_colour="blue")
        with self.assertRaises(ValidationError):
            orders.create(user_email="a@example.com", pickup_pincode="560001", package_weight_kg=-2)

    def test_get_by_id_missing_raises(self):
        with self.assertRaises(NotFoundError):
            self.services.orders.get_by_id("no-such-order")
        self.assertIsNone(self.services.orders.find(""))

    def test_update_merges_known_fields_and_records_status(self):
        order = self.make_order()
        updated = self.services.orders.update(order.id, move_size="3BHK", status=OrderStatus.QUOTES_REQUESTED)
        self.assertEqual(updated.move_size, "3BHK")
        self.assertEqual(updated.status, OrderStatus.QUOTES_REQUESTED)
        statuses = [h.status for h in self.services.orders.history(order.id)]
        self.assertEqual(statuses, [OrderStatus.INITIATED, OrderStatus.QUOTES_REQUESTED])
        with self.assertRaises(ValidationError):
            self.services.orders.update(order.id, order_number="ORD-HACKED")

    def test_cancel_rules(self):
        order = self.make_order()
        with self.assertRaises(AuthorizationError):
            self.services.orders.cancel(order.id, actor_email="stranger@example.com")
        cancelled = self.services.orders.cancel(order.id, actor_email=order.user_email, reason="Plans changed")
        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        self.assertEqual(cancelled.cancel_reason, "Plans changed")
        with self.assertRaises(ConflictError):
            self.services.orders.cancel(order.id, actor_email=order.user_email)

    def test_list_by_vendor_includes_invited_and_quoted_orders(self):
        vendor = self.make_vendor("Lister")
        invited = self.make_order()
        quoted = self.make_order()
        unrelated = self.make_order()
        self.services.quotes.request_quotes(invited.id, [vendor.id], user_email=invited.user_email)
        self.services.quotes.submit_quote(quoted.id, vendor.id, 1500)
        ids = {o.id for o in self.services.orders.list_by_vendor(vendor.id)}
        self.assertIn(invited.id, ids)
        self.assertIn(quoted.id, ids)
        self.assertNotIn(unrelated.id, ids)

    def test_list_by_user_email_is_case_insensitive(self):
        email = f"Owner{self._suffix()}@Example.com"
        order = self.make_order(email)
        rows = self.services.orders.list_by_user_email(email.upper())
        self.assertEqual([o.id for o in rows], [order.id])


if __name__ == "__main__":
    unittest.main()
