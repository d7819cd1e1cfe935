from __future__ import annotations

import os
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

from movemarket.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PaymentGatewayError,
    SignatureError,
    ValidationError,
)
from movemarket.extensions import db
from movemarket.integrations.payments.base import compute_signature
from movemarket.models import Notification, Order, OrderStatus, Payment, PaymentIntent, Quote, Vendor
from movemarket.services.payment_intent_service import intent_history
from tests.base import MarketplaceTestCase


class PaymentSettlementTestCase(MarketplaceTestCase):
    def _quoted_order(self, amount=4500):
        order = self.make_order()
        vendor = self.make_vendor("Selected Movers")
        self.services.quotes.request_quotes(order.id, [vendor.id], user_email=order.user_email)
        self.services.quotes.submit_quote(order.id, vendor.id, amount)
        return order, vendor

    def test_payment_order_amount_is_in_minor_units(self):
        order, vendor = self._quoted_order(4500)
        remote = self.services.payments.create_payment_order(order.id, vendor.id, order.user_email)
        self.assertEqual(remote["amount"], 450000)
        self.assertEqual(remote["currency"], "INR")
        self.assertTrue(remote["id"].startswith("order_mock_"))
        self.assertEqual(remote["key"], self.services.payments.provider.key_id)
        intent = PaymentIntent.query.filter_by(remote_order_id=remote["id"]).first()
        self.assertIsNotNone(intent)
        self.assertEqual(intent.status, "initialized")

    def test_fractional_quote_converts_without_truncation(self):
        order, vendor = self._quoted_order(19.99)
        remote = self.services.payments.create_payment_order(order.id, vendor.id, order.user_email)
        self.assertEqual(remote["amount"], 1999)

    def test_verified_payment_marks_order_paid(self):
        order, vendor = self._quoted_order(4500)
        paid = self.pay(order, vendor)
        self.assertEqual(paid.status, OrderStatus.PAID)
        self.assertEqual(paid.selected_vendor_id, vendor.id)
        self.assertIsNotNone(paid.payment)
        self.assertEqual(paid.payment.amount, 4500)
        self.assertEqual(paid.payment.amount_minor, 450000)
        self.assertEqual(paid.payment.commission_rate, 20.0)
        self.assertFalse(paid.payment.applied_commission_discount)
        intent = PaymentIntent.query.filter_by(remote_order_id=paid.payment.remote_order_id).first()
        self.assertEqual(intent.status, "paid")
        self.assertIsNotNone(intent.paid_at)

    def test_paid_order_notifies_vendor_and_customer(self):
        order, vendor = self._quoted_order(4500)
        self.pay(order, vendor)
        subjects = {
            (n.recipient, n.subject)
            for n in Notification.query.filter(Notification.event_type.in_(("payment_received", "payment_confirmed"))).all()
        }
        self.assertIn((vendor.email, f"Payment Received for Order #{order.order_number}"), subjects)
        self.assertIn((order.user_email, f"Payment Confirmed for Order #{order.order_number}"), subjects)

    def test_unselected_vendors_are_told_the_outcome(self):
        order = self.make_order()
        chosen = self.make_vendor("Chosen")
        cheaper = self.make_vendor("Cheaper")
        silent = self.make_vendor("Silent")
        self.services.quotes.request_quotes(order.id, [chosen.id, cheaper.id, silent.id], user_email=order.user_email)
        self.services.quotes.submit_quote(order.id, chosen.id, 5000)
        self.services.quotes.submit_quote(order.id, cheaper.id, 4500)
        self.pay(order, chosen)

        updates = Notification.query.filter_by(event_type="vendor_not_selected").all()
        by_recipient = {n.recipient: n for n in updates}
        self.assertIn(cheaper.email, by_recipient)
        self.assertIn(silent.email, by_recipient)
        self.assertNotIn(chosen.email, by_recipient)

        quoted = by_recipient[cheaper.email]
        self.assertIn("₹500 higher than yours", quoted.body)
        self.assertTrue(quoted.meta_dict()["did_quote"])
        self.assertEqual(quoted.meta_dict()["quote_amount"], 4500.0)

        no_quote = by_recipient[silent.email]
        self.assertIn("didn't submit a quote", no_quote.body)
        self.assertFalse(no_quote.meta_dict()["did_quote"])

    def test_quote_is_locked_while_payment_order_is_open(self):
        order, vendor = self._quoted_order(4500)
        remote = self.services.payments.create_payment_order(order.id, vendor.id, order.user_email)
        with self.assertRaises(ConflictError) as ctx:
            self.services.quotes.submit_quote(order.id, vendor.id, 9000)
        self.assertEqual(ctx.exception.details["remote_order_id"], remote["id"])

        other = self.make_vendor("Still Quoting")
        self.services.quotes.submit_quote(order.id, other.id, 4000)

    def test_settles_the_charged_amount_not_a_later_quote(self):
        order, vendor = self._quoted_order(4500)
        payments = self.services.payments
        remote = payments.create_payment_order(order.id, vendor.id, order.user_email)
        db.session.add(
            Quote(
                order_id=order.id,
                vendor_id=vendor.id,
                amount=9000,
                created_at=datetime.utcnow() + timedelta(seconds=5),
            )
        )
        db.session.commit()

        signature = compute_signature(remote["id"], "pay_pinned", payments.provider.key_secret)
        paid = payments.verify_payment(order.id, vendor.id, remote["id"], "pay_pinned", signature)
        self.assertEqual(paid.payment.amount_minor, 450000)
        self.assertEqual(paid.payment.amount, 4500)
        self.assertEqual(paid.payment.refundable_amount, 4500)
        intent = PaymentIntent.query.filter_by(remote_order_id=remote["id"]).first()
        self.assertEqual(paid.payment.quote_id, intent.quote_id)
        self.assertEqual(paid.selected_quote_id, intent.quote_id)

    def test_unknown_payment_order_is_rejected(self):
        order, vendor = self._quoted_order(3000)
        payments = self.services.payments
        signature = compute_signature("order_unknown", "pay_unknown", payments.provider.key_secret)
        with self.assertRaises(ValidationError):
            payments.verify_payment(order.id, vendor.id, "order_unknown", "pay_unknown", signature)
        with self.assertRaises(ValidationError):
            payments.process_payment(order.id, vendor.id, {"remote_payment_id": "pay_no_order"})
        self.assertIsNone(db.session.get(Order, order.id).payment)

    def test_replayed_verification_is_idempotent(self):
        order, vendor = self._quoted_order(3000)
        payments = self.services.payments
        remote = payments.create_payment_order(order.id, vendor.id, order.user_email)
        signature = compute_signature(remote["id"], "pay_replay_1", payments.provider.key_secret)
        payments.verify_payment(order.id, vendor.id, remote["id"], "pay_replay_1", signature)
        again = payments.verify_payment(order.id, vendor.id, remote["id"], "pay_replay_1", signature)
        self.assertEqual(again.status, OrderStatus.PAID)
        self.assertEqual(Payment.query.filter_by(order_id=order.id).count(), 1)

    def test_second_distinct_payment_conflicts(self):
        order, vendor = self._quoted_order(3000)
        self.pay(order, vendor)
        with self.assertRaises(ConflictError):
            self.services.payments.process_payment(order.id, vendor.id, {"remote_payment_id": "pay_other"})

    def test_create_payment_order_after_paid_conflicts(self):
        order, vendor = self._quoted_order(3000)
        self.pay(order, vendor)
        with self.assertRaises(ConflictError):
            self.services.payments.create_payment_order(order.id, vendor.id, order.user_email)

    def test_create_payment_order_checks_owner_and_quote(self):
        order, vendor = self._quoted_order(3000)
        with self.assertRaises(AuthorizationError):
            self.services.payments.create_payment_order(order.id, vendor.id, "someone@else.com")
        other = self.make_vendor("No Quote")
        with self.assertRaises(NotFoundError):
            self.services.payments.create_payment_order(order.id, other.id, order.user_email)
        with self.assertRaises(NotFoundError):
            self.services.payments.create_payment_order("missing-order", vendor.id, order.user_email)

    def test_bad_signature_is_rejected_without_side_effects(self):
        order, vendor = self._quoted_order(3000)
        payments = self.services.payments
        remote = payments.create_payment_order(order.id, vendor.id, order.user_email)
        with self.assertRaises(SignatureError):
            payments.verify_payment(order.id, vendor.id, remote["id"], "pay_bad", "0" * 64)
        with self.assertRaises(ValidationError):
            payments.verify_payment(order.id, vendor.id, remote["id"], "", "sig")
        fresh = db.session.get(Order, order.id)
        self.assertEqual(fresh.status, OrderStatus.QUOTES_REQUESTED)
        self.assertIsNone(fresh.payment)

    def test_intent_for_another_order_is_rejected(self):
        first, vendor = self._quoted_order(3000)
        second = self.make_order()
        self.services.quotes.submit_quote(second.id, vendor.id, 3000)
        remote = self.services.payments.create_payment_order(first.id, vendor.id, first.user_email)
        with self.assertRaises(ValidationError):
            self.services.payments.process_payment(
                second.id,
                vendor.id,
                {"remote_order_id": remote["id"], "remote_payment_id": "pay_cross"},
            )

    def test_gateway_failure_surfaces_as_gateway_error(self):
        order, vendor = self._quoted_order(3000)
        with patch.dict(os.environ, {"MOCK_PAYMENTS_FORCE_FAIL": "1"}):
            with self.assertRaises(PaymentGatewayError) as ctx:
                self.services.payments.create_payment_order(order.id, vendor.id, order.user_email)
        self.assertIn("processor unavailable", ctx.exception.message)
        self.assertEqual(ctx.exception.details["provider_code"], "MOCK_ORDER_FAILED")
        self.assertEqual(PaymentIntent.query.filter_by(order_id=order.id).count(), 0)

    def test_failure_mid_commit_rolls_back_everything(self):
        order, vendor = self._quoted_order(3000)
        payments = self.services.payments
        remote = payments.create_payment_order(order.id, vendor.id, order.user_email)
        signature = compute_signature(remote["id"], "pay_rollback", payments.provider.key_secret)
        before = Notification.query.count()
        with patch.object(payments, "_notify_paid", side_effect=RuntimeError("outbox down")):
            with self.assertRaises(RuntimeError):
                payments.verify_payment(order.id, vendor.id, remote["id"], "pay_rollback", signature)

        fresh = db.session.get(Order, order.id)
        self.assertEqual(fresh.status, OrderStatus.QUOTES_REQUESTED)
        self.assertIsNone(fresh.payment)
        self.assertEqual(Payment.query.filter_by(order_id=order.id).count(), 0)
        self.assertEqual(Notification.query.count(), before)
        intent = PaymentIntent.query.filter_by(remote_order_id=remote["id"]).first()
        self.assertEqual(intent.status, "initialized")

    def test_full_refund_then_excess_refund(self):
        order, vendor = self._quoted_order(4500)
        paid = self.pay(order, vendor)
        payment_id = paid.payment.remote_payment_id

        refund = self.services.payments.process_refund(order.id, payment_id)
        self.assertEqual(refund.amount, 4500)
        self.assertTrue(refund.refund_id.startswith("rfnd_mock_"))
        fresh = db.session.get(Order, order.id)
        self.assertEqual(fresh.status, OrderStatus.REFUNDED)
        self.assertEqual(fresh.payment.refund_status, "full")
        intent = PaymentIntent.query.filter_by(remote_order_id=fresh.payment.remote_order_id).first()
        self.assertEqual(intent.status, "refunded")
        self.assertEqual([s.to_status for s in intent_history(intent)], ["paid", "refunded"])

        note = Notification.query.filter_by(event_type="refund_processed", recipient=order.user_email).first()
        self.assertIn(f"A refund of ₹4500 has been processed for your order #{order.order_number}.", note.body)

        with self.assertRaises(ValidationError):
            self.services.payments.process_refund(order.id, payment_id, 1)
        with self.assertRaises(ConflictError):
            self.services.payments.process_refund(order.id, payment_id)

    def test_partial_refunds_accumulate(self):
        order, vendor = self._quoted_order(1000)
        paid = self.pay(order, vendor)
        payment_id = paid.payment.remote_payment_id
        self.services.payments.process_refund(order.id, payment_id, 400)
        fresh = db.session.get(Order, order.id)
        self.assertEqual(fresh.status, OrderStatus.PAID)
        self.assertEqual(fresh.payment.refund_status, "partial")
        with self.assertRaises(ValidationError):
            self.services.payments.process_refund(order.id, payment_id, 600.01)
        self.services.payments.process_refund(order.id, payment_id, 600)
        fresh = db.session.get(Order, order.id)
        self.assertEqual(fresh.status, OrderStatus.REFUNDED)
        self.assertEqual(fresh.payment.refunded_amount, 1000)

    def test_refund_validation(self):
        order, vendor = self._quoted_order(1000)
        with self.assertRaises(NotFoundError):
            self.services.payments.process_refund(order.id, "pay_none")
        paid = self.pay(order, vendor)
        with self.assertRaises(ValidationError):
            self.services.payments.process_refund(order.id, "pay_wrong")
        for bad in (0, -5, "abc", float("nan")):
            with self.assertRaises(ValidationError):
                self.services.payments.process_refund(order.id, paid.payment.remote_payment_id, bad)

    def test_discount_credit_applies_to_next_paid_order(self):
        vendor = self.make_vendor("Affiliate")
        self.services.commissions.create_cross_lead(
            vendor.id,
            customer_email=f"lead{self._suffix()}@example.com",
            pickup_pincode="400001",
        )
        order = self.make_order()
        self.services.quotes.submit_quote(order.id, vendor.id, 2000)
        paid = self.pay(order, vendor)
        self.assertTrue(paid.payment.applied_commission_discount)
        self.assertEqual(paid.payment.commission_rate, 5.0)
        self.assertEqual(db.session.get(Vendor, vendor.id).discounted_commissions_used, 1)

        second = self.make_order()
        self.services.quotes.submit_quote(second.id, vendor.id, 2000)
        paid_again = self.pay(second, vendor)
        self.assertFalse(paid_again.payment.applied_commission_discount)
        self.assertEqual(paid_again.payment.commission_rate, 20.0)


if __name__ == "__main__":
    unittest.main()
