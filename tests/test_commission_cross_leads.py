from __future__ import annotations

import unittest

from movemarket.errors import NotFoundError, ValidationError
from movemarket.extensions import db
from movemarket.models import CommissionRecord, Order, PlatformEvent, Vendor
from movemarket.services.commission_service import CommissionDiscount, CrossLeadStatus
from tests.base import MarketplaceTestCase


class CommissionCrossLeadTestCase(MarketplaceTestCase):
    def _lead(self, vendor, **extra):
        return self.services.commissions.create_cross_lead(
            vendor.id,
            customer_email=f"lead{self._suffix()}@example.com",
            pickup_pincode="400001",
            destination_pincode="411001",
            **extra,
        )

    def test_discount_property(self):
        discount = CommissionDiscount(True, 5.0, 3, 1)
        self.assertEqual(discount.remaining, 2)
        self.assertEqual(discount.to_dict()["remaining"], 2)
        self.assertEqual(CommissionDiscount(False, 20.0, 1, 4).remaining, 0)

    def test_vendor_without_leads_pays_standard_rate(self):
        vendor = self.make_vendor("Plain")
        discount = self.services.commissions.check_vendor_commission_discount(vendor.id)
        self.assertFalse(discount.has_discount)
        self.assertEqual(discount.rate, 20.0)
        unknown = self.services.commissions.check_vendor_commission_discount("missing")
        self.assertFalse(unknown.has_discount)

    def test_cross_lead_grants_a_discount_credit(self):
        vendor = self.make_vendor("Referrer")
        lead = self._lead(vendor)
        self.assertTrue(lead.is_cross_lead)
        self.assertEqual(lead.referring_vendor_id, vendor.id)
        self.assertEqual(lead.cross_lead_status, CrossLeadStatus.SUBMITTED)
        self.assertEqual(lead.commission_rate, 5.0)

        discount = self.services.commissions.check_vendor_commission_discount(vendor.id)
        self.assertTrue(discount.has_discount)
        self.assertEqual(discount.rate, 5.0)
        self.assertEqual(discount.remaining, 1)
        self.assertTrue(db.session.get(Vendor, vendor.id).referral_code.startswith("MV"))
        self.assertIsNotNone(PlatformEvent.query.filter_by(event_type="cross_lead_submitted", subject_id=lead.id).first())

    def test_create_cross_lead_validation(self):
        vendor = self.make_vendor()
        with self.assertRaises(NotFoundError):
            self.services.commissions.create_cross_lead("ghost", customer_email="a@example.com", pickup_pincode="400001")
        with self.assertRaises(ValidationError):
            self.services.commissions.create_cross_lead(vendor.id, customer_email="", pickup_pincode="400001")

    def test_self_referral_earns_nothing(self):
        vendor = self.make_vendor()
        earned = self.services.commissions.process_cross_lead_commission(vendor.id, vendor.id, 1000, 20, "order-x")
        self.assertFalse(earned)
        self.assertEqual(CommissionRecord.query.filter_by(referring_vendor_id=vendor.id).count(), 0)

    def test_converted_cross_lead_pays_referrer_commission(self):
        referrer = self.make_vendor("Referrer")
        mover = self.make_vendor("Mover")
        lead = self._lead(referrer)
        self.services.orders.update(lead.id, commission_rate=20)
        self.services.quotes.submit_quote(lead.id, mover.id, 10000)
        self.pay(lead, mover)

        records = self.services.commissions.commission_history(referrer.id)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].amount, 2000.0)
        self.assertEqual(records[0].selected_vendor_id, mover.id)
        self.assertEqual(db.session.get(Order, lead.id).cross_lead_status, CrossLeadStatus.CONVERTED)

        again = self.services.commissions.process_cross_lead_commission(referrer.id, mover.id, 10000, 20, lead.id)
        self.assertFalse(again)

    def test_listings_and_affiliate_stats(self):
        referrer = self.make_vendor("Stats")
        other = self.make_vendor("Other")
        lead = self._lead(referrer)
        managed = self._lead(referrer, vendor_managed=True)

        mine = {o.id for o in self.services.commissions.list_vendor_cross_leads(referrer.id)}
        self.assertEqual(mine, {lead.id, managed.id})
        available = {o.id for o in self.services.commissions.list_available_cross_leads(other.id)}
        self.assertIn(lead.id, available)
        self.assertNotIn(lead.id, {o.id for o in self.services.commissions.list_available_cross_leads(referrer.id)})

        self.services.quotes.submit_quote(lead.id, other.id, 3000)
        self.pay(lead, other)
        stats = self.services.commissions.affiliate_stats(referrer.id)
        self.assertEqual(stats["cross_leads_submitted"], 2)
        self.assertEqual(stats["cross_leads_converted"], 1)
        self.assertEqual(stats["total_commission_earned"], 150.0)
        self.assertEqual(stats["discount"]["remaining"], 2)
        with self.assertRaises(NotFoundError):
            self.services.commissions.affiliate_stats("ghost")


if __name__ == "__main__":
    unittest.main()
