from __future__ import annotations

import unittest

from movemarket.integrations.payments.base import compute_signature, verify_signature
from movemarket.utils.geo import haversine_km, parse_coordinates
from movemarket.utils.money import format_inr, money_major_to_minor, money_minor_to_major, percent_of


class MoneyConversionTestCase(unittest.TestCase):
    def test_major_to_minor(self):
        self.assertEqual(money_major_to_minor(4500), 450000)
        self.assertEqual(money_major_to_minor(19.99), 1999)
        self.assertEqual(money_major_to_minor("250.5"), 25050)

    def test_non_positive_and_garbage_become_zero(self):
        for value in (0, -1, None, "abc", float("nan"), float("inf")):
            self.assertEqual(money_major_to_minor(value), 0)

    def test_minor_to_major(self):
        self.assertEqual(money_minor_to_major(1999), 19.99)
        self.assertEqual(money_minor_to_major(None), 0.0)

    def test_percent_of_rounds_half_up(self):
        self.assertEqual(percent_of(10000, 20), 2000.0)
        self.assertEqual(percent_of(333.33, 5), 16.67)
        self.assertEqual(percent_of(None, 20), 0.0)

    def test_format_inr(self):
        self.assertEqual(format_inr(4500), "₹4500")
        self.assertEqual(format_inr(4500.0), "₹4500")
        self.assertEqual(format_inr(12.5), "₹12.50")
        self.assertEqual(format_inr(None), "₹0")


class PaymentSignatureTestCase(unittest.TestCase):
    def test_signature_round_trip(self):
        sig = compute_signature("order_abc", "pay_xyz", "secret-1")
        self.assertEqual(len(sig), 64)
        self.assertTrue(verify_signature("order_abc", "pay_xyz", sig, "secret-1"))
        self.assertTrue(verify_signature("order_abc", "pay_xyz", f"  {sig} ", "secret-1"))

    def test_any_change_breaks_the_signature(self):
        sig = compute_signature("order_abc", "pay_xyz", "secret-1")
        flipped = ("1" if sig[0] == "0" else "0") + sig[1:]
        self.assertFalse(verify_signature("order_abc", "pay_xyz", flipped, "secret-1"))
        self.assertFalse(verify_signature("order_abc", "pay_xyz", sig, "secret-2"))
        self.assertFalse(verify_signature("order_abd", "pay_xyz", sig, "secret-1"))
        self.assertFalse(verify_signature("order_abc", "pay_xyz", "", "secret-1"))


class GeoHelpersTestCase(unittest.TestCase):
    def test_haversine(self):
        self.assertAlmostEqual(haversine_km(12.0, 77.0, 12.0, 77.0), 0.0, places=6)
        self.assertAlmostEqual(haversine_km(12.0, 77.0, 13.0, 77.0), 111.195, places=2)

    def test_parse_coordinates(self):
        self.assertEqual(parse_coordinates("12.97", "77.59"), (12.97, 77.59))
        self.assertIsNone(parse_coordinates(None, 77.0))
        self.assertIsNone(parse_coordinates(91, 0))
        self.assertIsNone(parse_coordinates(0, float("nan")))


if __name__ == "__main__":
    unittest.main()
