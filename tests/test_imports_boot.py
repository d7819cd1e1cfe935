from __future__ import annotations

import importlib
import unittest


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("movemarket")
        create_app = getattr(module, "create_app", None)
        self.assertTrue(callable(create_app))

    def test_import_main_app(self):
        module = importlib.import_module("main")
        app = getattr(module, "app", None)
        self.assertIsNotNone(app)

    def test_import_segments(self):
        for name in (
            "movemarket.segments.segment_orders",
            "movemarket.segments.segment_payments",
            "movemarket.segments.segment_delivery",
            "movemarket.segments.segment_affiliate",
            "movemarket.segments.segment_notifications",
        ):
            self.assertIsNotNone(importlib.import_module(name))


if __name__ == "__main__":
    unittest.main()
