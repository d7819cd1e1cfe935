from __future__ import annotations

import os
import time
import unittest

from movemarket import create_app
from movemarket.extensions import db
from movemarket.integrations.payments.base import compute_signature
from movemarket.models import Order, Rider, RiderStatus, User, Vendor
from movemarket.utils.jwt_utils import create_access_token

_ENV_OVERRIDES = {
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "DATABASE_URL": "sqlite:///:memory:",
    "MOVEMARKET_ENV": "test",
    "PAYMENTS_PROVIDER": "mock",
    "MESSAGING_PROVIDER": "mock",
    "SENTRY_DSN": "",
}


class MarketplaceTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_env = {k: os.getenv(k) for k in _ENV_OVERRIDES}
        os.environ.update(_ENV_OVERRIDES)
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()
        cls.services = cls.app.extensions["movemarket"]

    @classmethod
    def tearDownClass(cls):
        for key, value in cls._prev_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def setUp(self):
        self._ctx = self.app.app_context()
        self._ctx.push()

    def tearDown(self):
        db.session.rollback()
        db.session.remove()
        self._ctx.pop()

    def _suffix(self) -> str:
        return str(time.time_ns())

    def make_user(self, role: str = "customer") -> User:
        suffix = self._suffix()
        user = User(name=f"{role}-{suffix}", email=f"{role}{suffix}@example.com", role=role)
        db.session.add(user)
        db.session.commit()
        return user

    def make_vendor(self, name: str = "Vendor", *, email: str | None = None, whatsapp: str | None = None, user: User | None = None) -> Vendor:
        suffix = self._suffix()
        vendor = Vendor(
            business_name=f"{name} {suffix[-4:]}",
            email=email if email is not None else f"vendor{suffix}@example.com",
            whatsapp=whatsapp,
            user_id=user.id if user else None,
        )
        db.session.add(vendor)
        db.session.commit()
        return vendor

    def make_rider(
        self,
        lat: float,
        lon: float,
        *,
        status: str = RiderStatus.AVAILABLE,
        rating: float = 4.8,
        completed: int = 100,
        max_weight_kg: float = 50.0,
        user: User | None = None,
    ) -> Rider:
        suffix = self._suffix()
        rider = Rider(
            name=f"Rider {suffix[-4:]}",
            phone=f"+91{suffix[-10:]}",
            status=status,
            current_lat=lat,
            current_lon=lon,
            rating=rating,
            completed_deliveries=completed,
            max_weight_kg=max_weight_kg,
            user_id=user.id if user else None,
        )
        db.session.add(rider)
        db.session.commit()
        return rider

    def make_order(self, email: str | None = None, *, order_type: str = "move", **extra) -> Order:
        return self.services.orders.create(
            user_email=email or f"customer{self._suffix()}@example.com",
            order_type=order_type,
            pickup_pincode="560001",
            destination_pincode="560034",
            **extra,
        )

    def make_paid_parcel(self, email: str | None = None, **extra) -> Order:
        fields = {"pickup_pincode": "560001", "destination_pincode": "560034"}
        fields.update(extra)
        order = self.services.orders.create(
            user_email=email or f"customer{self._suffix()}@example.com",
            order_type="parcel",
            **fields,
        )
        courier = self.make_vendor("Parcel Co")
        self.services.quotes.submit_quote(order.id, courier.id, 300)
        return self.pay(order, courier)

    def auth_headers(self, user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    def pay(self, order: Order, vendor: Vendor) -> Order:
        """Drive create-order, sign and verify through the mock processor."""
        payments = self.services.payments
        remote = payments.create_payment_order(order.id, vendor.id, order.user_email)
        payment_id = f"pay_{self._suffix()}"
        signature = compute_signature(remote["id"], payment_id, payments.provider.key_secret)
        return payments.verify_payment(order.id, vendor.id, remote["id"], payment_id, signature)
