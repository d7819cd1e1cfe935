from __future__ import annotations

import os
import uuid

from movemarket.integrations.payments.base import PaymentsProvider, RemoteOrder, RemotePayment, RemoteRefund


class MockPaymentsProvider(PaymentsProvider):
    """In-process processor for dev and tests.

    Set ``MOCK_PAYMENTS_FORCE_FAIL=1`` to make every call fail the way a
    processor outage would.
    """

    name = "mock"

    def __init__(self, *, key_id: str = "rzp_test_mock", key_secret: str = "mock-secret", timeout: int = 25):
        super().__init__(key_id=key_id, key_secret=key_secret, timeout=timeout)
        self.orders: dict[str, RemoteOrder] = {}
        self.refunds: list[RemoteRefund] = []

    def _check_failure(self, op: str) -> None:
        if (os.getenv("MOCK_PAYMENTS_FORCE_FAIL") or "").strip() == "1":
            raise RuntimeError(f"MOCK_{op}_FAILED:processor unavailable")

    def create_order(self, *, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> RemoteOrder:
        self._check_failure("ORDER")
        order = RemoteOrder(
            id=f"order_mock_{uuid.uuid4().hex[:14]}",
            amount=int(amount_minor),
            currency=currency,
            receipt=receipt,
            raw={"notes": notes or {}, "provider": self.name},
        )
        self.orders[order.id] = order
        return order

    def refund(self, payment_id: str, *, amount_minor: int | None = None, notes: dict | None = None) -> RemoteRefund:
        self._check_failure("REFUND")
        refund = RemoteRefund(
            id=f"rfnd_mock_{uuid.uuid4().hex[:14]}",
            amount=int(amount_minor or 0),
            status="processed",
            raw={"payment_id": payment_id, "notes": notes or {}},
        )
        self.refunds.append(refund)
        return refund

    def fetch_payment(self, payment_id: str) -> RemotePayment:
        self._check_failure("FETCH")
        return RemotePayment(id=payment_id, status="captured", amount=0, currency="INR", raw={"provider": self.name})
