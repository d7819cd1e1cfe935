from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass


@dataclass
class RemoteOrder:
    id: str
    amount: int
    currency: str
    receipt: str
    raw: dict | None = None


@dataclass
class RemoteRefund:
    id: str
    amount: int
    status: str
    raw: dict | None = None


@dataclass
class RemotePayment:
    id: str
    status: str
    amount: int
    currency: str
    raw: dict | None = None


def compute_signature(remote_order_id: str, remote_payment_id: str, secret: str) -> str:
    message = f"{remote_order_id}|{remote_payment_id}".encode("utf-8")
    return hmac.new((secret or "").encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(remote_order_id: str, remote_payment_id: str, signature: str, secret: str) -> bool:
    expected = compute_signature(remote_order_id, remote_payment_id, secret)
    return hmac.compare_digest(expected, (signature or "").strip())


class PaymentsProvider:
    name = "unknown"

    def __init__(self, *, key_id: str, key_secret: str, timeout: int = 25):
        self.key_id = key_id
        self.key_secret = key_secret
        self.timeout = timeout

    def verify_payment_signature(self, remote_order_id: str, remote_payment_id: str, signature: str) -> bool:
        return verify_signature(remote_order_id, remote_payment_id, signature, self.key_secret)

    def create_order(self, *, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> RemoteOrder:
        raise NotImplementedError

    def refund(self, payment_id: str, *, amount_minor: int | None = None, notes: dict | None = None) -> RemoteRefund:
        raise NotImplementedError

    def fetch_payment(self, payment_id: str) -> RemotePayment:
        raise NotImplementedError
