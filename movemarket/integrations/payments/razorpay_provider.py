from __future__ import annotations

import requests

from movemarket.integrations.common import error_detail
from movemarket.integrations.payments.base import PaymentsProvider, RemoteOrder, RemotePayment, RemoteRefund


RAZORPAY_BASE = "https://api.razorpay.com/v1"


class RazorpayPaymentsProvider(PaymentsProvider):
    name = "razorpay"

    def _auth(self) -> tuple[str, str]:
        return (self.key_id, self.key_secret)

    def _request(self, method: str, path: str, *, op: str, json: dict | None = None) -> dict:
        try:
            r = requests.request(
                method,
                f"{RAZORPAY_BASE}{path}",
                auth=self._auth(),
                json=json,
                timeout=self.timeout,
            )
        except requests.Timeout:
            raise RuntimeError(f"RAZORPAY_{op}_TIMEOUT:no response within {self.timeout}s")
        except requests.RequestException as e:
            raise RuntimeError(f"RAZORPAY_{op}_FAILED:{e}")
        if r.status_code < 200 or r.status_code >= 300:
            raise RuntimeError(f"RAZORPAY_{op}_FAILED:{error_detail(r)}")
        try:
            data = r.json() if r.content else {}
        except ValueError:
            raise RuntimeError(f"RAZORPAY_{op}_FAILED:invalid JSON response")
        return data if isinstance(data, dict) else {"payload": data}

    def create_order(self, *, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> RemoteOrder:
        payload = {
            "amount": int(amount_minor),
            "currency": currency,
            "receipt": receipt[:40],
            "notes": {str(k): str(v) for k, v in (notes or {}).items()},
        }
        data = self._request("POST", "/orders", op="ORDER", json=payload)
        return RemoteOrder(
            id=str(data.get("id") or ""),
            amount=int(data.get("amount") or amount_minor),
            currency=str(data.get("currency") or currency),
            receipt=str(data.get("receipt") or receipt),
            raw=data,
        )

    def refund(self, payment_id: str, *, amount_minor: int | None = None, notes: dict | None = None) -> RemoteRefund:
        payload: dict = {"notes": {str(k): str(v) for k, v in (notes or {}).items()}}
        if amount_minor is not None:
            payload["amount"] = int(amount_minor)
        data = self._request("POST", f"/payments/{payment_id}/refund", op="REFUND", json=payload)
        return RemoteRefund(
            id=str(data.get("id") or ""),
            amount=int(data.get("amount") or amount_minor or 0),
            status=str(data.get("status") or "processed"),
            raw=data,
        )

    def fetch_payment(self, payment_id: str) -> RemotePayment:
        data = self._request("GET", f"/payments/{payment_id}", op="FETCH")
        return RemotePayment(
            id=str(data.get("id") or payment_id),
            status=str(data.get("status") or ""),
            amount=int(data.get("amount") or 0),
            currency=str(data.get("currency") or "INR"),
            raw=data,
        )
