from __future__ import annotations

from flask import Blueprint

from movemarket.segments.common import (
    actor_for,
    current_user,
    forbidden,
    is_admin,
    json_body,
    ok,
    unauthorized,
)
from movemarket.services import get_services

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api")


def _pick(payload: dict, *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if value:
            return str(value).strip()
    return ""


@payments_bp.post("/payments/orders")
def create_payment_order():
    user = current_user()
    if not user:
        return unauthorized()
    payload = json_body()
    remote = get_services().payments.create_payment_order(
        _pick(payload, "order_id"),
        _pick(payload, "vendor_id"),
        user.email,
    )
    return ok({"payment_order": remote}, 201)


@payments_bp.post("/payments/verify")
def verify_payment():
    user = current_user()
    if not user:
        return unauthorized()
    payload = json_body()
    order = get_services().payments.verify_payment(
        _pick(payload, "order_id"),
        _pick(payload, "vendor_id"),
        _pick(payload, "razorpay_order_id", "remote_order_id"),
        _pick(payload, "razorpay_payment_id", "remote_payment_id"),
        _pick(payload, "razorpay_signature", "signature"),
    )
    return ok({"order": order.to_dict()})


@payments_bp.post("/admin/orders/<order_id>/refund")
def refund_order(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    payload = json_body()
    refund = get_services().payments.process_refund(
        order_id,
        _pick(payload, "payment_id"),
        payload.get("amount"),
        reason=str(payload.get("reason") or "Customer requested refund"),
        actor=actor_for(user),
    )
    order = get_services().orders.get_by_id(order_id)
    return ok({"refund": refund.to_dict(), "order": order.to_dict()})


@payments_bp.get("/admin/payments/<payment_id>/status")
def payment_status(payment_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    return ok({"payment": get_services().payments.get_payment_status(payment_id)})
