from __future__ import annotations

from flask import Blueprint, request

from movemarket.errors import ValidationError
from movemarket.models import Order, PlatformEvent
from movemarket.segments.common import (
    current_user,
    forbidden,
    is_admin,
    json_body,
    ok,
    role_of,
    unauthorized,
    vendor_for,
)
from movemarket.services import get_services
from movemarket.services.order_store import CREATE_EXTRA_FIELDS

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api")


def _can_view(user, order: Order) -> bool:
    if is_admin(user):
        return True
    if (order.user_email or "").lower() == (user.email or "").lower():
        return True
    vendor = vendor_for(user)
    if vendor is None:
        return False
    return (
        vendor.id == order.selected_vendor_id
        or vendor.id == order.referring_vendor_id
        or vendor.id in order.vendor_requests
        or order.latest_quote_for(vendor.id) is not None
    )


@orders_bp.post("/orders")
def create_order():
    user = current_user()
    if not user:
        return unauthorized()
    payload = json_body()
    extra = {k: payload[k] for k in CREATE_EXTRA_FIELDS if k in payload}
    order = get_services().orders.create(
        user_email=user.email,
        order_type=(payload.get("order_type") or "move"),
        pickup_pincode=payload.get("pickup_pincode"),
        destination_pincode=payload.get("destination_pincode"),
        created_by=user.email,
        **extra,
    )
    return ok({"order": order.to_dict()}, 201)


@orders_bp.get("/orders")
def list_orders():
    user = current_user()
    if not user:
        return unauthorized()
    orders = get_services().orders
    if role_of(user) == "vendor":
        vendor = vendor_for(user)
        rows = orders.list_by_vendor(vendor.id) if vendor else []
    else:
        rows = orders.list_by_user_email(user.email)
    return ok({"items": [o.to_dict() for o in rows]})


@orders_bp.get("/orders/<order_id>")
def get_order(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    order = get_services().orders.get_by_id(order_id)
    if not _can_view(user, order):
        return forbidden()
    return ok({"order": order.to_dict()})


@orders_bp.get("/orders/<order_id>/history")
def order_history(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    orders = get_services().orders
    order = orders.get_by_id(order_id)
    if not _can_view(user, order):
        return forbidden()
    return ok({"items": [h.to_dict() for h in orders.history(order.id)]})


@orders_bp.get("/admin/orders/<order_id>/events")
def admin_order_events(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    order = get_services().orders.get_by_id(order_id)
    return ok({"items": [e.to_dict() for e in PlatformEvent.order_trail(order.id)]})


@orders_bp.patch("/admin/orders/<order_id>")
def admin_update_order(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    order = get_services().orders.update(order_id, **json_body())
    return ok({"order": order.to_dict()})


@orders_bp.post("/orders/<order_id>/cancel")
def cancel_order(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    payload = json_body()
    order = get_services().orders.cancel(
        order_id,
        actor_email=user.email,
        is_admin=is_admin(user),
        reason=str(payload.get("reason") or ""),
    )
    return ok({"order": order.to_dict()})


@orders_bp.post("/orders/<order_id>/quote-requests")
def request_quotes(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    payload = json_body()
    vendor_ids = payload.get("vendor_ids")
    if not isinstance(vendor_ids, list):
        raise ValidationError("vendor_ids must be a list")
    order = get_services().quotes.request_quotes(
        order_id,
        vendor_ids,
        user_email=user.email,
        is_admin=is_admin(user),
    )
    return ok({"order": order.to_dict()})


@orders_bp.post("/orders/<order_id>/quotes")
def submit_quote(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    vendor = vendor_for(user)
    if vendor is None:
        return forbidden("Only vendors can submit quotes")
    payload = json_body()
    quote = get_services().quotes.submit_quote(
        order_id,
        vendor.id,
        payload.get("amount"),
        description=payload.get("description"),
    )
    return ok({"quote": quote.to_dict()}, 201)


@orders_bp.post("/orders/<order_id>/select-quote")
def select_quote(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    payload = json_body()
    order = get_services().quotes.select_quote(
        order_id,
        str(payload.get("vendor_id") or request.args.get("vendor_id") or ""),
        user_email=None if is_admin(user) else user.email,
    )
    return ok({"order": order.to_dict()})
