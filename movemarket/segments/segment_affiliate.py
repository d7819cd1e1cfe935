from __future__ import annotations

from flask import Blueprint

from movemarket.segments.common import current_user, forbidden, json_body, ok, unauthorized, vendor_for
from movemarket.services import get_services
from movemarket.services.order_store import CREATE_EXTRA_FIELDS

affiliate_bp = Blueprint("affiliate_bp", __name__, url_prefix="/api")


def _vendor_or_error():
    user = current_user()
    if not user:
        return None, unauthorized()
    vendor = vendor_for(user)
    if vendor is None:
        return None, forbidden("Vendor profile required")
    return vendor, None


@affiliate_bp.get("/vendors/me/commission")
def my_commission_discount():
    vendor, error = _vendor_or_error()
    if error:
        return error
    discount = get_services().commissions.check_vendor_commission_discount(vendor.id)
    return ok({"commission": discount.to_dict()})


@affiliate_bp.post("/cross-leads")
def submit_cross_lead():
    vendor, error = _vendor_or_error()
    if error:
        return error
    payload = json_body()
    details = {k: payload[k] for k in CREATE_EXTRA_FIELDS if k in payload}
    order = get_services().commissions.create_cross_lead(
        vendor.id,
        customer_email=str(payload.get("customer_email") or ""),
        pickup_pincode=payload.get("pickup_pincode"),
        destination_pincode=payload.get("destination_pincode"),
        vendor_managed=bool(payload.get("vendor_managed")),
        **details,
    )
    return ok({"order": order.to_dict()}, 201)


@affiliate_bp.get("/cross-leads/mine")
def my_cross_leads():
    vendor, error = _vendor_or_error()
    if error:
        return error
    rows = get_services().commissions.list_vendor_cross_leads(vendor.id)
    return ok({"items": [o.to_dict() for o in rows]})


@affiliate_bp.get("/cross-leads/available")
def available_cross_leads():
    vendor, error = _vendor_or_error()
    if error:
        return error
    rows = get_services().commissions.list_available_cross_leads(vendor.id)
    return ok({"items": [o.to_dict() for o in rows]})


@affiliate_bp.get("/affiliate/stats")
def affiliate_stats():
    vendor, error = _vendor_or_error()
    if error:
        return error
    return ok({"stats": get_services().commissions.affiliate_stats(vendor.id)})
