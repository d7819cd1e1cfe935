from __future__ import annotations

from flask import Blueprint, request

from movemarket.segments.common import (
    actor_for,
    current_user,
    forbidden,
    is_admin,
    json_body,
    ok,
    rider_for,
    unauthorized,
)
from movemarket.services import get_services

delivery_bp = Blueprint("delivery_bp", __name__, url_prefix="/api")


@delivery_bp.post("/admin/orders/<order_id>/assign-rider")
def auto_assign_rider(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    payload = json_body()
    pickup = payload.get("pickup_location")
    rider = get_services().delivery.assign_rider_to_delivery(
        order_id,
        pickup if isinstance(pickup, dict) else None,
    )
    order = get_services().orders.get_by_id(order_id)
    return ok(
        {
            "assigned": rider is not None,
            "rider": rider.to_dict() if rider else None,
            "order": order.to_dict(),
        }
    )


@delivery_bp.post("/admin/orders/<order_id>/rider")
def manual_assign_rider(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    payload = json_body()
    rider = get_services().delivery.assign_specific_rider(
        order_id,
        str(payload.get("rider_id") or ""),
        actor=actor_for(user),
    )
    return ok({"rider": rider.to_dict()})


@delivery_bp.post("/delivery/<order_id>/status")
def update_delivery_status(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    actor = actor_for(user)
    if actor["type"] not in ("rider", "admin"):
        return forbidden()
    payload = json_body()
    row = get_services().delivery.transition_delivery(
        order_id,
        str(payload.get("status") or ""),
        notes=str(payload.get("notes") or ""),
        actor=actor,
        metadata=payload.get("metadata") if isinstance(payload.get("metadata"), dict) else None,
    )
    return ok({"transition": row.to_dict()})


@delivery_bp.get("/delivery/<order_id>/history")
def delivery_history(order_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    services = get_services()
    order = services.orders.get_by_id(order_id)
    rider = rider_for(user)
    allowed = (
        is_admin(user)
        or (order.user_email or "").lower() == (user.email or "").lower()
        or (rider is not None and rider.id == order.rider_id)
    )
    if not allowed:
        return forbidden()
    return ok({"items": [t.to_dict() for t in services.delivery.delivery_history(order.id)]})


@delivery_bp.post("/riders/me/location")
def update_my_location():
    user = current_user()
    if not user:
        return unauthorized()
    rider = rider_for(user)
    if rider is None:
        return forbidden("Rider profile required")
    payload = json_body()
    rider = get_services().delivery.update_rider_location(rider.id, payload.get("lat"), payload.get("lon"))
    return ok({"rider": rider.to_dict()})


@delivery_bp.post("/riders/me/status")
def update_my_status():
    user = current_user()
    if not user:
        return unauthorized()
    rider = rider_for(user)
    if rider is None:
        return forbidden("Rider profile required")
    payload = json_body()
    rider = get_services().delivery.update_rider_status(rider.id, str(payload.get("status") or ""))
    return ok({"rider": rider.to_dict()})


@delivery_bp.get("/admin/riders")
def admin_list_riders():
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    rows = get_services().delivery.list_riders(status=(request.args.get("status") or "").strip() or None)
    return ok({"items": [r.to_dict() for r in rows]})


@delivery_bp.post("/admin/riders/<rider_id>/approve")
def admin_approve_rider(rider_id: str):
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    rider = get_services().delivery.approve_rider(rider_id, actor=actor_for(user))
    return ok({"rider": rider.to_dict()})
