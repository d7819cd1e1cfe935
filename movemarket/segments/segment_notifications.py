from __future__ import annotations

from flask import Blueprint, request

from movemarket.segments.common import (
    current_user,
    forbidden,
    is_admin,
    ok,
    rider_for,
    unauthorized,
    vendor_for,
)
from movemarket.services import get_services

notifications_bp = Blueprint("notifications_bp", __name__, url_prefix="/api")


def _recipient_keys(user) -> list[str]:
    keys = [user.email]
    if user.phone:
        keys.append(user.phone)
    vendor = vendor_for(user)
    if vendor is not None:
        keys.extend(k for k in (vendor.id, vendor.email, vendor.whatsapp) if k)
    rider = rider_for(user)
    if rider is not None:
        keys.extend(k for k in (rider.id, rider.phone) if k)
    return list(dict.fromkeys(keys))


@notifications_bp.get("/notifications")
def list_notifications():
    user = current_user()
    if not user:
        return unauthorized()
    rows = get_services().notifications.list_for_recipients(_recipient_keys(user))
    return ok({"items": [x.to_dict() for x in rows]})


@notifications_bp.get("/admin/notifications")
def admin_list_notifications():
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    rows = get_services().notifications.list_all(
        status=(request.args.get("status") or "").strip() or None,
        event_type=(request.args.get("event_type") or "").strip() or None,
        recipient_type=(request.args.get("recipient_type") or "").strip() or None,
    )
    return ok({"items": [x.to_dict() for x in rows]})


@notifications_bp.get("/admin/notifications/stats")
def admin_notification_stats():
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    return ok({"stats": get_services().notifications.stats()})


@notifications_bp.post("/admin/notifications/<int:notification_id>/resend")
def admin_resend_notification(notification_id: int):
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    row = get_services().notifications.resend(notification_id)
    return ok({"notification": row.to_dict()}, 201)


@notifications_bp.post("/admin/notifications/dispatch")
def admin_dispatch_notifications():
    user = current_user()
    if not user:
        return unauthorized()
    if not is_admin(user):
        return forbidden()
    from movemarket.jobs.notification_dispatcher import dispatch_pending_notifications

    limit = request.args.get("limit", type=int)
    result = dispatch_pending_notifications(get_services(), limit=limit)
    return ok({"result": result})
