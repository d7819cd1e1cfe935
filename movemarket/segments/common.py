from __future__ import annotations

from flask import g, jsonify, request

from movemarket.extensions import db
from movemarket.models import Rider, User, Vendor
from movemarket.utils.jwt_utils import decode_token, get_bearer_token


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def unauthorized():
    payload = {"ok": False, "error": "UNAUTHORIZED", "message": "Unauthorized", "status": 401}
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), 401


def forbidden(message: str = "Forbidden"):
    payload = {"ok": False, "error": "FORBIDDEN", "message": message, "status": 403}
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), 403


def current_user() -> User | None:
    uid = getattr(g, "auth_user_id", None)
    if uid is None:
        token = get_bearer_token(request.headers.get("Authorization", ""))
        if not token:
            return None
        payload = decode_token(token)
        if not payload:
            return None
        try:
            uid = int(payload.get("sub"))
        except (TypeError, ValueError):
            return None
    return db.session.get(User, int(uid))


def role_of(user: User | None) -> str:
    return (getattr(user, "role", None) or "customer").strip().lower()


def is_admin(user: User | None) -> bool:
    return bool(user) and role_of(user) == "admin"


def vendor_for(user: User | None) -> Vendor | None:
    if user is None:
        return None
    return Vendor.query.filter_by(user_id=int(user.id)).first()


def rider_for(user: User | None) -> Rider | None:
    if user is None:
        return None
    return Rider.query.filter_by(user_id=int(user.id)).first()


def actor_for(user: User | None) -> dict:
    if user is None:
        return {"type": "system", "id": None}
    role = role_of(user)
    if role == "rider":
        rider = rider_for(user)
        return {"type": "rider", "id": rider.id if rider else None}
    if role == "vendor":
        vendor = vendor_for(user)
        return {"type": "vendor", "id": vendor.id if vendor else None}
    return {"type": role, "id": str(user.id)}


def ok(payload: dict | None = None, status: int = 200):
    body = {"ok": True}
    body.update(payload or {})
    return jsonify(body), status
