from __future__ import annotations

import json
import secrets
import uuid
from datetime import datetime

from sqlalchemy.orm import validates

from movemarket.errors import ValidationError
from movemarket.extensions import db


class OrderStatus:
    INITIATED = "Initiated"
    QUOTES_REQUESTED = "Quotes Requested"
    PAID = "Paid"
    PENDING_RIDER_ASSIGNMENT = "Pending Rider Assignment"
    RIDER_ASSIGNED = "Rider Assigned"
    IN_DELIVERY = "In Delivery"
    DELIVERED = "Delivered"
    FAILED_DELIVERY = "Failed Delivery"
    REFUNDED = "Refunded"
    CANCELLED = "Cancelled"

    ALL = (
        INITIATED,
        QUOTES_REQUESTED,
        PAID,
        PENDING_RIDER_ASSIGNMENT,
        RIDER_ASSIGNED,
        IN_DELIVERY,
        DELIVERED,
        FAILED_DELIVERY,
        REFUNDED,
        CANCELLED,
    )
    PRE_PAYMENT = {INITIATED, QUOTES_REQUESTED}
    CLOSED = {REFUNDED, CANCELLED}


ORDER_TYPES = ("move", "parcel")
DISTANCE_CATEGORIES = ("intracity", "nearby_city", "intercity", "long_distance")
CROSS_LEAD_STATUSES = ("Submitted", "Converted")
DELIVERY_STATUSES = (
    "assigned",
    "accepted",
    "picked_up",
    "in_transit",
    "out_for_delivery",
    "delivered",
    "failed_delivery",
    "reattempt_delivery",
    "returned",
)


def _order_number() -> str:
    return f"ORD-{secrets.token_hex(3).upper()}"


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = db.Column(db.String(24), nullable=False, unique=True, index=True, default=_order_number)

    user_email = db.Column(db.String(255), nullable=False, index=True)
    order_type = db.Column(db.String(16), nullable=False, default="move", index=True)

    pickup_pincode = db.Column(db.String(12), nullable=True, index=True)
    destination_pincode = db.Column(db.String(12), nullable=True)
    pickup_address = db.Column(db.String(400), nullable=True)
    destination_address = db.Column(db.String(400), nullable=True)
    pickup_lat = db.Column(db.Float, nullable=True)
    pickup_lon = db.Column(db.Float, nullable=True)
    move_size = db.Column(db.String(40), nullable=True)
    move_date = db.Column(db.DateTime, nullable=True)
    package_weight_kg = db.Column(db.Float, nullable=True)
    distance_category = db.Column(db.String(24), nullable=True)

    status = db.Column(db.String(32), nullable=False, default=OrderStatus.INITIATED, index=True)

    vendor_requests_json = db.Column(db.Text, nullable=True)  # JSON list of invited vendor ids
    selected_vendor_id = db.Column(db.String(36), db.ForeignKey("vendors.id"), nullable=True, index=True)
    selected_quote_id = db.Column(db.String(36), nullable=True)

    is_cross_lead = db.Column(db.Boolean, nullable=False, default=False, index=True)
    referring_vendor_id = db.Column(db.String(36), db.ForeignKey("vendors.id"), nullable=True, index=True)
    cross_lead_status = db.Column(db.String(16), nullable=True)
    commission_rate = db.Column(db.Float, nullable=True)

    rider_id = db.Column(db.String(36), db.ForeignKey("riders.id"), nullable=True, index=True)
    delivery_status = db.Column(db.String(32), nullable=True)
    needs_manual_assignment = db.Column(db.Boolean, nullable=False, default=False)

    cancel_reason = db.Column(db.String(240), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    quotes = db.relationship(
        "Quote",
        backref="order",
        lazy="select",
        order_by="Quote.created_at",
        cascade="all, delete-orphan",
    )
    payment = db.relationship("Payment", backref="order", uselist=False, lazy="select")

    @validates("order_type")
    def _validate_order_type(self, key, value):
        v = (value or "").strip().lower()
        if v not in ORDER_TYPES:
            raise ValidationError(f"order_type must be one of {', '.join(ORDER_TYPES)}")
        return v

    @validates("status")
    def _validate_status(self, key, value):
        if value not in OrderStatus.ALL:
            raise ValidationError(f"unknown order status: {value}")
        return value

    @validates("distance_category")
    def _validate_distance_category(self, key, value):
        if value is None or value == "":
            return None
        v = str(value).strip().lower()
        if v not in DISTANCE_CATEGORIES:
            raise ValidationError(f"distance_category must be one of {', '.join(DISTANCE_CATEGORIES)}")
        return v

    @validates("cross_lead_status")
    def _validate_cross_lead_status(self, key, value):
        if value is None:
            return None
        if value not in CROSS_LEAD_STATUSES:
            raise ValidationError(f"unknown cross-lead status: {value}")
        return value

    @validates("delivery_status")
    def _validate_delivery_status(self, key, value):
        if value is None:
            return None
        if value not in DELIVERY_STATUSES:
            raise ValidationError(f"unknown delivery status: {value}")
        return value

    @property
    def vendor_requests(self) -> list[str]:
        raw = (self.vendor_requests_json or "").strip()
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except Exception:
            return []
        return [str(x) for x in data] if isinstance(data, list) else []

    @vendor_requests.setter
    def vendor_requests(self, values) -> None:
        seen: list[str] = []
        for v in values or []:
            s = str(v).strip()
            if s and s not in seen:
                seen.append(s)
        self.vendor_requests_json = json.dumps(seen, separators=(",", ":"))

    @property
    def is_paid(self) -> bool:
        return self.payment is not None

    @property
    def selected_quote(self):
        if not self.selected_quote_id:
            return None
        for q in self.quotes or []:
            if q.id == self.selected_quote_id:
                return q
        return None

    def latest_quote_for(self, vendor_id: str):
        found = None
        for q in self.quotes or []:
            if q.vendor_id == vendor_id:
                found = q
        return found

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number or "",
            "user_email": self.user_email or "",
            "order_type": self.order_type or "move",
            "pickup_pincode": self.pickup_pincode or "",
            "destination_pincode": self.destination_pincode or "",
            "pickup_address": self.pickup_address or "",
            "destination_address": self.destination_address or "",
            "pickup_lat": self.pickup_lat,
            "pickup_lon": self.pickup_lon,
            "move_size": self.move_size or "",
            "move_date": self.move_date.isoformat() if self.move_date else None,
            "package_weight_kg": self.package_weight_kg,
            "distance_category": self.distance_category,
            "status": self.status,
            "vendor_requests": self.vendor_requests,
            "quotes": [q.to_dict() for q in (self.quotes or [])],
            "selected_vendor_id": self.selected_vendor_id,
            "selected_quote": self.selected_quote.to_dict() if self.selected_quote else None,
            "is_cross_lead": bool(self.is_cross_lead),
            "referring_vendor_id": self.referring_vendor_id,
            "cross_lead_status": self.cross_lead_status,
            "commission_rate": float(self.commission_rate) if self.commission_rate is not None else None,
            "rider_id": self.rider_id,
            "delivery_status": self.delivery_status,
            "needs_manual_assignment": bool(self.needs_manual_assignment),
            "payment": self.payment.to_dict() if self.payment else None,
            "cancel_reason": self.cancel_reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Quote(db.Model):
    __tablename__ = "quotes"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    vendor_id = db.Column(db.String(36), db.ForeignKey("vendors.id"), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    description = db.Column(db.Text, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "vendor_id": self.vendor_id,
            "amount": float(self.amount or 0.0),
            "description": self.description or "",
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class OrderStatusHistory(db.Model):
    __tablename__ = "order_status_history"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.String(240), nullable=True)
    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_id": self.order_id,
            "status": self.status or "",
            "notes": self.notes or "",
            "created_by": self.created_by or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
