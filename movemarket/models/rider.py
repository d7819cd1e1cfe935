from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy.orm import validates

from movemarket.errors import ValidationError
from movemarket.extensions import db


class RiderStatus:
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"
    SUSPENDED = "suspended"
    PENDING = "pending"

    ALL = (AVAILABLE, BUSY, OFFLINE, SUSPENDED, PENDING)
    SELF_SERVICE = {AVAILABLE, BUSY, OFFLINE}


class Rider(db.Model):
    __tablename__ = "riders"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, unique=True, index=True)

    name = db.Column(db.String(120), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    vehicle_type = db.Column(db.String(32), nullable=True)
    max_weight_kg = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=RiderStatus.PENDING, index=True)
    current_lat = db.Column(db.Float, nullable=True)
    current_lon = db.Column(db.Float, nullable=True)
    location_updated_at = db.Column(db.DateTime, nullable=True)

    completed_deliveries = db.Column(db.Integer, nullable=False, default=0)
    rating = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @validates("status")
    def _validate_status(self, key, value):
        v = (value or "").strip().lower()
        if v not in RiderStatus.ALL:
            raise ValidationError(f"rider status must be one of {', '.join(RiderStatus.ALL)}")
        return v

    @property
    def has_location(self) -> bool:
        return self.current_lat is not None and self.current_lon is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": int(self.user_id) if self.user_id is not None else None,
            "name": self.name or "",
            "phone": self.phone or "",
            "email": self.email or "",
            "vehicle_type": self.vehicle_type or "",
            "max_weight_kg": self.max_weight_kg,
            "status": self.status,
            "current_location": (
                {"lat": self.current_lat, "lon": self.current_lon} if self.has_location else None
            ),
            "location_updated_at": self.location_updated_at.isoformat() if self.location_updated_at else None,
            "completed_deliveries": int(self.completed_deliveries or 0),
            "rating": float(self.rating or 0.0),
        }
