from __future__ import annotations

import json
import uuid
from datetime import datetime

from movemarket.extensions import db


class Vendor(db.Model):
    __tablename__ = "vendors"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, unique=True, index=True)

    business_name = db.Column(db.String(160), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True, index=True)
    phone = db.Column(db.String(32), nullable=True)
    whatsapp = db.Column(db.String(32), nullable=True)
    service_areas_json = db.Column(db.Text, nullable=True)  # JSON list of pincodes

    # Affiliate program; initialized lazily on first cross-lead activity.
    referral_code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    affiliate_commission_rate = db.Column(db.Float, nullable=False, default=20.0)
    discounted_commissions_used = db.Column(db.Integer, nullable=False, default=0)
    affiliate_initialized_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def service_areas(self) -> list[str]:
        raw = (self.service_areas_json or "").strip()
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except Exception:
            return []
        return [str(x) for x in data] if isinstance(data, list) else []

    @service_areas.setter
    def service_areas(self, values) -> None:
        cleaned = sorted({str(v).strip() for v in (values or []) if str(v).strip()})
        self.service_areas_json = json.dumps(cleaned, separators=(",", ":"))

    @property
    def display_name(self) -> str:
        return (self.business_name or "").strip() or "Selected vendor"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": int(self.user_id) if self.user_id is not None else None,
            "business_name": self.business_name or "",
            "email": self.email or "",
            "phone": self.phone or "",
            "service_areas": self.service_areas,
            "referral_code": self.referral_code or "",
            "affiliate_commission_rate": float(self.affiliate_commission_rate or 0.0),
            "discounted_commissions_used": int(self.discounted_commissions_used or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
