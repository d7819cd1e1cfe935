from datetime import datetime

from movemarket.extensions import db


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    # One verified payment per order.
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, unique=True, index=True)
    vendor_id = db.Column(db.String(36), nullable=False, index=True)
    quote_id = db.Column(db.String(36), nullable=True)

    provider = db.Column(db.String(32), nullable=False, default="mock")
    remote_order_id = db.Column(db.String(80), nullable=True, index=True)
    remote_payment_id = db.Column(db.String(80), nullable=False, unique=True, index=True)
    signature = db.Column(db.String(128), nullable=True)

    amount = db.Column(db.Float, nullable=False)
    amount_minor = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="INR")
    paid_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    applied_commission_discount = db.Column(db.Boolean, nullable=False, default=False)
    commission_rate = db.Column(db.Float, nullable=False, default=20.0)

    refunded_amount = db.Column(db.Float, nullable=False, default=0.0)
    refund_status = db.Column(db.String(24), nullable=True)  # partial | full

    refunds = db.relationship("Refund", backref="payment", lazy="select", order_by="Refund.created_at")

    @property
    def refundable_amount(self) -> float:
        remaining = round(float(self.amount or 0.0) - float(self.refunded_amount or 0.0), 2)
        return remaining if remaining > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_id": self.order_id,
            "vendor_id": self.vendor_id,
            "quote_id": self.quote_id,
            "provider": self.provider or "",
            "remote_order_id": self.remote_order_id or "",
            "remote_payment_id": self.remote_payment_id or "",
            "amount": float(self.amount or 0.0),
            "amount_minor": int(self.amount_minor or 0),
            "currency": self.currency or "INR",
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "applied_commission_discount": bool(self.applied_commission_discount),
            "commission_rate": float(self.commission_rate or 0.0),
            "refunded_amount": float(self.refunded_amount or 0.0),
            "refund_status": self.refund_status,
            "refunds": [r.to_dict() for r in (self.refunds or [])],
        }


class Refund(db.Model):
    __tablename__ = "refunds"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)
    order_id = db.Column(db.String(36), nullable=False, index=True)
    refund_id = db.Column(db.String(80), nullable=False, unique=True, index=True)
    amount = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(24), nullable=False, default="processed")
    reason = db.Column(db.String(240), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "refund_id": self.refund_id or "",
            "order_id": self.order_id,
            "amount": float(self.amount or 0.0),
            "status": self.status or "",
            "reason": self.reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
