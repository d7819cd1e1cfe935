from datetime import datetime

from movemarket.extensions import db


class PaymentIntent(db.Model):
    __tablename__ = "payment_intents"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    vendor_id = db.Column(db.String(36), nullable=False, index=True)
    quote_id = db.Column(db.String(36), db.ForeignKey("quotes.id"), nullable=True)
    provider = db.Column(db.String(32), nullable=False, default="mock")
    remote_order_id = db.Column(db.String(80), nullable=False, unique=True, index=True)
    amount_minor = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="INR")
    status = db.Column(db.String(24), nullable=False, default="initialized", index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    paid_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_id": self.order_id,
            "vendor_id": self.vendor_id,
            "quote_id": self.quote_id,
            "provider": self.provider or "",
            "remote_order_id": self.remote_order_id or "",
            "amount_minor": int(self.amount_minor or 0),
            "currency": self.currency or "INR",
            "status": self.status or "initialized",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }
