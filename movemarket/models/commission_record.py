from datetime import datetime

from movemarket.extensions import db


class CommissionRecord(db.Model):
    """Immutable referral-commission entry owned by the referring vendor."""

    __tablename__ = "commission_records"
    __table_args__ = (
        db.UniqueConstraint("referring_vendor_id", "order_id", name="uq_commission_referrer_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    referring_vendor_id = db.Column(db.String(36), db.ForeignKey("vendors.id"), nullable=False, index=True)
    selected_vendor_id = db.Column(db.String(36), nullable=False)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    base_amount = db.Column(db.Float, nullable=False)
    commission_rate = db.Column(db.Float, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "referring_vendor_id": self.referring_vendor_id,
            "selected_vendor_id": self.selected_vendor_id,
            "order_id": self.order_id,
            "base_amount": float(self.base_amount or 0.0),
            "commission_rate": float(self.commission_rate or 0.0),
            "amount": float(self.amount or 0.0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
