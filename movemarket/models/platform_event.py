from datetime import datetime
import json

from movemarket.extensions import db


class PlatformEvent(db.Model):
    """Audit row for marketplace decisions: cross leads, rider matches, settlements, refunds."""

    __tablename__ = "platform_events"

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(80), nullable=False, index=True)
    severity = db.Column(db.String(16), nullable=False, default="INFO")

    # Who acted: "customer", "vendor", "rider", "admin" or "system".
    actor_type = db.Column(db.String(32), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True, index=True)

    # What it was about, usually ("order", order id) or ("rider", rider id).
    subject_type = db.Column(db.String(80), nullable=True, index=True)
    subject_id = db.Column(db.String(120), nullable=True, index=True)

    request_id = db.Column(db.String(80), nullable=True, index=True)
    idempotency_key = db.Column(db.String(180), nullable=True, unique=True, index=True)
    metadata_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    @classmethod
    def order_trail(cls, order_id: str, *, limit: int = 200):
        return (
            cls.query.filter_by(subject_type="order", subject_id=str(order_id))
            .order_by(cls.created_at.asc(), cls.id.asc())
            .limit(limit)
            .all()
        )

    def metadata_dict(self) -> dict:
        try:
            data = json.loads(self.metadata_json or "{}")
        except ValueError:
            return {"raw": str(self.metadata_json)}
        return data if isinstance(data, dict) else {"raw": data}

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "event_type": self.event_type or "",
            "severity": self.severity or "INFO",
            "actor": {"type": self.actor_type or "", "id": self.actor_id},
            "subject": {"type": self.subject_type or "", "id": self.subject_id or ""},
            "request_id": self.request_id or "",
            "metadata": self.metadata_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
