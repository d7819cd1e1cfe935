import json
from datetime import datetime

from movemarket.extensions import db


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)

    recipient = db.Column(db.String(255), nullable=False, index=True)  # email, phone or vendor/rider id
    recipient_type = db.Column(db.String(16), nullable=False, default="customer")  # customer | vendor | rider | admin
    type = db.Column(db.String(16), nullable=False, default="email")  # email | sms | whatsapp | in_app
    event_type = db.Column(db.String(64), nullable=False, default="generic", index=True)

    subject = db.Column(db.String(200), nullable=True)
    body = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending | sent | failed
    attempts = db.Column(db.Integer, nullable=False, default=0)
    next_attempt_at = db.Column(db.DateTime, nullable=True, index=True)
    last_error = db.Column(db.String(240), nullable=True)
    provider = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    sent_at = db.Column(db.DateTime, nullable=True)

    meta = db.Column(db.Text, nullable=True)  # JSON string

    def _load_meta(self):
        raw = (self.meta or "").strip()
        if not raw:
            return {}
        try:
            data = json.loads(raw)
            return data if isinstance(data, dict) else {}
        except Exception:
            return {}

    def _save_meta(self, meta: dict) -> None:
        try:
            self.meta = json.dumps(meta, separators=(",", ":"), default=str)
        except Exception:
            self.meta = "{}"

    def meta_dict(self):
        return self._load_meta()

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient or "",
            "recipient_type": self.recipient_type or "",
            "type": self.type or "email",
            "event_type": self.event_type or "",
            "subject": self.subject or "",
            "body": self.body or "",
            "status": self.status or "pending",
            "attempts": int(self.attempts or 0),
            "last_error": self.last_error or "",
            "provider": self.provider or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "metadata": self.meta_dict(),
        }
