import json
from datetime import datetime

from movemarket.extensions import db


class JobRun(db.Model):
    """One pass of a background job (outbox dispatcher, rider sweep)."""

    __tablename__ = "job_runs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(64), nullable=False, index=True)
    ok = db.Column(db.Boolean, nullable=False, default=True)
    duration_ms = db.Column(db.Integer, nullable=True)
    summary_json = db.Column(db.Text, nullable=True)
    error = db.Column(db.Text, nullable=True)
    ran_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    @classmethod
    def latest(cls, job_name: str):
        return cls.query.filter_by(job_name=job_name).order_by(cls.ran_at.desc(), cls.id.desc()).first()

    def summary(self) -> dict:
        try:
            data = json.loads(self.summary_json or "{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def age_seconds(self, now: datetime | None = None) -> int | None:
        if self.ran_at is None:
            return None
        return max(0, int(((now or datetime.utcnow()) - self.ran_at).total_seconds()))

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "job_name": self.job_name or "",
            "ok": bool(self.ok),
            "ran_at": self.ran_at.isoformat() if self.ran_at else None,
            "age_seconds": self.age_seconds(),
            "duration_ms": self.duration_ms,
            "summary": self.summary(),
            "error": self.error or None,
        }
