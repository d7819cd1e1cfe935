from datetime import datetime

from flask_login import UserMixin

from movemarket.extensions import db


USER_ROLES = ("customer", "vendor", "rider", "admin")


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    phone = db.Column(db.String(32), unique=True, index=True, nullable=True)

    role = db.Column(db.String(32), nullable=False, default="customer")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": getattr(self, "phone", None),
            "role": self.role or "customer",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
