from movemarket.extensions import db


class Pincode(db.Model):
    __tablename__ = "pincodes"

    code = db.Column(db.String(12), primary_key=True)
    city = db.Column(db.String(80), nullable=True)
    state = db.Column(db.String(80), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "city": self.city or "",
            "state": self.state or "",
            "latitude": self.latitude,
            "longitude": self.longitude,
        }
