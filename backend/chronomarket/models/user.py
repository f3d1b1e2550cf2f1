from datetime import datetime

import sqlalchemy as sa

from chronomarket.extensions import db


AUTHENTICATION_PENDING = "PENDING"
AUTHENTICATION_APPROVED = "APPROVED"
AUTHENTICATION_REJECTED = "REJECTED"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)

    # Seller location shown on listing cards and matched by the location filter
    location_city = db.Column(db.String(120), nullable=True)
    location_country = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Added by a later migration; older databases may not have it yet.
    is_verified = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))

    authentication = db.relationship(
        "SellerAuthentication",
        back_populates="user",
        uselist=False,
        lazy="select",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name or "",
            "location_city": self.location_city or "",
            "location_country": self.location_country or "",
            "is_verified": bool(self.is_verified),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SellerAuthentication(db.Model):
    """Identity check record for a seller, one per user."""

    __tablename__ = "seller_authentications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)
    status = db.Column(db.String(24), nullable=False, default=AUTHENTICATION_PENDING, server_default=AUTHENTICATION_PENDING)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="authentication")
