from datetime import datetime

import sqlalchemy as sa

from chronomarket.extensions import db


STATUS_DRAFT = "DRAFT"
STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"
STATUS_SOLD = "SOLD"

LISTING_STATUSES = (STATUS_DRAFT, STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED, STATUS_SOLD)


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)

    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)

    brand = db.Column(db.String(80), nullable=False, index=True)
    model = db.Column(db.String(120), nullable=True)
    reference = db.Column(db.String(80), nullable=True)
    movement = db.Column(db.String(40), nullable=True, index=True)
    condition = db.Column(db.String(40), nullable=True, index=True)
    gender = db.Column(db.String(16), nullable=True, index=True)
    year = db.Column(db.Integer, nullable=True, index=True)

    # Price in euro cents
    price_minor_units = db.Column(db.Integer, nullable=False, default=0, index=True)

    location = db.Column(db.String(160), nullable=True)
    # Free text from the listing form, e.g. "Box and papers", "Papers only"
    box_papers = db.Column(db.String(120), nullable=True)

    image_url = db.Column(db.String(512), nullable=True)

    # Only APPROVED listings are publicly searchable
    status = db.Column(db.String(24), nullable=False, default=STATUS_DRAFT, server_default=STATUS_DRAFT, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=datetime.utcnow, server_default=sa.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, server_default=sa.func.now())

    seller = db.relationship("User", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "title": self.title,
            "description": self.description or "",
            "brand": self.brand or "",
            "model": self.model or "",
            "reference": self.reference or "",
            "movement": self.movement or "",
            "condition": self.condition or "",
            "gender": self.gender or "",
            "year": int(self.year) if self.year is not None else None,
            "price_minor_units": int(self.price_minor_units or 0),
            "location": self.location or "",
            "box_papers": self.box_papers or "",
            "image_url": self.image_url or "",
            "status": self.status or STATUS_DRAFT,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
