from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Favorite(db.Model):
    """A product a customer starred. At most one row per (user, product)."""
    __tablename__ = "favorites"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_favorites_user_product"),
        db.Index("ix_favorites_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "created_at": to_utc_z(self.created_at),
        }


class Address(db.Model):
    """
    Saved delivery address in a customer's address book.

    Same fields as OrderDelivery; checkout copies them into the order, so
    editing or deleting an address never changes past orders.
    """
    __tablename__ = "addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    street = db.Column(db.String(255), nullable=False)
    number = db.Column(db.String(32), nullable=False)
    district = db.Column(db.String(120), nullable=False)
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(2), nullable=False)
    zip = db.Column(db.String(16), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", backref=db.backref("addresses", lazy=True))

    def delivery_fields(self) -> dict:
        return {
            "street": self.street,
            "number": self.number,
            "district": self.district,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            **self.delivery_fields(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
