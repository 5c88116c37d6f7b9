from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


COUPON_TYPE_PERCENT = "PERCENT"
COUPON_TYPE_FIXED = "FIXED"
COUPON_TYPES = (COUPON_TYPE_PERCENT, COUPON_TYPE_FIXED)


class Influencer(db.Model):
    """
    Referrer who owns coupons and earns points when they are redeemed.
    """
    __tablename__ = "influencers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Coupon(db.Model):
    """
    Discount code.

    TYPES:
    - PERCENT: value is a percentage of the subtotal (10 => 10%)
    - FIXED: value is a flat amount in cents

    used_count only moves when a payment is confirmed, never at checkout,
    so abandoned carts do not consume coupons.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.CheckConstraint("type IN ('PERCENT', 'FIXED')", name="ck_coupons_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Integer, nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)

    influencer_id = db.Column(db.Integer, db.ForeignKey("influencers.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    influencer = db.relationship("Influencer", backref=db.backref("coupons", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "type": self.type,
            "value": self.value,
            "active": self.active,
            "used_count": self.used_count,
            "influencer_id": self.influencer_id,
            "created_at": to_utc_z(self.created_at),
        }


class CouponRedemption(db.Model):
    """
    One row per paid order that used a coupon. Append-only.
    """
    __tablename__ = "coupon_redemptions"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_coupon_redemptions_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount_discount_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    coupon = db.relationship("Coupon", backref=db.backref("redemptions", lazy=True))
