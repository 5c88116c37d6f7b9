from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_PAID = "PAID"
ORDER_STATUS_CANCELLED = "CANCELLED"

ORDER_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED)
TERMINAL_ORDER_STATUSES = (ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED)


class Order(db.Model):
    """
    Customer order placed in one store.

    LIFECYCLE:
    - PENDING: created by checkout, waiting for the provider's signal
    - PAID: payment confirmed (terminal)
    - CANCELLED: payment failed or was cancelled (terminal)

    After checkout the row is only written by the webhook reconciler, and
    only while PENDING.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PENDING', 'PAID', 'CANCELLED')",
            name="ck_orders_status",
        ),
        db.Index("ix_orders_user_store_created", "user_id", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    # Total discount: coupon discount plus redeemed points value
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    coupon_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    points_earned = db.Column(db.Integer, nullable=False, default=0)
    points_redeemed = db.Column(db.Integer, nullable=False, default=0)

    coupon_code = db.Column(db.String(64), nullable=True)
    influencer_id = db.Column(db.Integer, db.ForeignKey("influencers.id"), nullable=True)

    gateway_billing_id = db.Column(db.String(64), nullable=True, unique=True, index=True)
    gateway_status = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    store = db.relationship("Store", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    delivery = db.relationship(
        "OrderDelivery",
        backref="order",
        uselist=False,
        lazy=True,
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
            "points_earned": self.points_earned,
            "points_redeemed": self.points_redeemed,
            "coupon_code": self.coupon_code,
            "gateway_billing_id": self.gateway_billing_id,
            "gateway_status": self.gateway_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["delivery"] = self.delivery.to_dict() if self.delivery else None
        return data


class OrderItem(db.Model):
    """
    Immutable snapshot of a product line at order time.

    WHY: Name, code and unit price are copied so catalog edits never
    rewrite a historical order.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name_snapshot = db.Column(db.String(255), nullable=False)
    code_snapshot = db.Column(db.String(64), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name_snapshot,
            "code": self.code_snapshot,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "total_cents": self.total_cents,
        }


class OrderDelivery(db.Model):
    __tablename__ = "order_deliveries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    street = db.Column(db.String(255), nullable=False)
    number = db.Column(db.String(32), nullable=False)
    district = db.Column(db.String(120), nullable=False)
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(2), nullable=False)
    zip = db.Column(db.String(16), nullable=False)

    def to_dict(self) -> dict:
        return {
            "street": self.street,
            "number": self.number,
            "district": self.district,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
        }
