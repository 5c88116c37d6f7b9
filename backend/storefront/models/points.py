from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


POINTS_REASON_EARN_ORDER = "EARN_ORDER"
POINTS_REASON_REDEEM_ORDER = "REDEEM_ORDER"
POINTS_REASON_INFLUENCER_BONUS = "INFLUENCER_BONUS"


class UserPointsAccount(db.Model):
    """
    Cached loyalty balance for a customer.

    The transaction log is the source of truth: balance always equals the
    sum of UserPointsTransaction.points for the user, and both are written
    in the same DB transaction.
    """
    __tablename__ = "user_points_accounts"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_user_points_accounts_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    balance = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("points_account", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "balance": self.balance,
            "updated_at": to_utc_z(self.updated_at),
        }


class UserPointsTransaction(db.Model):
    """
    Append-only ledger of customer point events.

    REASONS:
    - EARN_ORDER: points earned from a paid order (positive)
    - REDEEM_ORDER: points spent as discount on a paid order (negative)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "user_points_transactions"
    __table_args__ = (
        db.Index("ix_user_points_txns_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    points = db.Column(db.Integer, nullable=False)  # Positive for earn, negative for redeem
    reason = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "points": self.points,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class InfluencerPointsAccount(db.Model):
    """Cached point balance for an influencer; see UserPointsAccount."""
    __tablename__ = "influencer_points_accounts"
    __table_args__ = (
        db.UniqueConstraint("influencer_id", name="uq_influencer_points_accounts_influencer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    influencer_id = db.Column(db.Integer, db.ForeignKey("influencers.id"), nullable=False)
    balance = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )


class InfluencerPointsTransaction(db.Model):
    __tablename__ = "influencer_points_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    influencer_id = db.Column(db.Integer, db.ForeignKey("influencers.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    points = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "influencer_id": self.influencer_id,
            "order_id": self.order_id,
            "points": self.points,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
