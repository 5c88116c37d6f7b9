from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    Store (tenant), addressed by subdomain.

    MULTI-TENANT: Orders and inventory rows belong to exactly one store.
    Each store carries its own payment-provider API key and webhook secret;
    there is no process-wide provider credential.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    subdomain = db.Column(db.String(63), nullable=False, unique=True, index=True)
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(2), nullable=False)

    gateway_api_key = db.Column(db.String(255), nullable=True)
    gateway_webhook_secret = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} subdomain={self.subdomain!r}>"

    @property
    def has_gateway(self) -> bool:
        return bool(self.gateway_api_key)

    def to_dict(self) -> dict:
        # Credentials are never serialized.
        return {
            "id": self.id,
            "name": self.name,
            "subdomain": self.subdomain,
            "city": self.city,
            "state": self.state,
            "is_active": self.is_active,
            "payments_enabled": self.has_gateway,
            "created_at": to_utc_z(self.created_at),
        }
