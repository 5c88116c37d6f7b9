"""
Multi-Tenant Service: Store Resolution

WHY: Every storefront request is scoped to the store addressed by the
request host (e.g. "cascavel.example.com" -> subdomain "cascavel").
Credentials for the payment provider are taken from that store row and
passed explicitly to whoever needs them.

USAGE:
    from storefront.services.tenant_service import resolve_store_from_host

    store = resolve_store_from_host(request.host)
"""

from ..extensions import db
from ..models import Store


class TenantResolutionError(Exception):
    """Raised when a request cannot be mapped to an active store."""

    def __init__(self, code: str, message: str, status_code: int, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.details = details or {}


def subdomain_from_host(host: str | None) -> str | None:
    """
    Extract the first DNS label from a Host header value.

    "cascavel.localhost:5000" -> "cascavel". A bare host with no dot
    ("localhost") carries no store and returns None.
    """
    if not host:
        return None
    hostname = host.strip().lower().split(":", 1)[0]
    labels = [label for label in hostname.split(".") if label]
    if len(labels) < 2:
        return None
    return labels[0]


def get_store_by_subdomain(subdomain: str) -> Store | None:
    return db.session.query(Store).filter_by(subdomain=subdomain).first()


def resolve_store_from_host(host: str | None) -> Store:
    """
    Map a request host to its active Store.

    Raises:
        TenantResolutionError("store_not_identified", 400) when no subdomain
        TenantResolutionError("store_not_found", 404) when unknown or inactive
    """
    subdomain = subdomain_from_host(host)
    if not subdomain:
        raise TenantResolutionError(
            "store_not_identified",
            "Could not determine store from hostname.",
            400,
        )

    store = get_store_by_subdomain(subdomain)
    if store is None or not store.is_active:
        raise TenantResolutionError(
            "store_not_found",
            f"No active store for subdomain {subdomain!r}",
            404,
            {"subdomain": subdomain},
        )
    return store
