# Overview: Customer self-service data; favorite products and the delivery address book.

"""
Customer Service

Favorites and saved addresses belong to one user and are only ever read or
changed by that user. Lookups by id are always filtered by user_id, so an
id from another account behaves exactly like a missing one (404).

A saved address can stand in for the checkout "delivery" object: checkout
copies its fields into the order, and the order keeps its own copy.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Address, Favorite, Product


# field -> minimum length after stripping
ADDRESS_FIELDS = {
    "street": 2,
    "number": 1,
    "district": 2,
    "city": 2,
    "state": 2,
    "zip": 5,
}


class CustomerDataError(Exception):
    """Raised for favorites/address failures; code is machine-readable."""

    def __init__(self, code: str, message: str | None = None, *, status_code: int = 400, details: dict | None = None):
        super().__init__(message or code)
        self.code = code
        self.status_code = status_code
        self.details = details or {}


# =============================================================================
# FAVORITES
# =============================================================================

def list_favorites(user_id: int) -> list[Favorite]:
    """Newest first."""
    return (
        db.session.query(Favorite)
        .options(joinedload(Favorite.product))
        .filter(Favorite.user_id == user_id)
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
        .all()
    )


def add_favorite(user_id: int, product_id: int) -> bool:
    """
    Star a product. Returns True when a row was created and False when the
    product was already a favorite.

    Raises:
        CustomerDataError("product_not_found", 404) for unknown or inactive products
    """
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        raise CustomerDataError("product_not_found", status_code=404)

    try:
        with db.session.begin_nested():
            db.session.add(Favorite(user_id=user_id, product_id=product_id))
    except IntegrityError:
        db.session.rollback()
        return False

    db.session.commit()
    current_app.logger.info("User %s favorited product %s", user_id, product_id)
    return True


def remove_favorite(user_id: int, product_id: int) -> None:
    deleted = (
        db.session.query(Favorite)
        .filter_by(user_id=user_id, product_id=product_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        db.session.rollback()
        raise CustomerDataError("not_found", status_code=404)
    db.session.commit()


# =============================================================================
# ADDRESS BOOK
# =============================================================================

def validate_address_fields(data, *, partial: bool = False) -> dict:
    """
    Validate an address body.

    With partial=True only the given fields are checked (PATCH); at least
    one is required. Unknown keys are ignored. State is stored upper-case.
    """
    if not isinstance(data, dict):
        raise CustomerDataError("invalid_payload", "JSON object body required")

    fields = {}
    invalid = []
    for name, min_length in ADDRESS_FIELDS.items():
        if name not in data:
            if not partial:
                invalid.append(name)
            continue
        value = data[name]
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            invalid.append(name)
            continue
        value = str(value).strip()
        if len(value) < min_length:
            invalid.append(name)
            continue
        fields[name] = value

    if "state" in fields:
        if len(fields["state"]) != 2 or not fields["state"].isalpha():
            invalid.append("state")
        else:
            fields["state"] = fields["state"].upper()

    if invalid:
        raise CustomerDataError("invalid_payload", "address is invalid", details={"invalid_fields": invalid})
    if not fields:
        raise CustomerDataError("invalid_payload", "no address fields given")
    return fields


def list_addresses(user_id: int) -> list[Address]:
    return (
        db.session.query(Address)
        .filter(Address.user_id == user_id)
        .order_by(Address.created_at.desc(), Address.id.desc())
        .all()
    )


def get_address(user_id: int, address_id: int) -> Address | None:
    return (
        db.session.query(Address)
        .filter(Address.id == address_id, Address.user_id == user_id)
        .first()
    )


def _owned_address(user_id: int, address_id: int) -> Address:
    address = get_address(user_id, address_id)
    if address is None:
        raise CustomerDataError("not_found", status_code=404)
    return address


def create_address(user_id: int, data) -> Address:
    fields = validate_address_fields(data)
    address = Address(user_id=user_id, **fields)
    db.session.add(address)
    db.session.commit()
    return address


def update_address(user_id: int, address_id: int, data) -> Address:
    address = _owned_address(user_id, address_id)
    fields = validate_address_fields(data, partial=True)
    for name, value in fields.items():
        setattr(address, name, value)
    db.session.commit()
    return address


def delete_address(user_id: int, address_id: int) -> None:
    address = _owned_address(user_id, address_id)
    db.session.delete(address)
    db.session.commit()
