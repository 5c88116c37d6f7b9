# Overview: Read-only catalog queries joined with a store's inventory.

from __future__ import annotations

from ..extensions import db
from ..models import Product, StoreInventory


def _with_store_quantity(store_id: int):
    return (
        db.session.query(Product, StoreInventory.quantity)
        .outerjoin(
            StoreInventory,
            (StoreInventory.product_id == Product.id) & (StoreInventory.store_id == store_id),
        )
        .filter(Product.is_active.is_(True))
    )


def _serialize(product: Product, quantity) -> dict:
    data = product.to_dict()
    data["available_quantity"] = int(quantity or 0)
    return data


def list_products(store_id: int, search: str | None = None) -> list[dict]:
    """
    Active products with this store's available quantity.

    search matches name or code, case-insensitive.
    """
    query = _with_store_quantity(store_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(pattern), Product.code.ilike(pattern)))
    rows = query.order_by(Product.name.asc(), Product.id.asc()).all()
    return [_serialize(product, quantity) for product, quantity in rows]


def get_product(store_id: int, product_id: int) -> dict | None:
    row = _with_store_quantity(store_id).filter(Product.id == product_id).first()
    if row is None:
        return None
    product, quantity = row
    return _serialize(product, quantity)
