# Overview: Flask API routes for the product catalog of the current store.

from flask import Blueprint, request, jsonify, g

from ..services import catalog_service
from ..decorators import require_store


catalog_bp = Blueprint("catalog", __name__, url_prefix="/products")


@catalog_bp.get("")
@require_store
def list_products_route():
    """
    Active products with this store's available quantity.

    Query params:
    - search: matches product name or code
    """
    search = request.args.get("search", "").strip() or None
    products = catalog_service.list_products(g.store.id, search=search)
    return jsonify({"products": products}), 200


@catalog_bp.get("/<int:product_id>")
@require_store
def get_product_route(product_id: int):
    product = catalog_service.get_product(g.store.id, product_id)
    if product is None:
        return jsonify({"error": "product_not_found"}), 404
    return jsonify({"product": product}), 200
