# Overview: Flask API routes for the current user's favorites and address book.

from flask import Blueprint, request, jsonify, g

from ..services import customer_service
from ..services.customer_service import CustomerDataError
from ..decorators import require_auth


users_bp = Blueprint("users", __name__, url_prefix="/me")


def _error(e: CustomerDataError):
    return jsonify({"error": e.code, "message": str(e), **e.details}), e.status_code


# =============================================================================
# FAVORITES
# =============================================================================

@users_bp.get("/favorites")
@require_auth
def list_favorites_route():
    favorites = customer_service.list_favorites(g.current_user.id)
    return jsonify({"favorites": [f.to_dict() for f in favorites]}), 200


@users_bp.post("/favorites/<int:product_id>")
@require_auth
def add_favorite_route(product_id: int):
    """201 when added, 200 when it was already a favorite."""
    try:
        created = customer_service.add_favorite(g.current_user.id, product_id)
    except CustomerDataError as e:
        return _error(e)
    return jsonify({"ok": True}), 201 if created else 200


@users_bp.delete("/favorites/<int:product_id>")
@require_auth
def remove_favorite_route(product_id: int):
    try:
        customer_service.remove_favorite(g.current_user.id, product_id)
    except CustomerDataError as e:
        return _error(e)
    return "", 204


# =============================================================================
# ADDRESSES
# =============================================================================

@users_bp.get("/addresses")
@require_auth
def list_addresses_route():
    addresses = customer_service.list_addresses(g.current_user.id)
    return jsonify({"addresses": [a.to_dict() for a in addresses]}), 200


@users_bp.post("/addresses")
@require_auth
def create_address_route():
    """
    Body: {"street", "number", "district", "city", "state", "zip"}
    """
    try:
        address = customer_service.create_address(g.current_user.id, request.get_json(silent=True))
    except CustomerDataError as e:
        return _error(e)
    return jsonify({"address": address.to_dict()}), 201


@users_bp.patch("/addresses/<int:address_id>")
@require_auth
def update_address_route(address_id: int):
    try:
        address = customer_service.update_address(
            g.current_user.id, address_id, request.get_json(silent=True),
        )
    except CustomerDataError as e:
        return _error(e)
    return jsonify({"address": address.to_dict()}), 200


@users_bp.delete("/addresses/<int:address_id>")
@require_auth
def delete_address_route(address_id: int):
    try:
        customer_service.delete_address(g.current_user.id, address_id)
    except CustomerDataError as e:
        return _error(e)
    return "", 204
