# Overview: Flask API routes for customer orders and checkout; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""
Order API routes

Every route is scoped twice: to the store addressed by the request host
and to the authenticated user. An order from another store or another
user answers 404, never 403, so ids cannot be probed.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Order
from ..services import checkout_service, customer_service
from ..services.checkout_service import CheckoutError
from ..decorators import require_store, require_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


@orders_bp.get("")
@require_store
@require_auth
def list_orders_route():
    """The user's orders in this store, newest first, with items and delivery."""
    orders = (
        db.session.query(Order)
        .filter_by(user_id=g.current_user.id, store_id=g.store.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return jsonify({"orders": [order.to_dict() for order in orders]}), 200


@orders_bp.get("/<int:order_id>")
@require_store
@require_auth
def get_order_route(order_id: int):
    order = (
        db.session.query(Order)
        .filter_by(id=order_id, user_id=g.current_user.id, store_id=g.store.id)
        .first()
    )
    if not order:
        return jsonify({"error": "order_not_found"}), 404
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/checkout")
@require_store
@require_auth
def checkout_route():
    """
    Create a PENDING order and a payment link.

    Body:
    {
        "items": [{"productId": 1, "quantity": 2}],
        "delivery": {"street", "number", "district", "city", "state", "zip"},
        "addressId": 3,  (saved address, instead of delivery)
        "couponCode": "WELCOME10",
        "pointsRedeem": 0
    }

    Returns 201 {orderId, totalCents, payment: {billingId, url} | null}.
    """
    try:
        user_id = g.current_user.id
        cart = checkout_service.parse_checkout_payload(
            request.get_json(silent=True),
            address_lookup=lambda address_id: customer_service.get_address(user_id, address_id),
        )
        result = checkout_service.checkout(g.current_user, g.store, cart)
        return jsonify(result.to_dict()), 201

    except CheckoutError as e:
        return jsonify({"error": e.code, "message": str(e), **e.details}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Checkout failed for user %s", g.current_user.id)
        return jsonify({"error": "internal_error"}), 500
