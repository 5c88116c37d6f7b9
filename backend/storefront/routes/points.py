# Overview: Flask API route for the current user's loyalty points.

from flask import Blueprint, request, jsonify, g

from ..services import points_service
from ..services.points_service import POINT_VALUE_CENTS
from ..decorators import require_auth


points_bp = Blueprint("points", __name__, url_prefix="/me")


@points_bp.get("/points")
@require_auth
def my_points_route():
    """
    Balance plus the most recent ledger rows (newest first).

    Query params:
    - limit: number of ledger rows (default 50, max 200)
    """
    limit = min(max(request.args.get("limit", 50, type=int), 1), 200)
    user_id = g.current_user.id
    balance = points_service.get_user_balance(user_id)
    transactions = points_service.list_user_transactions(user_id, limit=limit)

    return jsonify({
        "balance": balance,
        "balance_value_cents": points_service.redemption_value_cents(balance),
        "point_value_cents": POINT_VALUE_CENTS,
        "transactions": [txn.to_dict() for txn in transactions],
    }), 200
