# Overview: Flask API routes for customer login and sessions; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Authentication API routes

Login issues an opaque bearer token; only its hash is stored. Accounts are
created through the CLI, there is no self-registration endpoint.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.security_service import log_security_event
from ..decorators import require_auth
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email and password and create a session token.

    Token must be sent as "Authorization: Bearer <token>" on protected routes.

    SECURITY:
    - Failed attempts are written to the security event log
    - Same 401 for unknown email and wrong password
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "invalid_payload", "message": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            log_security_event("LOGIN_FAILED", reason=f"email {str(email).strip().lower()}")
            return jsonify({"error": "invalid_credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": to_utc_z(session.expires_at),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "internal_error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token)
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
