# Overview: Inbound payment-provider webhook endpoint.

# backend/storefront/routes/webhooks.py
"""
Payment provider webhooks

SECURITY: The signature covers the raw body. It is read with
get_data(cache=True) before any JSON parsing so the verified bytes are
exactly the bytes received.

Every verified event answers 200 {ok, applied}; duplicates and late events
are acknowledged with applied=false so the provider stops retrying.
"""

import json

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services.reconciliation_service import reconcile_webhook, ReconcileError


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")

SIGNATURE_HEADER = "X-Abacate-Signature"


@webhooks_bp.post("/abacatepay")
def abacatepay_webhook_route():
    raw_body = request.get_data(cache=True)
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        return jsonify({"error": "invalid_payload"}), 400

    try:
        result = reconcile_webhook(raw_body, request.headers.get(SIGNATURE_HEADER), payload)
        return jsonify({"ok": True, "applied": result.applied}), 200

    except ReconcileError as e:
        return jsonify({"error": e.code}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Webhook processing failed")
        return jsonify({"error": "internal_error"}), 500
