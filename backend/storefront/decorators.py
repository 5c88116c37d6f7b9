# Overview: Request decorators for tenant resolution and authentication.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service
from .services.tenant_service import resolve_store_from_host, TenantResolutionError


def require_store(f):
    """
    Resolve the store (tenant) from the request host.

    MULTI-TENANT: Sets g.store to the active Store addressed by the first
    label of the Host header. Returns 400 when the host carries no
    subdomain and 404 when the store is unknown or inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.store = resolve_store_from_host(request.host)
        except TenantResolutionError as e:
            return jsonify({"error": e.code, "message": str(e), **e.details}), e.status_code

        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user and g.session_context.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "unauthorized"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "unauthorized"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function
