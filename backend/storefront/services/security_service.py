# Overview: Append-only security event logging.

from flask import has_request_context, request

from ..extensions import db
from ..models import SecurityEvent


def log_security_event(
    event_type: str,
    *,
    store_id: int | None = None,
    user_id: int | None = None,
    reason: str | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Log a security event to the audit trail.

    Client context (path, IP, user agent) is taken from the current request
    when there is one.

    event_type examples:
    - LOGIN_FAILED
    - WEBHOOK_SIGNATURE_MISSING
    - WEBHOOK_SIGNATURE_INVALID
    - WEBHOOK_STORE_NOT_CONFIGURED
    """
    resource = ip_address = user_agent = None
    if has_request_context():
        resource = request.path
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    event = SecurityEvent(
        event_type=event_type,
        store_id=store_id,
        user_id=user_id,
        resource=resource,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    return event
