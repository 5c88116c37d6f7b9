# Overview: Applies verified payment-provider webhooks to orders exactly once.

"""
Webhook Reconciliation

WHY: The provider is the only source of truth for money movement. Its
callbacks move an order out of PENDING, and every side effect of that move
(points, coupon usage, influencer bonus, inventory restore) happens in the
same DB transaction as the status change.

STATE MACHINE:
    PENDING -> PAID        (billing.paid, payment.confirmed)
    PENDING -> CANCELLED   (billing.failed, billing.cancelled)

PAID and CANCELLED are terminal. The transition is a conditional UPDATE
(... WHERE status = 'PENDING'); side effects run only when it changed
exactly one row, so duplicate and late deliveries are acknowledged with no
writes.

SECURITY:
- The order (and so the store, and so the webhook secret) is looked up by
  billing id before verification. Unknown billings and stores without a
  secret are rejected like bad signatures.
- Every rejection is persisted as a SecurityEvent.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Coupon, CouponRedemption, Order, StoreInventory
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PENDING,
)
from .concurrency import run_with_retry
from .points_service import (
    credit_influencer_points,
    credit_user_points,
    debit_user_points,
    influencer_points_for_discount,
)
from .security_service import log_security_event
from .webhook_signature import parse_incoming_signature, verify_signature


EVENT_BILLING_PAID = "billing.paid"
EVENT_PAYMENT_CONFIRMED = "payment.confirmed"
EVENT_BILLING_FAILED = "billing.failed"
EVENT_BILLING_CANCELLED = "billing.cancelled"

PAID_EVENTS = (EVENT_BILLING_PAID, EVENT_PAYMENT_CONFIRMED)
# event type -> gateway_status recorded on the order
CANCEL_EVENTS = {
    EVENT_BILLING_FAILED: "FAILED",
    EVENT_BILLING_CANCELLED: "CANCELLED",
}


class ReconcileError(Exception):
    """Rejected webhook; code and status_code map straight to the HTTP reply."""

    def __init__(self, code: str, status_code: int, message: str | None = None):
        super().__init__(message or code)
        self.code = code
        self.status_code = status_code


@dataclass(frozen=True)
class ReconcileResult:
    order_id: int
    event_type: str | None
    applied: bool
    status: str


def extract_billing_id(payload) -> str | None:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    billing_id = data.get("id")
    if billing_id is None or billing_id == "":
        return None
    return str(billing_id)


def _reject(event_type: str, code: str, *, store_id: int | None, reason: str) -> ReconcileError:
    current_app.logger.warning("Webhook rejected (%s): %s", code, reason)
    log_security_event(event_type, store_id=store_id, reason=reason)
    return ReconcileError(code, 401)


# =============================================================================
# TRANSITIONS
# =============================================================================

def _transition(order_id: int, new_status: str, gateway_status: str) -> bool:
    updated = (
        db.session.query(Order)
        .filter(Order.id == order_id, Order.status == ORDER_STATUS_PENDING)
        .update(
            {Order.status: new_status, Order.gateway_status: gateway_status},
            synchronize_session=False,
        )
    )
    return updated == 1


def _apply_paid_effects(order: Order) -> None:
    if order.points_redeemed > 0:
        debit_user_points(order.user_id, order.points_redeemed, order_id=order.id)

    if order.points_earned > 0:
        credit_user_points(order.user_id, order.points_earned, order_id=order.id)

    if not order.coupon_code:
        return

    coupon = db.session.query(Coupon).filter_by(code=order.coupon_code).first()
    if coupon is None:
        current_app.logger.warning(
            "Order %s references coupon %r which no longer exists; skipping redemption",
            order.id, order.coupon_code,
        )
        return

    db.session.query(Coupon).filter(Coupon.id == coupon.id).update(
        {Coupon.used_count: Coupon.used_count + 1},
        synchronize_session=False,
    )
    db.session.add(CouponRedemption(
        coupon_id=coupon.id,
        order_id=order.id,
        user_id=order.user_id,
        amount_discount_cents=order.discount_cents,
    ))

    influencer_id = order.influencer_id or coupon.influencer_id
    if influencer_id:
        credit_influencer_points(
            influencer_id,
            influencer_points_for_discount(order.discount_cents),
            order_id=order.id,
        )
    db.session.flush()


def _restore_inventory(order: Order) -> None:
    for item in order.items:
        updated = (
            db.session.query(StoreInventory)
            .filter_by(store_id=order.store_id, product_id=item.product_id)
            .update(
                {StoreInventory.quantity: StoreInventory.quantity + item.quantity},
                synchronize_session=False,
            )
        )
        if updated:
            continue

        # Inventory row vanished since checkout; recreate it with the returned units.
        try:
            with db.session.begin_nested():
                db.session.add(StoreInventory(
                    store_id=order.store_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                ))
        except IntegrityError:
            db.session.query(StoreInventory).filter_by(
                store_id=order.store_id, product_id=item.product_id,
            ).update(
                {StoreInventory.quantity: StoreInventory.quantity + item.quantity},
                synchronize_session=False,
            )


def _settle(order: Order, event_type: str | None) -> ReconcileResult:
    order_id = order.id

    if event_type in PAID_EVENTS:
        def _op():
            applied = _transition(order_id, ORDER_STATUS_PAID, "PAID")
            if applied:
                _apply_paid_effects(order)
            db.session.commit()
            return applied
    elif event_type in CANCEL_EVENTS:
        def _op():
            applied = _transition(order_id, ORDER_STATUS_CANCELLED, CANCEL_EVENTS[event_type])
            if applied:
                _restore_inventory(order)
            db.session.commit()
            return applied
    else:
        current_app.logger.info("Webhook %r for order %s ignored", event_type, order_id)
        return ReconcileResult(order_id, event_type, False, order.status)

    applied = run_with_retry(_op)
    db.session.refresh(order)

    if applied:
        current_app.logger.info("Order %s settled as %s via %s", order_id, order.status, event_type)
    else:
        current_app.logger.info(
            "Webhook %s for order %s was a no-op (status already %s)",
            event_type, order_id, order.status,
        )
    return ReconcileResult(order_id, event_type, applied, order.status)


# =============================================================================
# ENTRY POINT
# =============================================================================

def reconcile_webhook(raw_body: bytes, signature_header: str | None, payload) -> ReconcileResult:
    """
    Verify and apply one provider callback.

    raw_body must be the exact bytes received; payload is its parsed JSON.

    Raises:
        ReconcileError("no_billing_id", 400)
        ReconcileError("store_not_found_or_not_configured", 401)
        ReconcileError("invalid_signature_headers", 401)
        ReconcileError("invalid_signature", 401)
    """
    billing_id = extract_billing_id(payload)
    if billing_id is None:
        raise ReconcileError("no_billing_id", 400)

    order = (
        db.session.query(Order)
        .options(joinedload(Order.store), joinedload(Order.items))
        .filter(Order.gateway_billing_id == billing_id)
        .first()
    )
    if order is None or not order.store or not order.store.gateway_webhook_secret:
        raise _reject(
            "WEBHOOK_STORE_NOT_CONFIGURED",
            "store_not_found_or_not_configured",
            store_id=order.store_id if order else None,
            reason=f"billing {billing_id}",
        )

    store_id = order.store_id
    if parse_incoming_signature(signature_header) is None:
        raise _reject(
            "WEBHOOK_SIGNATURE_MISSING",
            "invalid_signature_headers",
            store_id=store_id,
            reason=f"billing {billing_id}",
        )
    if not verify_signature(raw_body, signature_header, order.store.gateway_webhook_secret):
        raise _reject(
            "WEBHOOK_SIGNATURE_INVALID",
            "invalid_signature",
            store_id=store_id,
            reason=f"billing {billing_id}",
        )

    event_type = payload.get("type")
    return _settle(order, event_type)
