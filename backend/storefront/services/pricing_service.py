# Overview: Pure pricing helpers for order subtotals and coupon discounts.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from ..models.coupons import COUPON_TYPE_PERCENT, COUPON_TYPE_FIXED


class PricedLine(Protocol):
    unit_price_cents: int
    quantity: int


class CouponSpec(Protocol):
    type: str
    value: int


@dataclass(frozen=True)
class CouponResult:
    discount_cents: int
    total_cents: int


def calc_subtotal(items: Iterable[PricedLine]) -> int:
    """Sum of unit_price_cents * quantity over all lines."""
    return sum(item.unit_price_cents * item.quantity for item in items)


def apply_coupon(subtotal_cents: int, coupon: Optional[CouponSpec] = None) -> CouponResult:
    """
    Apply a coupon to a subtotal.

    - PERCENT: floor(subtotal * value / 100)
    - FIXED: value cents flat

    The discount is clamped to [0, subtotal].
    """
    if coupon is None:
        return CouponResult(discount_cents=0, total_cents=subtotal_cents)

    if coupon.type == COUPON_TYPE_PERCENT:
        discount_cents = (subtotal_cents * coupon.value) // 100
    elif coupon.type == COUPON_TYPE_FIXED:
        discount_cents = coupon.value
    else:
        raise ValueError(f"Unknown coupon type: {coupon.type}")

    discount_cents = max(discount_cents, 0)
    discount_cents = min(discount_cents, max(subtotal_cents, 0))

    return CouponResult(
        discount_cents=discount_cents,
        total_cents=subtotal_cents - discount_cents,
    )
