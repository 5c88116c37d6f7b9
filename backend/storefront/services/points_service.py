# Overview: Service-layer operations for loyalty points; encapsulates ledger writes.

"""
Points Ledger Invariants (authoritative)

- Balances are cached aggregates; the transaction rows are the truth.
- Every balance change is paired with exactly one ledger row, written in
  the same DB transaction. Functions here only flush; the caller commits.
- Customers earn 1 point per R$10,00 of subtotal (pre-discount).
- Influencers earn 1 point per R$0,10 of coupon discount on paid orders.
- A point is worth 10 cents when redeemed. Redemption silently caps at the
  available balance, so a stale client never overdraws.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    UserPointsAccount,
    UserPointsTransaction,
    InfluencerPointsAccount,
    InfluencerPointsTransaction,
)
from ..models.points import (
    POINTS_REASON_EARN_ORDER,
    POINTS_REASON_REDEEM_ORDER,
    POINTS_REASON_INFLUENCER_BONUS,
)
from .concurrency import lock_for_update


POINT_VALUE_CENTS = 10
CENTS_PER_CUSTOMER_POINT = 1000
CENTS_PER_INFLUENCER_POINT = 10


def points_earned_for_subtotal(subtotal_cents: int) -> int:
    if subtotal_cents <= 0:
        return 0
    return subtotal_cents // CENTS_PER_CUSTOMER_POINT


def influencer_points_for_discount(discount_cents: int) -> int:
    if discount_cents <= 0:
        return 0
    return discount_cents // CENTS_PER_INFLUENCER_POINT


def clamp_redemption(requested_points: int, available_points: int) -> int:
    return min(max(requested_points, 0), max(available_points, 0))


def redemption_value_cents(points: int) -> int:
    return points * POINT_VALUE_CENTS


def get_user_balance(user_id: int) -> int:
    account = db.session.query(UserPointsAccount).filter_by(user_id=user_id).first()
    return account.balance if account else 0


def list_user_transactions(user_id: int, limit: int = 50) -> list[UserPointsTransaction]:
    return (
        db.session.query(UserPointsTransaction)
        .filter_by(user_id=user_id)
        .order_by(UserPointsTransaction.created_at.desc(), UserPointsTransaction.id.desc())
        .limit(limit)
        .all()
    )


def _get_or_create_account(model, owner_column: str, owner_id: int, *, lock: bool = False):
    """
    Fetch the account row for an owner, creating it on first use.

    Creation runs inside a SAVEPOINT so a concurrent insert that wins the
    unique constraint only rolls back the savepoint, not the caller's work.
    """
    query = db.session.query(model).filter_by(**{owner_column: owner_id})
    if lock:
        query = lock_for_update(query)
    account = query.first()
    if account is not None:
        return account

    try:
        with db.session.begin_nested():
            account = model(**{owner_column: owner_id, "balance": 0})
            db.session.add(account)
    except IntegrityError:
        account = query.one()
    return account


def _apply_delta(model, account, delta: int) -> None:
    # Atomic in SQL; the loaded instance is expired so the next read sees it.
    db.session.query(model).filter(model.id == account.id).update(
        {model.balance: model.balance + delta},
        synchronize_session=False,
    )
    db.session.expire(account, ["balance"])


def credit_user_points(user_id: int, points: int, *, order_id: int | None, reason: str = POINTS_REASON_EARN_ORDER) -> int:
    if points <= 0:
        return 0

    account = _get_or_create_account(UserPointsAccount, "user_id", user_id)
    _apply_delta(UserPointsAccount, account, points)
    db.session.add(UserPointsTransaction(
        user_id=user_id,
        order_id=order_id,
        points=points,
        reason=reason,
    ))
    db.session.flush()
    return points


def debit_user_points(user_id: int, points: int, *, order_id: int | None, reason: str = POINTS_REASON_REDEEM_ORDER) -> int:
    """
    Debit redeemed points. Never takes the balance below zero.

    Returns the number of points actually debited; if the balance shrank
    between checkout and settlement the shortfall is logged, not raised.
    """
    if points <= 0:
        return 0

    account = _get_or_create_account(UserPointsAccount, "user_id", user_id, lock=True)
    debit = clamp_redemption(points, account.balance)
    if debit < points:
        current_app.logger.warning(
            "Points debit capped for user %s order %s: requested=%s available=%s",
            user_id, order_id, points, account.balance,
        )
    if debit <= 0:
        return 0

    _apply_delta(UserPointsAccount, account, -debit)
    db.session.add(UserPointsTransaction(
        user_id=user_id,
        order_id=order_id,
        points=-debit,
        reason=reason,
    ))
    db.session.flush()
    return debit


def credit_influencer_points(influencer_id: int, points: int, *, order_id: int | None) -> int:
    if points <= 0:
        return 0

    account = _get_or_create_account(InfluencerPointsAccount, "influencer_id", influencer_id)
    _apply_delta(InfluencerPointsAccount, account, points)
    db.session.add(InfluencerPointsTransaction(
        influencer_id=influencer_id,
        order_id=order_id,
        points=points,
        reason=POINTS_REASON_INFLUENCER_BONUS,
    ))
    db.session.flush()
    return points


@dataclass(frozen=True)
class LedgerDrift:
    account_type: str
    owner_id: int
    cached_balance: int
    ledger_balance: int


def _drift_for(account_model, txn_model, owner_column: str, account_type: str) -> list[LedgerDrift]:
    owner = getattr(account_model, owner_column)
    sums = (
        db.session.query(
            getattr(txn_model, owner_column).label("owner_id"),
            func.coalesce(func.sum(txn_model.points), 0).label("total"),
        )
        .group_by(getattr(txn_model, owner_column))
        .subquery()
    )
    rows = (
        db.session.query(owner, account_model.balance, func.coalesce(sums.c.total, 0))
        .outerjoin(sums, sums.c.owner_id == owner)
        .all()
    )
    drift = [
        LedgerDrift(account_type, owner_id, int(balance), int(total))
        for owner_id, balance, total in rows
        if int(balance) != int(total)
    ]

    # Ledger rows with no account at all are drift too.
    orphan_rows = (
        db.session.query(sums.c.owner_id, sums.c.total)
        .outerjoin(account_model, owner == sums.c.owner_id)
        .filter(account_model.id.is_(None))
        .all()
    )
    drift.extend(
        LedgerDrift(account_type, owner_id, 0, int(total))
        for owner_id, total in orphan_rows
        if int(total) != 0
    )
    return drift


def audit_ledgers() -> list[LedgerDrift]:
    """
    Compare every cached balance with the sum of its ledger rows.

    Returns the accounts that disagree; an empty list means consistent.
    """
    return (
        _drift_for(UserPointsAccount, UserPointsTransaction, "user_id", "user")
        + _drift_for(InfluencerPointsAccount, InfluencerPointsTransaction, "influencer_id", "influencer")
    )
