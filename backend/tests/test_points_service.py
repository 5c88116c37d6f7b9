# Overview: Pytest coverage for the loyalty points ledger.

"""
Points Ledger Tests

Balances are cached aggregates over an append-only ledger; every write
must keep balance == sum(transactions), and redemption must never
overdraw.
"""

import pytest

from storefront.models import UserPointsAccount, UserPointsTransaction, InfluencerPointsTransaction
from storefront.services import points_service
from storefront.services.points_service import (
    audit_ledgers,
    clamp_redemption,
    credit_influencer_points,
    credit_user_points,
    debit_user_points,
    get_user_balance,
    influencer_points_for_discount,
    list_user_transactions,
    points_earned_for_subtotal,
    redemption_value_cents,
)


class TestPureRules:
    @pytest.mark.parametrize("subtotal,expected", [(0, 0), (999, 0), (1000, 1), (4390, 4), (-50, 0)])
    def test_points_earned_per_ten_reais(self, subtotal, expected):
        assert points_earned_for_subtotal(subtotal) == expected

    @pytest.mark.parametrize("discount,expected", [(0, 0), (9, 0), (10, 1), (439, 43)])
    def test_influencer_points_per_ten_cents(self, discount, expected):
        assert influencer_points_for_discount(discount) == expected

    @pytest.mark.parametrize("requested,available,expected", [
        (50, 100, 50),
        (500, 100, 100),
        (-5, 100, 0),
        (10, -3, 0),
        (10, 0, 0),
    ])
    def test_clamp_never_exceeds_balance(self, requested, available, expected):
        assert clamp_redemption(requested, available) == expected

    def test_point_value(self):
        assert redemption_value_cents(25) == 250


class TestUserLedger:
    def test_credit_creates_account_and_row(self, db_session, user):
        credit_user_points(user.id, 7, order_id=None)
        db_session.commit()

        assert get_user_balance(user.id) == 7
        rows = list_user_transactions(user.id)
        assert [(r.points, r.reason) for r in rows] == [(7, "EARN_ORDER")]

    def test_balance_zero_without_account(self, db_session, user):
        assert get_user_balance(user.id) == 0

    def test_debit_is_clamped_to_balance(self, db_session, user):
        credit_user_points(user.id, 5, order_id=None)
        db_session.commit()

        debited = debit_user_points(user.id, 8, order_id=None)
        db_session.commit()

        assert debited == 5
        assert get_user_balance(user.id) == 0
        assert [r.points for r in list_user_transactions(user.id)] == [-5, 5]

    def test_debit_with_empty_balance_writes_nothing(self, db_session, user):
        assert debit_user_points(user.id, 3, order_id=None) == 0
        db_session.commit()
        assert db_session.query(UserPointsTransaction).count() == 0

    def test_non_positive_amounts_are_ignored(self, db_session, user):
        assert credit_user_points(user.id, 0, order_id=None) == 0
        assert debit_user_points(user.id, -2, order_id=None) == 0
        db_session.commit()
        assert db_session.query(UserPointsAccount).count() == 0

    def test_list_transactions_respects_limit(self, db_session, user):
        for _ in range(4):
            credit_user_points(user.id, 1, order_id=None)
        db_session.commit()
        assert len(list_user_transactions(user.id, limit=2)) == 2


class TestInfluencerLedger:
    def test_credit_influencer(self, db_session, influencer):
        credit_influencer_points(influencer.id, 43, order_id=None)
        db_session.commit()

        row = db_session.query(InfluencerPointsTransaction).one()
        assert row.points == 43
        assert row.reason == "INFLUENCER_BONUS"


class TestAudit:
    def test_consistent_ledgers_have_no_drift(self, db_session, user, influencer):
        credit_user_points(user.id, 10, order_id=None)
        debit_user_points(user.id, 4, order_id=None)
        credit_influencer_points(influencer.id, 3, order_id=None)
        db_session.commit()

        assert audit_ledgers() == []

    def test_tampered_balance_is_reported(self, db_session, user):
        credit_user_points(user.id, 10, order_id=None)
        db_session.commit()

        account = db_session.query(UserPointsAccount).filter_by(user_id=user.id).one()
        account.balance = 99
        db_session.commit()

        drift = audit_ledgers()
        assert len(drift) == 1
        assert drift[0].account_type == "user"
        assert drift[0].owner_id == user.id
        assert drift[0].cached_balance == 99
        assert drift[0].ledger_balance == 10

    def test_ledger_rows_without_account_are_reported(self, db_session, user):
        db_session.add(UserPointsTransaction(user_id=user.id, points=5, reason="EARN_ORDER"))
        db_session.commit()

        drift = audit_ledgers()
        assert [(d.owner_id, d.cached_balance, d.ledger_balance) for d in drift] == [(user.id, 0, 5)]


def test_constants_match_business_rules():
    assert points_service.POINT_VALUE_CENTS == 10
    assert points_service.CENTS_PER_CUSTOMER_POINT == 1000
    assert points_service.CENTS_PER_INFLUENCER_POINT == 10
