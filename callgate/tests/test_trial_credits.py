"""
Tests for the trial credit ledger.
"""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select

from callgate.core.config import settings
from callgate.core.database import accounts, get_db_session, trial_credit_balances
from callgate.core.errors import TrialPurchaseLimitError, ValidationError
from callgate.features.accounts.service import get_or_create_account
from callgate.features.trial_credits.service import (
    can_purchase_another_pack,
    consume_trial_call,
    get_balance,
    record_trial_purchase,
)
from callgate.models.trial_credit import TrialCreditBalance


def _row_count(account_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(trial_credit_balances)
            .where(trial_credit_balances.c.account_id == account_id)
        ).scalar_one()


def test_new_account_gets_default_grant():
    account = get_or_create_account("user_trial_default")
    balance = get_balance(account.account_id)

    assert balance.remaining_credits == 5
    assert balance.purchase_count == 0


def test_get_balance_creates_default_row_once():
    """Accounts created outside get_or_create_account get the default row lazily, exactly once."""
    with get_db_session() as session:
        session.execute(
            accounts.insert().values(
                account_id="acct-legacy",
                external_id="legacy-user",
                created_at=datetime.now(timezone.utc),
            )
        )

    first = get_balance("acct-legacy")
    second = get_balance("acct-legacy")

    assert first == second
    assert first.remaining_credits == settings.TRIAL_INITIAL_CREDITS
    assert _row_count("acct-legacy") == 1


def test_initial_grant_follows_settings(monkeypatch):
    monkeypatch.setattr(settings, "TRIAL_INITIAL_CREDITS", 3)
    account = get_or_create_account("user_trial_three")

    assert get_balance(account.account_id).remaining_credits == 3


def test_can_purchase_another_pack_below_max():
    balance = TrialCreditBalance(account_id="a", remaining_credits=0, purchase_count=1)
    assert can_purchase_another_pack(balance) is True


def test_can_purchase_another_pack_at_max_regardless_of_credits():
    for remaining in (0, 3, 100):
        balance = TrialCreditBalance(account_id="a", remaining_credits=remaining, purchase_count=2)
        assert can_purchase_another_pack(balance) is False


def test_consume_trial_call_never_goes_negative():
    account = get_or_create_account("user_consume")

    results = [consume_trial_call(account.account_id) for _ in range(7)]

    assert results == [4, 3, 2, 1, 0, None, None]
    assert get_balance(account.account_id).remaining_credits == 0


def test_record_trial_purchase_adds_credits_and_counts():
    account = get_or_create_account("user_purchase")

    balance = record_trial_purchase(account.account_id)

    assert balance.remaining_credits == 10
    assert balance.purchase_count == 1


def test_record_trial_purchase_stops_at_max():
    account = get_or_create_account("user_purchase_max")
    record_trial_purchase(account.account_id)
    record_trial_purchase(account.account_id, credits=3)

    with pytest.raises(TrialPurchaseLimitError):
        record_trial_purchase(account.account_id)

    balance = get_balance(account.account_id)
    assert balance.purchase_count == 2
    assert balance.remaining_credits == 13


def test_record_trial_purchase_rejects_non_positive_credits():
    account = get_or_create_account("user_purchase_zero")
    with pytest.raises(ValidationError):
        record_trial_purchase(account.account_id, credits=0)


def test_balance_model_rejects_negative_credits():
    with pytest.raises(PydanticValidationError):
        TrialCreditBalance(account_id="a", remaining_credits=-1, purchase_count=0)
