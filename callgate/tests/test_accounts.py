"""
Tests for account identity: validation and idempotent creation.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select

from callgate.core.database import accounts, get_db_session, trial_credit_balances
from callgate.core.errors import InvalidIdentityError
from callgate.features.accounts.service import (
    MAX_EXTERNAL_ID_LENGTH,
    get_account,
    get_account_by_external_id,
    get_or_create_account,
    normalize_external_id,
)


def _count(table) -> int:
    with get_db_session() as session:
        return session.execute(select(func.count()).select_from(table)).scalar_one()


@pytest.mark.parametrize("bad", ["", "   ", "a" * (MAX_EXTERNAL_ID_LENGTH + 1), "user\x00id", "user\nid", None, 42])
def test_invalid_external_ids_rejected(bad):
    with pytest.raises(InvalidIdentityError):
        normalize_external_id(bad)


def test_external_id_is_trimmed():
    assert normalize_external_id("  user_abc  ") == "user_abc"


def test_get_or_create_is_idempotent():
    first = get_or_create_account("user_idem")
    second = get_or_create_account("user_idem")

    assert first == second
    assert get_account(first.account_id) == first
    assert get_account_by_external_id("user_idem") == first
    assert _count(accounts) == 1
    assert _count(trial_credit_balances) == 1


def test_invalid_identity_creates_nothing():
    with pytest.raises(InvalidIdentityError):
        get_or_create_account("")
    assert _count(accounts) == 0


def test_unknown_account_lookup_returns_none():
    assert get_account("does-not-exist") is None
    assert get_account_by_external_id("nobody") is None


def test_concurrent_first_access_creates_one_account(file_db):
    """Racing first lookups for the same user converge on a single account row."""
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: get_or_create_account("user_race"), range(8)))

    assert len({a.account_id for a in results}) == 1
    assert _count(accounts) == 1
    assert _count(trial_credit_balances) == 1
