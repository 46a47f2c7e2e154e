"""
Tests for subscription resolution and the lifecycle state machine.
"""
from datetime import datetime, timedelta, timezone

import pytest

from callgate.core.errors import (
    ConfigurationError,
    ConflictError,
    InvalidStatusTransitionError,
    ValidationError,
)
from callgate.features.accounts.service import get_or_create_account
from callgate.features.subscriptions.service import (
    ALLOWED_TRANSITIONS,
    can_transition,
    get_subscription,
    list_subscribed_plan_ids,
    resolve,
    resolve_for_account,
    start_subscription,
    transition_status,
)
from callgate.models.subscription import SubscriptionStatus


def test_no_record_resolves_to_free_none():
    account = get_or_create_account("user_sub_none")

    resolved = resolve_for_account(account.account_id)

    assert resolved.plan == "free"
    assert resolved.status == SubscriptionStatus.NONE
    assert resolved.token_allotment == 0
    assert resolve(None) == resolved


def test_start_subscription_uses_plan_allotment_by_default():
    account = get_or_create_account("user_sub_start")

    record = start_subscription(account.account_id, "starter")

    assert record.status == SubscriptionStatus.ACTIVE
    assert record.token_allotment == 5000
    resolved = resolve_for_account(account.account_id)
    assert (resolved.plan, resolved.status, resolved.token_allotment) == ("starter", SubscriptionStatus.ACTIVE, 5000)


def test_start_subscription_rejects_bad_input():
    account = get_or_create_account("user_sub_bad")

    with pytest.raises(ValidationError):
        start_subscription(account.account_id, "pro", status=SubscriptionStatus.PAST_DUE)
    with pytest.raises(ValidationError):
        start_subscription(account.account_id, "pro", token_allotment=-5)
    with pytest.raises(ConfigurationError):
        start_subscription(account.account_id, "platinum")

    assert get_subscription(account.account_id) is None


def test_start_subscription_conflicts_with_live_record():
    account = get_or_create_account("user_sub_conflict")
    start_subscription(account.account_id, "pro", status=SubscriptionStatus.TRIALING)

    with pytest.raises(ConflictError):
        start_subscription(account.account_id, "starter")


def test_lifecycle_transitions():
    account = get_or_create_account("user_sub_lifecycle")
    start_subscription(account.account_id, "pro", status=SubscriptionStatus.TRIALING)

    assert transition_status(account.account_id, SubscriptionStatus.ACTIVE).status == SubscriptionStatus.ACTIVE
    assert transition_status(account.account_id, SubscriptionStatus.PAST_DUE).status == SubscriptionStatus.PAST_DUE
    assert transition_status(account.account_id, SubscriptionStatus.ACTIVE).status == SubscriptionStatus.ACTIVE
    assert transition_status(account.account_id, SubscriptionStatus.CANCELED).status == SubscriptionStatus.CANCELED

    assert resolve_for_account(account.account_id).status == SubscriptionStatus.CANCELED


def test_same_state_transition_is_a_noop():
    account = get_or_create_account("user_sub_replay")
    started = start_subscription(account.account_id, "pro")

    assert transition_status(account.account_id, SubscriptionStatus.ACTIVE) == started


def test_canceled_is_terminal_and_resubscribe_creates_new_record():
    account = get_or_create_account("user_sub_resub")
    t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
    first = start_subscription(account.account_id, "starter", now=t0)
    transition_status(account.account_id, SubscriptionStatus.CANCELED)

    for status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE, SubscriptionStatus.TRIALING):
        with pytest.raises(InvalidStatusTransitionError):
            transition_status(account.account_id, status)

    second = start_subscription(account.account_id, "pro", now=t0 + timedelta(days=40))

    assert second.id != first.id
    current = get_subscription(account.account_id)
    assert current.id == second.id
    assert current.plan_id == "pro"
    assert current.status == SubscriptionStatus.ACTIVE


def test_transition_without_record_is_rejected():
    account = get_or_create_account("user_sub_missing")
    with pytest.raises(InvalidStatusTransitionError):
        transition_status(account.account_id, SubscriptionStatus.ACTIVE)


def test_transition_table_covers_every_status():
    assert set(ALLOWED_TRANSITIONS) == set(SubscriptionStatus)
    assert ALLOWED_TRANSITIONS[SubscriptionStatus.CANCELED] == frozenset()
    assert can_transition(SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING) is False
    assert can_transition(SubscriptionStatus.PAST_DUE, SubscriptionStatus.ACTIVE) is True


def test_list_subscribed_plan_ids():
    a = get_or_create_account("user_sub_list_a")
    b = get_or_create_account("user_sub_list_b")
    start_subscription(a.account_id, "pro")
    start_subscription(b.account_id, "enterprise")

    assert list_subscribed_plan_ids() == ["enterprise", "pro"]


def test_start_subscription_rejects_free_plan():
    account = get_or_create_account("user_sub_free")

    with pytest.raises(ValidationError):
        start_subscription(account.account_id, "free")

    assert get_subscription(account.account_id) is None
