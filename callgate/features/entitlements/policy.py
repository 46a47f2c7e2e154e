"""
Entitlements decision policy.

decide_entitlements() is a pure fold over an EntitlementsSnapshot: no storage
access, no clock, no mutation. Same snapshot + same policy = same result.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional

from callgate.core.config import settings
from callgate.features.personalities.service import split
from callgate.features.plans.service import FREE_PLAN_ID, PLAN_CONFIGS, get_plan_config
from callgate.features.trial_credits.service import can_purchase_another_pack
from callgate.features.usage.service import current_period, is_overage, tokens_remaining
from callgate.models.entitlements import Entitlements, EntitlementsSnapshot
from callgate.models.personality import Tier
from callgate.models.plan import PlanConfig
from callgate.models.subscription import ResolvedSubscription, SubscriptionStatus

POLICY_VERSION = "2026.10-v1"

# Access tier granted by each subscription status. Every status must be listed.
ACCESS_TIER_BY_STATUS: Dict[SubscriptionStatus, Tier] = {
    SubscriptionStatus.NONE: Tier.TRIAL,
    SubscriptionStatus.TRIALING: Tier.PAID,
    SubscriptionStatus.ACTIVE: Tier.PAID,
    SubscriptionStatus.PAST_DUE: Tier.PAID,
    SubscriptionStatus.CANCELED: Tier.TRIAL,
}

# Bosses need a subscription in good standing: not grace period, not bare trial
BOSS_STATUSES: FrozenSet[SubscriptionStatus] = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
})

# Statuses whose calls are gated on tokens / plan metering
METERED_CALL_STATUSES: FrozenSet[SubscriptionStatus] = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
})

_missing = set(SubscriptionStatus) - set(ACCESS_TIER_BY_STATUS)
if _missing:
    raise RuntimeError(f"ACCESS_TIER_BY_STATUS is missing statuses: {sorted(s.value for s in _missing)}")


@dataclass(frozen=True)
class EntitlementsPolicy:
    plan_configs: Mapping[str, PlanConfig] = field(default_factory=lambda: PLAN_CONFIGS)
    # Past-due accounts keep calling (flagged via billing_attention) even with
    # no tokens and no trial credits
    past_due_allows_calls: bool = True


def default_policy() -> EntitlementsPolicy:
    return EntitlementsPolicy(past_due_allows_calls=settings.PAST_DUE_ALLOWS_CALLS)


def has_paid_access(status: SubscriptionStatus) -> bool:
    return ACCESS_TIER_BY_STATUS[status] == Tier.PAID


def effective_subscription(subscription: ResolvedSubscription) -> ResolvedSubscription:
    """A subscription without paid access (none, canceled) counts as the free plan."""
    if has_paid_access(subscription.status):
        return subscription
    return subscription.model_copy(update={"plan": FREE_PLAN_ID, "token_allotment": 0})


def decide_can_call(
    status: SubscriptionStatus,
    plan: PlanConfig,
    trial_calls_remaining: int,
    remaining_tokens: int,
    policy: EntitlementsPolicy,
) -> bool:
    if trial_calls_remaining > 0:
        return True
    if status in METERED_CALL_STATUSES:
        return remaining_tokens > 0 or plan.unmetered or plan.overage_billing
    if status == SubscriptionStatus.PAST_DUE:
        return policy.past_due_allows_calls
    # none, canceled
    return False


def decide_entitlements(
    snapshot: EntitlementsSnapshot,
    policy: Optional[EntitlementsPolicy] = None,
) -> Entitlements:
    """
    Fold the four snapshots into one Entitlements value.

    Raises:
        ConfigurationError: the effective plan has no configuration entry
    """
    if policy is None:
        policy = default_policy()

    subscription = effective_subscription(snapshot.subscription)
    status = subscription.status
    plan = get_plan_config(subscription.plan, policy.plan_configs)

    period = current_period(snapshot.consumption, subscription)
    remaining_tokens = tokens_remaining(period)
    balance = snapshot.trial_balance

    # A record on the free plan (written outside start_subscription) grants nothing paid
    paid_plan = plan.plan_id != FREE_PLAN_ID

    can_call = decide_can_call(status, plan, balance.remaining_credits, remaining_tokens, policy)
    can_buy_another_trial = can_purchase_another_pack(balance) and not (
        paid_plan and status in METERED_CALL_STATUSES
    )

    unlocked, locked = split(
        ACCESS_TIER_BY_STATUS[status] if paid_plan else Tier.TRIAL,
        paid_plan and status in BOSS_STATUSES,
        snapshot.catalog,
    )

    return Entitlements(
        plan=plan.plan_id,
        can_call=can_call,
        trial_calls_remaining=balance.remaining_credits,
        tokens_remaining=remaining_tokens,
        is_overage=is_overage(period),
        trial_purchases_count=balance.purchase_count,
        can_buy_another_trial=can_buy_another_trial,
        max_call_duration_seconds=plan.max_call_duration_seconds,
        unlocked_personalities=tuple(p.summary() for p in unlocked),
        locked_personalities=tuple(p.summary() for p in locked),
        subscription_status=status,
        billing_attention=status == SubscriptionStatus.PAST_DUE,
    )
