"""
callgate/models/entitlements.py

The computed, per-request entitlements result and the snapshot it is folded from.

Entitlements is never persisted. Attributes are snake_case in Python; the
serialized contract uses camelCase (`model_dump(by_alias=True)`).
"""

from typing import Tuple
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from callgate.models.account import Account
from callgate.models.personality import PersonalityDefinition, PersonalitySummary
from callgate.models.subscription import ResolvedSubscription, SubscriptionStatus
from callgate.models.trial_credit import TrialCreditBalance
from callgate.models.usage_period import UsageConsumption


class EntitlementsSnapshot(BaseModel):
    """Everything the decision needs, fetched before any decision is made."""
    model_config = ConfigDict(frozen=True)

    account: Account
    subscription: ResolvedSubscription
    trial_balance: TrialCreditBalance
    consumption: UsageConsumption
    catalog: Tuple[PersonalityDefinition, ...]


class Entitlements(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    plan: str
    can_call: bool
    trial_calls_remaining: int = Field(ge=0)
    tokens_remaining: int = Field(ge=0)
    is_overage: bool
    trial_purchases_count: int = Field(ge=0)
    can_buy_another_trial: bool
    max_call_duration_seconds: int = Field(gt=0)
    unlocked_personalities: Tuple[PersonalitySummary, ...]
    locked_personalities: Tuple[PersonalitySummary, ...]
    subscription_status: SubscriptionStatus
    billing_attention: bool = False

    def to_response(self) -> dict:
        """camelCase JSON-ready dict (the public response contract)."""
        return self.model_dump(mode="json", by_alias=True)
