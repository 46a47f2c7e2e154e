"""
callgate/models/subscription.py

Subscription lifecycle state and records.

State machine (driven by payment-provider events handled elsewhere):

    trialing -> active | past_due | canceled
    active   -> past_due | canceled
    past_due -> active | canceled
    canceled -> (terminal; resubscribing creates a fresh record)

`none` is never stored: it is what an account without a record resolves to.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class SubscriptionStatus(str, Enum):
    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class SubscriptionRecord(BaseModel):
    """Stored subscription row (most recent per account is current)."""
    model_config = ConfigDict(frozen=True)

    id: int
    account_id: str
    plan_id: str
    status: SubscriptionStatus
    token_allotment: int = Field(ge=0)
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    created_at: datetime


class ResolvedSubscription(BaseModel):
    """Normalized plan/status view used by the entitlements engine."""
    model_config = ConfigDict(frozen=True)

    plan: str
    status: SubscriptionStatus
    token_allotment: int = Field(ge=0)
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
