"""
callgate/models/usage_period.py

Token metering models.

UsageConsumption is what storage knows (tokens used in a window);
UsagePeriod joins it with the subscription's allotment for that window.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class UsageConsumption(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    tokens_consumed: int = Field(ge=0)
    period_start: datetime
    period_end: datetime


class UsagePeriod(BaseModel):
    """
    Consumed vs. allotted tokens for one metering period.

    tokens_consumed may exceed token_allotment; that excess is the overage signal.
    """
    model_config = ConfigDict(frozen=True)

    account_id: str
    tokens_consumed: int = Field(ge=0)
    token_allotment: int = Field(ge=0)
    period_start: datetime
    period_end: datetime
