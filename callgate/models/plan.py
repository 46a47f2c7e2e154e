"""
callgate/models/plan.py

Plan configuration model.

Plans are a static configuration table keyed by plan id; they carry the
call duration cap and metering behavior, not pricing.
"""

from pydantic import BaseModel, ConfigDict, Field


class PlanConfig(BaseModel):
    """
    PlanConfig describes what a plan id means for calling.

    - max_call_duration_seconds: hard cap for a single call (> 0)
    - token_allotment: default tokens per metering period
    - unmetered: calls are never gated on remaining tokens
    - overage_billing: calls past the allotment stay allowed and are billed
    """
    model_config = ConfigDict(frozen=True)

    plan_id: str
    name: str
    max_call_duration_seconds: int = Field(gt=0)
    token_allotment: int = Field(default=0, ge=0)
    unmetered: bool = False
    overage_billing: bool = False
