"""
callgate/models/personality.py

Personality catalog entries and the access tiers that gate them.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Tier(str, Enum):
    """Access level, ordered: trial < paid."""
    TRIAL = "trial"
    PAID = "paid"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {Tier.TRIAL: 0, Tier.PAID: 1}


class PersonalityDefinition(BaseModel):
    """Immutable catalog entry."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    tier_required: Tier
    is_boss: bool = False
    agent_id: Optional[str] = None

    def summary(self) -> "PersonalitySummary":
        return PersonalitySummary(
            id=self.id,
            name=self.name,
            description=self.description,
            is_boss=self.is_boss,
        )


class PersonalitySummary(BaseModel):
    """Public shape of a personality in the entitlements response."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    description: str
    is_boss: bool
