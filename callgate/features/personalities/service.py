"""
callgate/features/personalities/service.py

Personality catalog.

Handles:
- Catalog seeding (deployment-time, idempotent)
- Stable listing (by tier value, bosses first within a tier, then by name)
- Tier/boss split into unlocked and locked personalities

The catalog is read-only at entitlements-computation time.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import uuid5, NAMESPACE_URL
from sqlalchemy import select

from callgate.core.database import get_db_session, personalities, insert_if_absent
from callgate.models.personality import PersonalityDefinition, Tier


logger = logging.getLogger(__name__)


def _seed(name: str, description: str, tier: Tier, is_boss: bool, agent_id: str) -> PersonalityDefinition:
    # Deterministic ids so every deployment seeds the same catalog
    return PersonalityDefinition(
        id=str(uuid5(NAMESPACE_URL, f"callgate/personality/{name}")),
        name=name,
        description=description,
        tier_required=tier,
        is_boss=is_boss,
        agent_id=agent_id,
    )


# Default catalog: three base personalities, five paid bosses
DEFAULT_PERSONALITIES: Tuple[PersonalityDefinition, ...] = (
    _seed("Josh", "Local business owner running a small hardware store. Direct, practical, and focused on the bottom line.", Tier.TRIAL, False, "agent_hardware_store"),
    _seed("Zenia", "Florist store owner with a warm accent and a passion for flowers. Creative and detail-oriented.", Tier.TRIAL, False, "agent_florist"),
    _seed("Marcus", "Experienced gym owner and fitness coach. High energy, motivational, and competitive.", Tier.TRIAL, False, "agent_gym_owner"),
    _seed("The Wolf", "Legendary Wall Street closer. Aggressive, confident, and relentless.", Tier.PAID, True, "agent_wolf"),
    _seed("The Motivator", "Charismatic sales trainer who believes in the power of attitude.", Tier.PAID, True, "agent_motivator"),
    _seed("The Shark", "Ruthless investor from the boardroom. Demands numbers and challenges every assumption.", Tier.PAID, True, "agent_shark"),
    _seed("The Oracle", "Visionary tech founder. Thinks ten years ahead and asks deep questions.", Tier.PAID, True, "agent_oracle"),
    _seed("The Titan", "Fortune 500 CEO. Strategic, commanding, and expects excellence in every detail.", Tier.PAID, True, "agent_titan"),
)


def catalog_sort_key(definition: PersonalityDefinition):
    # Tier by its stored value ("paid" < "trial"), bosses first, then name
    return (definition.tier_required.value, not definition.is_boss, definition.name)


def seed_personalities(definitions: Iterable[PersonalityDefinition] = DEFAULT_PERSONALITIES) -> int:
    """
    Seed the catalog (idempotent).

    Names already present are left untouched. Returns the number inserted.
    """
    now = datetime.now(timezone.utc)
    inserted = 0
    with get_db_session() as session:
        for definition in definitions:
            inserted += insert_if_absent(
                session,
                personalities,
                {
                    "id": definition.id,
                    "name": definition.name,
                    "description": definition.description,
                    "agent_id": definition.agent_id,
                    "tier_required": definition.tier_required.value,
                    "is_boss": definition.is_boss,
                    "created_at": now,
                },
                index_elements=["name"],
            )
    if inserted:
        logger.info("[personalities] seeded", extra={"inserted": inserted})
    return inserted


def list_all() -> List[PersonalityDefinition]:
    """All personalities in stable catalog order."""
    with get_db_session() as session:
        rows = session.execute(select(personalities)).all()
    definitions = [
        PersonalityDefinition(
            id=row.id,
            name=row.name,
            description=row.description,
            tier_required=Tier(row.tier_required),
            is_boss=bool(row.is_boss),
            agent_id=row.agent_id,
        )
        for row in rows
    ]
    return sorted(definitions, key=catalog_sort_key)


def is_unlocked(definition: PersonalityDefinition, tier: Tier, has_boss: bool) -> bool:
    if tier.rank < definition.tier_required.rank:
        return False
    return has_boss or not definition.is_boss


def split(
    tier: Tier,
    has_boss: bool,
    catalog: Optional[Sequence[PersonalityDefinition]] = None,
) -> Tuple[List[PersonalityDefinition], List[PersonalityDefinition]]:
    """
    Partition the catalog into (unlocked, locked), both in catalog order.

    A personality is unlocked iff `tier` is at or above its required tier and,
    for bosses, `has_boss` is set. Pure when `catalog` is supplied.
    """
    if catalog is None:
        catalog = list_all()
    unlocked: List[PersonalityDefinition] = []
    locked: List[PersonalityDefinition] = []
    for definition in catalog:
        if is_unlocked(definition, tier, has_boss):
            unlocked.append(definition)
        else:
            locked.append(definition)
    return unlocked, locked
