"""
Tests for the personality catalog: ordering, seeding, tier/boss split.
"""
from callgate.features.personalities.service import (
    DEFAULT_PERSONALITIES,
    list_all,
    seed_personalities,
    split,
)
from callgate.models.personality import PersonalityDefinition, Tier


def _p(name: str, tier: Tier, is_boss: bool = False) -> PersonalityDefinition:
    return PersonalityDefinition(
        id=f"id-{name}",
        name=name,
        description=f"{name} description",
        tier_required=tier,
        is_boss=is_boss,
    )


def test_seed_is_idempotent():
    """Seeding twice inserts the default catalog exactly once."""
    assert seed_personalities() == len(DEFAULT_PERSONALITIES)
    assert seed_personalities() == 0
    assert len(list_all()) == len(DEFAULT_PERSONALITIES)


def test_list_all_order_by_tier_value_bosses_first_then_name():
    seed_personalities([
        _p("Zed", Tier.PAID),
        _p("Amy", Tier.PAID, is_boss=True),
        _p("Bob", Tier.TRIAL),
        _p("Al", Tier.TRIAL),
        _p("Yara", Tier.TRIAL, is_boss=True),
        _p("Bea", Tier.PAID, is_boss=True),
    ])

    names = [p.name for p in list_all()]

    assert names == ["Amy", "Bea", "Zed", "Yara", "Al", "Bob"]


def test_list_all_empty_catalog():
    assert list_all() == []


def test_split_empty_catalog_yields_two_empty_lists():
    unlocked, locked = split(Tier.PAID, True, [])
    assert unlocked == []
    assert locked == []


def test_split_trial_tier_unlocks_only_trial_non_boss(seeded_catalog):
    unlocked, locked = split(Tier.TRIAL, False, seeded_catalog)

    assert {p.name for p in unlocked} == {"Josh", "Zenia", "Marcus"}
    assert all(p.tier_required == Tier.TRIAL and not p.is_boss for p in unlocked)
    assert len(locked) == 5


def test_split_paid_with_boss_unlocks_everything(seeded_catalog):
    unlocked, locked = split(Tier.PAID, True, seeded_catalog)

    assert unlocked == seeded_catalog
    assert locked == []


def test_split_paid_without_boss_keeps_bosses_locked(seeded_catalog):
    unlocked, locked = split(Tier.PAID, False, seeded_catalog)

    assert not any(p.is_boss for p in unlocked)
    assert all(p.is_boss for p in locked)


def test_split_trial_tier_boss_needs_boss_capability():
    """A trial-tier boss is still locked without the boss capability."""
    catalog = [_p("Sparring Boss", Tier.TRIAL, is_boss=True), _p("Easy", Tier.TRIAL)]

    unlocked, locked = split(Tier.TRIAL, False, catalog)
    assert [p.name for p in unlocked] == ["Easy"]
    assert [p.name for p in locked] == ["Sparring Boss"]

    unlocked, locked = split(Tier.TRIAL, True, catalog)
    assert [p.name for p in unlocked] == ["Sparring Boss", "Easy"]
    assert locked == []


def test_split_partitions_catalog_and_keeps_order(seeded_catalog):
    for tier in Tier:
        for has_boss in (True, False):
            unlocked, locked = split(tier, has_boss, seeded_catalog)
            assert {p.id for p in unlocked}.isdisjoint({p.id for p in locked})
            assert {p.id for p in unlocked} | {p.id for p in locked} == {p.id for p in seeded_catalog}
            order = [p.id for p in seeded_catalog]
            assert [p.id for p in unlocked] == [i for i in order if i in {p.id for p in unlocked}]


def test_split_reads_catalog_when_not_supplied(seeded_catalog):
    assert split(Tier.TRIAL, False) == split(Tier.TRIAL, False, seeded_catalog)


def test_default_catalog_lists_paid_bosses_first(seeded_catalog):
    assert seeded_catalog[0].tier_required == Tier.PAID
    assert [p.name for p in seeded_catalog] == [
        "The Motivator",
        "The Oracle",
        "The Shark",
        "The Titan",
        "The Wolf",
        "Josh",
        "Marcus",
        "Zenia",
    ]
