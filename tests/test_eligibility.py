import pytest
from infernalrpg.engine.acquisition import AcquisitionLedger
from infernalrpg.engine.chargen import build_character
from infernalrpg.engine.eligibility import CapRegistry, CharacterView, EligibilityEvaluator
from infernalrpg.engine.errors import IneligibleAbility
from infernalrpg.engine.models import Character, HeldAbility

@pytest.fixture
def evaluator(catalog):
    return EligibilityEvaluator(catalog)

@pytest.fixture
def ledger(catalog, evaluator):
    return AcquisitionLedger(catalog, evaluator)

def test_unknown_variant_and_name(catalog, evaluator):
    ch = build_character(catalog)
    assert evaluator.reasons_blocking(ch, "feat", "Lucky") == ["Unknown ability variant 'feat'"]
    assert evaluator.reasons_blocking(ch, "general", "Flight") == ["No general ability named 'Flight'"]

def test_race_ability_of_another_race(catalog, evaluator):
    ch = build_character(catalog, race="Ascended")
    (reason,) = evaluator.reasons_blocking(ch, "race", "Overclock")
    assert "belongs to Altered" in reason
    assert "Ascended" in reason

def test_requires_all_named_abilities(catalog, evaluator, ledger):
    ch = build_character(catalog, skills={"pistols": 4})
    assert evaluator.reasons_blocking(ch, "general", "Gun Kata") == ["Requires Ambidextrous"]
    ch = ledger.acquire(ch, "general", "Ambidextrous")
    assert evaluator.can_acquire(ch, "general", "Gun Kata")

def test_skill_level_gates(catalog, evaluator):
    ch = build_character(catalog, skills={"pistols": 3})
    reasons = evaluator.reasons_blocking(ch, "general", "Gun Kata")
    assert reasons == ["Requires Ambidextrous", "Requires pistols 4 (has 3)"]
    assert evaluator.reasons_blocking(ch, "skill", "Duck and Cover") == ["Requires reflex 3 (has 1)"]
    assert evaluator.can_acquire(ch, "skill", "Quickdraw")
    assert evaluator.can_acquire(ch, "general", "Ambidextrous")
    assert not evaluator.can_acquire(ch, "general", "Polyglot")
    assert evaluator.can_acquire(build_character(catalog, skills={"reflex": 4}), "general", "Polyglot")

def test_any_of_needs_one_full_branch(catalog, evaluator):
    assert not evaluator.can_acquire(build_character(catalog, skills={"arcane": 2}), "general", "Occultist")
    assert evaluator.can_acquire(build_character(catalog, skills={"demonology": 3}), "general", "Occultist")

def test_exclusive_group(catalog, evaluator, ledger):
    ch = ledger.acquire(build_character(catalog), "general", "Aggressive Stance")
    (reason,) = evaluator.reasons_blocking(ch, "general", "Defensive Stance")
    assert "Aggressive Stance" in reason and "fighting-stance" in reason
    with pytest.raises(IneligibleAbility):
        ledger.acquire(ch, "general", "Defensive Stance")

def test_non_stackable_held_once(catalog, evaluator, ledger):
    ch = ledger.acquire(build_character(catalog), "general", "Lucky")
    assert evaluator.reasons_blocking(ch, "general", "Lucky") == ["'Lucky' is already held"]

def test_mutation_cap_grows_with_emerging_mutation(catalog, evaluator, ledger):
    ch = build_character(catalog, race="Abomination")
    for name in ("Chitin Plating", "Compound Eyes", "Acidic Blood"):
        ch = ledger.acquire(ch, "race", name)
    assert evaluator.cap_for(ch, "mutation") == 3
    assert evaluator.reasons_blocking(ch, "race", "Extra Limb") == ["mutation limit reached for Abomination (3/3)"]

    ch = ledger.acquire(ch, "race", "Emerging Mutation")
    assert evaluator.cap_for(ch, "mutation") == 4
    ch = ledger.acquire(ch, "race", "Extra Limb")
    assert not evaluator.can_acquire(ch, "race", "Venom Glands")

def test_core_power_cap(catalog, evaluator, ledger):
    ch = ledger.acquire(build_character(catalog, race="Ascended"), "race", "Smite")
    (reason,) = evaluator.reasons_blocking(ch, "race", "Sanctuary")
    assert reason.startswith("core_power limit reached")
    ch = ledger.acquire(ch, "race", "Ascendant Spark")
    assert evaluator.can_acquire(ch, "race", "Sanctuary")

def test_custom_cap_hook(catalog):
    caps = CapRegistry()
    caps.register("Abomination", "mutation", lambda view: 1)
    evaluator = EligibilityEvaluator(catalog, caps=caps)
    ledger = AcquisitionLedger(catalog, evaluator)
    ch = ledger.acquire(build_character(catalog, race="Abomination"), "race", "Chitin Plating")
    assert not evaluator.can_acquire(ch, "race", "Compound Eyes")
    assert caps.groups_for("abomination") == ["mutation"]

def test_character_view(catalog):
    ch = build_character(catalog, race="Abomination", skills={"arcane": 3})
    ch.abilities.append(HeldAbility(variant="race", name="Chitin Plating"))
    ch.abilities.append(HeldAbility(variant="race", name="Emerging Mutation", count=2))
    view = CharacterView(catalog, ch)
    assert view.stack_count("Emerging Mutation") == 2
    assert view.held_in_group("mutation") == 1
    assert view.has("Unnatural Physiology")
    assert view.skill_level("arcane") == 3
    assert view.skill_level("reflex") == 1

def test_dependents_and_locked_rows(catalog, evaluator, ledger):
    ch = build_character(catalog, race="Altered", skills={"pistols": 4})
    ch = ledger.acquire(ch, "general", "Ambidextrous")
    ch = ledger.acquire(ch, "general", "Gun Kata")
    amb = ch.rows_named("general", "Ambidextrous")[0]
    assert evaluator.dependents_of(ch, amb.id) == ["Gun Kata"]
    locked = {ch.find(i).name for i in evaluator.locked_ids(ch)}
    assert locked == {"Augmented Nerves", "Hellfire Reserve"}

def test_audit_clean_and_dirty(catalog, evaluator):
    assert evaluator.audit(build_character(catalog, race="Altered")) == []

    ch = Character.model_validate({
        "race": "Altered",
        "attributes": {"pistols": 3},
        "abilities": [
            {"variant": "general", "name": "Aggressive Stance"},
            {"variant": "general", "name": "Defensive Stance"},
            {"variant": "general", "name": "Toughness", "count": 5},
            {"variant": "race", "name": "Smite"},
            {"variant": "general", "name": "Gun Kata"},
        ],
        "tallySpent": {"reflex": 2},
        "missionHistory": [{"missionId": "Mission 1 (2024-01-01)", "dateISO": "2024-01-01T00:00:00Z",
                            "successes": ["reflex"]}],
    })
    problems = evaluator.audit(ch)
    assert any("fighting-stance" in p for p in problems)
    assert "'Toughness' count 5 exceeds its maximum of 3" in problems
    assert "'Smite' is not a Altered ability" in problems
    assert "Race default 'Augmented Nerves' is missing" in problems
    assert any(p.startswith("'Gun Kata' no longer qualifies") for p in problems)
    assert "Tally for reflex overspent (2/1)" in problems

def test_raceless_character_gets_no_race_abilities(catalog, evaluator, ledger):
    ch = build_character(catalog)
    assert ch.race is None
    assert evaluator.lookup(ch, "race", "Chitin Plating") is None
    (reason,) = evaluator.reasons_blocking(ch, "race", "Chitin Plating")
    assert reason == "'Chitin Plating' belongs to Abomination; character race is not set"
    with pytest.raises(IneligibleAbility):
        ledger.acquire(ch, "race", "Chitin Plating")
    assert ch.abilities == []
