from datetime import datetime, timezone
import pytest
from infernalrpg.engine.loader import AbilityAdapter, AbilityCatalog
from infernalrpg.engine.schema_models import RaceDef, SkillDef

SKILLS = [
    SkillDef(id="pistols", label="Pistols", group="combat"),
    SkillDef(id="martialArts", label="Martial Arts", group="combat"),
    SkillDef(id="arcane", label="Arcane", group="magic"),
    SkillDef(id="demonology", label="Demonology", group="magic"),
    SkillDef(id="reflex", label="Reflex", group="specialized"),
    SkillDef(id="fortitude", label="Fortitude", group="specialized"),
]

RACES = [
    RaceDef(id="Altered"),
    RaceDef(id="Ascended", caps=[{"group": "core_power", "formula": "1 + stack_count('Ascendant Spark')"}]),
    RaceDef(id="Abomination", caps=[{"group": "mutation", "formula": "3 + stack_count('Emerging Mutation')"}]),
]

ABILITIES = [
    # Altered
    {"variant": "race", "race": "Altered", "name": "Augmented Nerves", "auto": True},
    {"variant": "race", "race": "Altered", "name": "Hellfire Reserve", "auto": True, "stackable": True, "stackMax": 3},
    {"variant": "race", "race": "Altered", "name": "Overclock", "requiresAll": ["Augmented Nerves"]},
    # Ascended
    {"variant": "race", "race": "Ascended", "name": "Hellfire Reserve", "auto": True, "stackable": True, "stackMax": 3},
    {"variant": "race", "race": "Ascended", "name": "Radiant Halo", "auto": True},
    {"variant": "race", "race": "Ascended", "name": "Ascendant Spark", "stackable": True, "stackMax": 2},
    {"variant": "race", "race": "Ascended", "name": "Smite", "group": "core_power"},
    {"variant": "race", "race": "Ascended", "name": "Sanctuary", "group": "core_power"},
    {"variant": "race", "race": "Ascended", "name": "Judgement", "group": "core_power", "requiresAll": ["Radiant Halo"]},
    # Abomination
    {"variant": "race", "race": "Abomination", "name": "Unnatural Physiology", "auto": True},
    {"variant": "race", "race": "Abomination", "name": "Emerging Mutation", "stackable": True, "stackMax": 3,
     "requiresAll": ["Unnatural Physiology"]},
    {"variant": "race", "race": "Abomination", "name": "Chitin Plating", "group": "mutation"},
    {"variant": "race", "race": "Abomination", "name": "Compound Eyes", "group": "mutation"},
    {"variant": "race", "race": "Abomination", "name": "Acidic Blood", "group": "mutation"},
    {"variant": "race", "race": "Abomination", "name": "Extra Limb", "group": "mutation"},
    {"variant": "race", "race": "Abomination", "name": "Venom Glands", "group": "mutation"},
    # skill choices
    {"variant": "skill", "skill": "pistols", "level": 3, "name": "Quickdraw", "oneOf": "pistols-3"},
    {"variant": "skill", "skill": "pistols", "level": 3, "name": "Fan the Hammer", "oneOf": "pistols-3"},
    {"variant": "skill", "skill": "reflex", "level": 3, "name": "Duck and Cover"},
    # general
    {"variant": "general", "name": "Toughness", "stackable": True, "stackMax": 3,
     "description": "Gain {count} additional injury slot(s)."},
    {"variant": "general", "name": "Lucky"},
    {"variant": "general", "name": "Ambidextrous", "requiresAnySkillIds": ["pistols", "martialArts"], "requiresMinLevel": 3},
    {"variant": "general", "name": "Gun Kata", "requiresAll": ["Ambidextrous"], "requiresSkillLevels": {"pistols": 4}},
    {"variant": "general", "name": "Polyglot", "requiresAnySkillLevel": 4},
    {"variant": "general", "name": "Occultist", "anyOf": [
        {"requiresSkillId": "arcane", "requiresMinLevel": 3},
        {"requiresSkillId": "demonology", "requiresMinLevel": 3},
    ]},
    {"variant": "general", "name": "Aggressive Stance", "oneOf": "fighting-stance"},
    {"variant": "general", "name": "Defensive Stance", "oneOf": "fighting-stance"},
]

FIXED_NOW = datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc)

@pytest.fixture
def catalog() -> AbilityCatalog:
    return AbilityCatalog.from_entries(SKILLS, RACES, [AbilityAdapter.validate_python(a) for a in ABILITIES])

@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
