from __future__ import annotations
from typing import Dict, Optional

from .acquisition import AcquisitionLedger
from .errors import LevelOutOfRange, UnknownSkill
from .loader import AbilityCatalog
from .models import Character
from .rerolls import sync_skill_rerolls
from .settings import Settings

def default_skills(catalog: AbilityCatalog) -> Dict[str, int]:
    return {sid: sk.min for sid, sk in catalog.skills.items()}

def build_character(catalog: AbilityCatalog, name: str = "", race: Optional[str] = None,
                    skills: Optional[Dict[str, int]] = None,
                    ledger: Optional[AcquisitionLedger] = None,
                    settings: Optional[Settings] = None) -> Character:
    """
    Fresh character: every skill at its minimum (or the given starting levels) and the
    race defaults granted.
    """
    levels = default_skills(catalog)
    for sid, lvl in (skills or {}).items():
        sk = catalog.skills.get(sid)
        if sk is None:
            raise UnknownSkill(sid)
        if not sk.min <= lvl <= sk.max:
            raise LevelOutOfRange(sid, lvl, sk.min, sk.max)
        levels[sid] = lvl

    ch = Character(name=name, skills=levels)
    sync_skill_rerolls(catalog, ch, settings or Settings())
    ledger = ledger or AcquisitionLedger(catalog)
    return ledger.reconcile_race(ch, race, previous_race=None)
