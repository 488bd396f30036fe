from __future__ import annotations
from typing import Dict

from .errors import NotFound, UnknownSkill
from .loader import AbilityCatalog
from .models import Character
from .settings import Settings

def _clamp(n: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, n))

def sync_skill_rerolls(catalog: AbilityCatalog, character: Character, settings: Settings) -> Dict[str, int]:
    """
    Open a reroll pool for every skill that reached the threshold and has none yet, seeded
    with the skill level. Mutates `character` in place; returns the pools it opened.
    """
    opened: Dict[str, int] = {}
    for sid, sk in catalog.skills.items():
        level = character.skills.get(sid, sk.min)
        if level >= settings.skill_reroll_threshold and sid not in character.skill_rerolls:
            character.skill_rerolls[sid] = _clamp(level, settings.skill_reroll_min, settings.skill_reroll_max)
            opened[sid] = character.skill_rerolls[sid]
    return opened

def available_rerolls(catalog: AbilityCatalog, character: Character, settings: Settings) -> Dict[str, int]:
    out: Dict[str, int] = {}
    for sid, sk in catalog.skills.items():
        if character.skills.get(sid, sk.min) >= settings.skill_reroll_threshold:
            out[sid] = _clamp(character.skill_rerolls.get(sid, 0), settings.skill_reroll_min, settings.skill_reroll_max)
    return out

def adjust_skill_reroll(catalog: AbilityCatalog, character: Character, skill_id: str, delta: int,
                        settings: Settings) -> Character:
    if skill_id not in catalog.skills:
        raise UnknownSkill(skill_id)
    if skill_id not in available_rerolls(catalog, character, settings):
        raise NotFound("reroll pool", skill_id)
    nxt = character.model_copy(deep=True)
    cur = _clamp(nxt.skill_rerolls.get(skill_id, 0), settings.skill_reroll_min, settings.skill_reroll_max)
    nxt.skill_rerolls[skill_id] = _clamp(cur + delta, settings.skill_reroll_min, settings.skill_reroll_max)
    return nxt

def reset_skill_rerolls(catalog: AbilityCatalog, character: Character, settings: Settings) -> Character:
    """Refill every qualifying skill's pool to its level. Pools of other skills are kept as they are."""
    nxt = character.model_copy(deep=True)
    for sid, sk in catalog.skills.items():
        level = nxt.skills.get(sid, sk.min)
        if level >= settings.skill_reroll_threshold:
            nxt.skill_rerolls[sid] = _clamp(level, settings.skill_reroll_min, settings.skill_reroll_max)
    return nxt
