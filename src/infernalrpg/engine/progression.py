from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .acquisition import AcquisitionLedger
from .errors import LevelOutOfRange, NonMonotonicLevelChange, UnknownSkill
from .loader import AbilityCatalog
from .models import Character, MissionLogEntry
from .rerolls import sync_skill_rerolls
from .schema_models import SkillDef
from .settings import Settings
from .trace import TraceSession

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def effective_tally(character: Character) -> Dict[str, int]:
    """
    Banked credit per skill: successes earned across history minus what level-ups consumed.
    Keys are every skill ever earned or spent; values are never negative.
    """
    spent = character.tally_spent
    out = {sid: max(0, n - spent.get(sid, 0)) for sid, n in character.earned_tally().items()}
    for sid in spent:
        out.setdefault(sid, 0)
    return out

class MissionLedger:
    """
    Mission lifecycle: Drafting (flags mutable) -> commit -> Committed (appended to history,
    draft cleared) -> Drafting. Raising a skill spends its whole banked tally at once.
    """
    def __init__(self, catalog: AbilityCatalog, abilities: Optional[AcquisitionLedger] = None,
                 settings: Optional[Settings] = None, trace: Optional[TraceSession] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.catalog = catalog
        self.trace = trace or TraceSession()
        self.abilities = abilities or AcquisitionLedger(catalog, trace=self.trace)
        self.settings = settings or Settings()
        self.clock = clock

    def _require_skill(self, skill_id: str) -> SkillDef:
        sk = self.catalog.skills.get(skill_id)
        if sk is None:
            raise UnknownSkill(skill_id)
        return sk

    def current_level(self, character: Character, skill_id: str) -> int:
        sk = self._require_skill(skill_id)
        return int(character.skills.get(skill_id, sk.min))

    # -------- draft & commit --------
    def mark_mission_success(self, character: Character, skill_id: str, flag: bool = True) -> Character:
        self._require_skill(skill_id)
        nxt = character.model_copy(deep=True)
        if flag:
            nxt.current_mission[skill_id] = True
        else:
            nxt.current_mission.pop(skill_id, None)
        return nxt

    def commit_mission(self, character: Character, notes: Optional[str] = None) -> Character:
        successes = [sid for sid, flagged in character.current_mission.items() if flagged]
        seq = len(character.mission_history) + 1
        now = self.clock()
        entry = MissionLogEntry(
            mission_id=f"Mission {seq} ({now:%Y-%m-%d})",
            completed_at=now,
            successes=successes,
            notes=notes,
        )
        nxt = character.model_copy(deep=True)
        nxt.mission_history.append(entry)
        nxt.current_mission = {}
        self.trace.add("Tally", f"{entry.mission_id}: {len(successes)} skill(s) marked")
        return nxt

    # -------- tallies --------
    def earned_tally(self, character: Character) -> Dict[str, int]:
        return character.earned_tally()

    def effective_tally(self, character: Character) -> Dict[str, int]:
        return effective_tally(character)

    def _consume_tally(self, nxt: Character, skill_id: str) -> int:
        available = effective_tally(nxt).get(skill_id, 0)
        if available > 0:
            nxt.tally_spent[skill_id] = nxt.tally_spent.get(skill_id, 0) + available
            self.trace.add("Tally", f"{skill_id} level-up spent {available} success(es)")
        return available

    # -------- level changes --------
    def raise_skill_level(self, character: Character, skill_id: str, new_level: int) -> Character:
        sk = self._require_skill(skill_id)
        current = self.current_level(character, skill_id)
        if new_level <= current:
            raise NonMonotonicLevelChange(skill_id, current, new_level)
        if new_level > sk.max:
            raise LevelOutOfRange(skill_id, new_level, sk.min, sk.max)
        nxt = character.model_copy(deep=True)
        nxt.skills[skill_id] = new_level
        self._consume_tally(nxt, skill_id)
        sync_skill_rerolls(self.catalog, nxt, self.settings)
        return nxt

    def set_skill_level(self, character: Character, skill_id: str, level: int) -> Character:
        """
        Unguarded edit path: any level inside the skill's range. Increases spend the tally like
        raise_skill_level; abilities that no longer qualify afterwards are dropped.
        """
        sk = self._require_skill(skill_id)
        if not sk.min <= level <= sk.max:
            raise LevelOutOfRange(skill_id, level, sk.min, sk.max)
        current = self.current_level(character, skill_id)
        nxt = character.model_copy(deep=True)
        nxt.skills[skill_id] = level
        if level > current:
            self._consume_tally(nxt, skill_id)
            sync_skill_rerolls(self.catalog, nxt, self.settings)
        elif level < current:
            nxt = self.abilities.prune_unsupported(nxt)
        return nxt
