from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..util.paths import content_dir
from .acquisition import AcquisitionLedger
from .chargen import build_character
from .eligibility import CapRegistry, EligibilityEvaluator
from .errors import RulesError
from .expr import expr_cache_info
from .loader import AbilityCatalog, load_catalog
from .models import Character
from .progression import MissionLedger, utcnow
from .rerolls import adjust_skill_reroll, available_rerolls, reset_skill_rerolls
from .schema_models import AbilityDefBase
from .settings import Settings
from .trace import TraceSession

ENGINE_VERSION = "0.1.0"

class SheetEngine:
    """
    Session facade: owns the catalog and the single latest snapshot. Intents are applied one
    at a time against that snapshot; it is replaced only when the intent succeeds.
    """
    def __init__(self, catalog: Optional[AbilityCatalog] = None, settings: Optional[Settings] = None,
                 caps: Optional[CapRegistry] = None, clock: Callable[[], datetime] = utcnow):
        self.settings: Settings = settings or Settings()
        self.catalog: AbilityCatalog = catalog or load_catalog(content_dir(self.settings.default_content_pack))
        self.trace = TraceSession(limit=self.settings.trace_limit)
        self.evaluator = EligibilityEvaluator(self.catalog, caps=caps)
        self.abilities = AcquisitionLedger(self.catalog, self.evaluator, trace=self.trace)
        self.missions = MissionLedger(self.catalog, self.abilities, settings=self.settings,
                                      trace=self.trace, clock=clock)
        self.character: Character = build_character(self.catalog, ledger=self.abilities, settings=self.settings)

    # -------- persistence boundary --------
    def new_character(self, name: str = "", race: Optional[str] = None,
                      skills: Optional[Dict[str, int]] = None) -> Character:
        self.character = build_character(self.catalog, name=name, race=race, skills=skills,
                                         ledger=self.abilities, settings=self.settings)
        return self.character

    def load(self, data: Character | Dict[str, Any]) -> Character:
        ch = data.model_copy(deep=True) if isinstance(data, Character) else Character.model_validate(data)
        if self.settings.consolidate_on_load:
            ch = self.abilities.consolidate_duplicates(ch)
        for problem in self.evaluator.audit(ch):
            self.trace.add("Load", problem)
        self.character = ch
        return ch

    def dump(self) -> Dict[str, Any]:
        return self.character.model_dump(mode="json")

    def _apply(self, op: Callable[..., Character], *args, **kwargs) -> Character:
        try:
            nxt = op(self.character, *args, **kwargs)
        except RulesError as e:
            self.trace.add("Reject", str(e))
            raise
        self.character = nxt
        return nxt

    # -------- abilities --------
    def acquire(self, variant: str, name: str) -> Character:
        return self._apply(self.abilities.acquire, variant, name)

    def release(self, held_id: str) -> Character:
        return self._apply(self.abilities.release, held_id)

    def patch(self, held_id: str, **changes) -> Character:
        return self._apply(self.abilities.patch, held_id, **changes)

    def change_race(self, new_race: Optional[str]) -> Character:
        return self._apply(self.abilities.reconcile_race, new_race)

    def can_acquire(self, variant: str, name: str) -> bool:
        return self.evaluator.can_acquire(self.character, variant, name)

    def reasons_blocking(self, variant: str, name: str) -> List[str]:
        return self.evaluator.reasons_blocking(self.character, variant, name)

    def options(self, variant: str) -> List[Tuple[AbilityDefBase, List[str]]]:
        """Catalog entries of a variant (race entries for the current race) with their blocking reasons."""
        if variant == "race":
            entries: List[AbilityDefBase] = list(self.catalog.race_abilities(self.character.race))
        elif variant == "skill":
            entries = list(self.catalog.skill_choices.values())
        else:
            entries = list(self.catalog.general.values())
        return [(ab, self.evaluator.reasons_blocking(self.character, variant, ab.name)) for ab in entries]

    def locked_ids(self) -> List[str]:
        return self.evaluator.locked_ids(self.character)

    def audit(self) -> List[str]:
        return self.evaluator.audit(self.character)

    # -------- missions & skills --------
    def mark_mission_success(self, skill_id: str, flag: bool = True) -> Character:
        return self._apply(self.missions.mark_mission_success, skill_id, flag)

    def commit_mission(self, notes: Optional[str] = None) -> Character:
        return self._apply(self.missions.commit_mission, notes)

    def effective_tally(self) -> Dict[str, int]:
        return self.missions.effective_tally(self.character)

    def raise_skill_level(self, skill_id: str, new_level: int) -> Character:
        return self._apply(self.missions.raise_skill_level, skill_id, new_level)

    def set_skill_level(self, skill_id: str, level: int) -> Character:
        return self._apply(self.missions.set_skill_level, skill_id, level)

    def adjust_skill_reroll(self, skill_id: str, delta: int) -> Character:
        return self._apply(lambda ch: adjust_skill_reroll(self.catalog, ch, skill_id, delta, self.settings))

    def reset_skill_rerolls(self) -> Character:
        return self._apply(lambda ch: reset_skill_rerolls(self.catalog, ch, self.settings))

    def skill_rerolls(self) -> Dict[str, int]:
        return available_rerolls(self.catalog, self.character, self.settings)

    def diagnostics(self) -> List[str]:
        return [f"engine {ENGINE_VERSION}", expr_cache_info(), *self.trace.dump()]
