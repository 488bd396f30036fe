from __future__ import annotations
from typing import Dict, List, Optional, Set, Tuple

from .eligibility import EligibilityEvaluator
from .errors import IneligibleAbility, LockedAbility, NotFound
from .loader import AbilityCatalog
from .models import Character, HeldAbility
from .trace import TraceSession

_UNSET = object()

class AcquisitionLedger:
    """
    Add / remove / patch held abilities. Every method takes a snapshot and returns a new one;
    rejected intents raise a RulesError and leave the input untouched.
    """
    def __init__(self, catalog: AbilityCatalog, evaluator: Optional[EligibilityEvaluator] = None,
                 trace: Optional[TraceSession] = None):
        self.catalog = catalog
        self.evaluator = evaluator or EligibilityEvaluator(catalog)
        self.trace = trace or TraceSession()

    def _log(self, line: str, tag: str = "Acq") -> None:
        self.trace.add(tag, line)

    # -------- acquire / release --------
    def acquire(self, character: Character, variant: str, name: str) -> Character:
        reasons = self.evaluator.reasons_blocking(character, variant, name)
        if reasons:
            self._log(f"Rejected {variant} '{name}': {reasons[0]}")
            raise IneligibleAbility(variant, name, reasons)
        ab = self.evaluator.lookup(character, variant, name)
        if ab is None:
            raise NotFound(f"{variant} ability", name)

        nxt = character.model_copy(deep=True)
        rows = nxt.rows_named(variant, name)
        if ab.stackable and rows:
            rows[0].count = min(rows[0].count + 1, ab.cap)
            self._log(f"{name} x{rows[0].count}/{ab.cap}")
        else:
            nxt.abilities.append(HeldAbility(variant=variant, name=name, count=1))  # type: ignore[arg-type]
            self._log(f"Acquired {variant} '{name}'")
        return nxt

    def release(self, character: Character, held_id: str) -> Character:
        row = self._require_row(character, held_id)
        if row.count > 1:
            nxt = character.model_copy(deep=True)
            self._require_row(nxt, held_id).count -= 1
            self._log(f"{row.name} reduced to x{row.count - 1}")
            return nxt
        return self._delete(character, row)

    def patch(self, character: Character, held_id: str, *, notes=_UNSET, count: Optional[int] = None) -> Character:
        """Edit a row's notes and/or set its stack count (clamped to 0..stackMax; 0 deletes)."""
        row = self._require_row(character, held_id)
        if count is not None:
            ab = self.evaluator.definition_for(character, row)
            if ab is None:
                raise NotFound(f"{row.variant} ability", row.name)
            count = max(0, min(int(count), ab.cap))
            if count == 0:
                return self._delete(character, row)
        nxt = character.model_copy(deep=True)
        target = self._require_row(nxt, held_id)
        if notes is not _UNSET:
            target.notes = notes or None
        if count is not None and count != target.count:
            target.count = count
            self._log(f"{target.name} set to x{count}")
        return nxt

    def _require_row(self, character: Character, held_id: str) -> HeldAbility:
        row = character.find(held_id)
        if row is None:
            raise NotFound("held ability", held_id)
        return row

    def _delete(self, character: Character, row: HeldAbility) -> Character:
        if self.evaluator.is_locked(character, row):
            self._log(f"Refused to remove race default '{row.name}'")
            raise LockedAbility(row.id, row.name, f"granted by race {character.race}")
        dependents = self.evaluator.dependents_of(character, row.id)
        if dependents:
            self._log(f"Refused to remove '{row.name}': required by {', '.join(dependents)}")
            raise LockedAbility(row.id, row.name, f"required by {', '.join(dependents)}")
        nxt = character.model_copy(deep=True)
        nxt.abilities = [r for r in nxt.abilities if r.id != row.id]
        self._log(f"Removed {row.variant} '{row.name}'")
        return nxt

    # -------- race reconciliation --------
    def reconcile_race(self, character: Character, new_race: Optional[str],
                       previous_race: Optional[str] = None) -> Character:
        """
        Switch race defaults from `previous_race` (default: the snapshot's race) to `new_race`.
        Defaults shared by both races keep their row (and count). Abilities left without a
        prerequisite by the removed defaults are dropped too. Never fails; idempotent.
        """
        old = character.race if previous_race is None else previous_race
        new = new_race.strip() if isinstance(new_race, str) and new_race.strip() else None
        old_auto = self.catalog.auto_names(old)
        new_auto = self.catalog.auto_names(new)

        nxt = character.model_copy(deep=True)
        nxt.race = new
        before_unmet = {r.id for r, _ in self.evaluator.unmet_prerequisites(nxt)}

        kept: List[HeldAbility] = []
        removed: List[str] = []
        for r in nxt.abilities:
            if r.variant == "race" and r.name in old_auto and r.name not in new_auto:
                removed.append(r.name)
                continue
            if r.variant == "race" and r.name in new_auto:
                r.auto = True
            kept.append(r)
        nxt.abilities = kept

        held = {r.name for r in kept if r.variant == "race"}
        added: List[str] = []
        for ab in self.catalog.race_abilities(new):
            if ab.auto and ab.name not in held:
                nxt.abilities.append(HeldAbility(variant="race", name=ab.name, count=1, auto=True))
                added.append(ab.name)

        if old != new or removed or added:
            self._log(f"{old or 'none'} -> {new or 'none'}: removed {removed or '-'}, added {added or '-'}", tag="Race")
        if removed:
            nxt = self._prune(nxt, keep_ids=before_unmet, tag="Race")
        return nxt

    # -------- repairs --------
    def prune_unsupported(self, character: Character) -> Character:
        """Drop every non-default ability whose prerequisites no longer hold, cascading."""
        return self._prune(character.model_copy(deep=True), keep_ids=set(), tag="Prune")

    def _prune(self, nxt: Character, keep_ids: Set[str], tag: str) -> Character:
        while True:
            failing = [(r, why) for r, why in self.evaluator.unmet_prerequisites(nxt) if r.id not in keep_ids]
            if not failing:
                return nxt
            drop = {r.id for r, _ in failing}
            for r, why in failing:
                self._log(f"Dropped '{r.name}': {'; '.join(why)}", tag=tag)
            nxt.abilities = [r for r in nxt.abilities if r.id not in drop]

    def consolidate_duplicates(self, character: Character) -> Character:
        """
        Merge split rows of the same ability into one row holding the capped sum, keeping the
        race-granted row when there is one. Zero-count rows are dropped. Idempotent.
        """
        nxt = character.model_copy(deep=True)
        merged: List[HeldAbility] = []
        index: Dict[Tuple[str, str], int] = {}
        for r in nxt.abilities:
            if r.count <= 0:
                self._log(f"Dropped empty row for '{r.name}'", tag="Repair")
                continue
            key = (r.variant, r.name)
            if key not in index:
                index[key] = len(merged)
                merged.append(r)
                continue
            pos = index[key]
            keeper = merged[pos]
            winner, loser = (r, keeper) if (r.auto and not keeper.auto) else (keeper, r)
            ab = self.evaluator.definition_for(nxt, winner)
            total = keeper.count + r.count
            winner.count = min(total, ab.cap) if ab is not None else total
            winner.notes = winner.notes or loser.notes
            merged[pos] = winner
            self._log(f"Merged duplicate '{r.name}' rows into x{winner.count}", tag="Repair")
        nxt.abilities = merged
        return nxt
