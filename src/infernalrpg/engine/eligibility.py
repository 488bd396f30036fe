from __future__ import annotations
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

from .expr import eval_expr
from .loader import AbilityCatalog, race_key
from .models import Character, HeldAbility
from .schema_models import (
    VARIANTS, AbilityDefBase, AnyOf, RequiresAll, RequiresAny, RequiresAnySkill,
    RequiresAnySkillLevel, RequiresSkill, RequiresSkillLevels,
)

class CharacterView:
    """
    Read-only view used by cap formulas and hooks.
    `exclude_id` hides one held row (used when re-checking a row against the others).
    """
    def __init__(self, catalog: AbilityCatalog, character: Character, exclude_id: Optional[str] = None):
        self.catalog = catalog
        self.character = character
        self.exclude_id = exclude_id

    def _rows(self):
        return [r for r in self.character.abilities if r.id != self.exclude_id and r.count > 0]

    def stack_count(self, name: str) -> int:
        return sum(r.count for r in self._rows() if r.name == name)

    def held_in_group(self, group: str) -> int:
        total = 0
        for r in self._rows():
            ab = definition_for(self.catalog, self.character, r)
            if ab is not None and ab.group == group:
                total += r.count
        return total

    def has(self, name: str) -> bool:
        return any(r.name == name for r in self._rows())

    def skill_level(self, skill_id: str) -> int:
        return skill_levels(self.catalog, self.character).get(skill_id, 0)

    def names(self) -> Set[str]:
        return {r.name for r in self._rows()}

CapHook = Callable[[CharacterView], int]

class FormulaCap:
    """Cap hook backed by an authored formula such as "3 + stack_count('Emerging Mutation')"."""
    def __init__(self, formula: str | int):
        self.formula = formula

    def __call__(self, view: CharacterView) -> int:
        return int(eval_expr(self.formula, view=view))

    def __repr__(self) -> str:
        return f"FormulaCap({self.formula!r})"

class CapRegistry:
    """Per-race derived caps, keyed by the `group` tag of catalog entries."""
    def __init__(self) -> None:
        self._hooks: Dict[Tuple[str, str], CapHook] = {}

    @classmethod
    def from_catalog(cls, catalog: AbilityCatalog) -> "CapRegistry":
        reg = cls()
        for rd in catalog.races.values():
            for cap in rd.caps:
                reg.register(rd.id, cap.group, FormulaCap(cap.formula))
        return reg

    def register(self, race: str, group: str, hook: CapHook) -> None:
        self._hooks[(race_key(race), group)] = hook

    def get(self, race: Optional[str], group: str) -> Optional[CapHook]:
        return self._hooks.get((race_key(race), group))

    def groups_for(self, race: Optional[str]) -> List[str]:
        key = race_key(race)
        return [g for (r, g) in self._hooks if r == key]

def skill_levels(catalog: AbilityCatalog, character: Character) -> Dict[str, int]:
    # skills missing from the sheet sit at their catalog minimum
    levels = {sid: sk.min for sid, sk in catalog.skills.items()}
    levels.update({k: int(v) for k, v in character.skills.items()})
    return levels

def definition_for(catalog: AbilityCatalog, character: Character, row: HeldAbility) -> Optional[AbilityDefBase]:
    if row.variant == "race":
        return catalog.get("race", row.name, race=character.race) or catalog.get("race", row.name)
    return catalog.get(row.variant, row.name)

# -----------------------------
# Clause checks: each returns None when satisfied, else the reason
# -----------------------------

def _check_all(c: RequiresAll, names: Set[str], skills: Mapping[str, int]) -> Optional[str]:
    missing = [n for n in c.names if n not in names]
    return f"Requires {', '.join(missing)}" if missing else None

def _check_any(c: RequiresAny, names: Set[str], skills: Mapping[str, int]) -> Optional[str]:
    if not c.names or any(n in names for n in c.names):
        return None
    return f"Requires one of: {', '.join(c.names)}"

def _check_any_skill_level(c: RequiresAnySkillLevel, names: Set[str], skills: Mapping[str, int]) -> Optional[str]:
    if any(lvl >= c.min_level for lvl in skills.values()):
        return None
    return f"Requires any skill at level {c.min_level} or higher"

def _check_skill_levels(c: RequiresSkillLevels, names: Set[str], skills: Mapping[str, int]) -> Optional[str]:
    unmet = [f"{sid} {lvl} (has {skills.get(sid, 0)})" for sid, lvl in c.levels.items() if skills.get(sid, 0) < lvl]
    return f"Requires {', '.join(unmet)}" if unmet else None

def _check_skill(c: RequiresSkill, names: Set[str], skills: Mapping[str, int]) -> Optional[str]:
    have = skills.get(c.skill_id, 0)
    return None if have >= c.min_level else f"Requires {c.skill_id} {c.min_level} (has {have})"

def _check_any_skill(c: RequiresAnySkill, names: Set[str], skills: Mapping[str, int]) -> Optional[str]:
    if any(skills.get(sid, 0) >= c.min_level for sid in c.skill_ids):
        return None
    return f"Requires one of {', '.join(c.skill_ids)} at level {c.min_level} or higher"

def _check_any_of(c: AnyOf, names: Set[str], skills: Mapping[str, int]) -> Optional[str]:
    for branch in c.branches:
        if not unmet_clauses(branch, names, skills):
            return None
    return "Requires " + c.describe()

_CLAUSE_CHECKS: Dict[type, Callable[..., Optional[str]]] = {
    RequiresAll: _check_all,
    RequiresAny: _check_any,
    RequiresAnySkillLevel: _check_any_skill_level,
    RequiresSkillLevels: _check_skill_levels,
    RequiresSkill: _check_skill,
    RequiresAnySkill: _check_any_skill,
    AnyOf: _check_any_of,
}

def unmet_clauses(clauses, names: Set[str], skills: Mapping[str, int]) -> List[str]:
    reasons: List[str] = []
    for clause in clauses:
        check = _CLAUSE_CHECKS.get(type(clause))
        if check is None:
            raise TypeError(f"No evaluator for prerequisite clause {type(clause).__name__}")
        reason = check(clause, names, skills)
        if reason:
            reasons.append(reason)
    return reasons

class EligibilityEvaluator:
    def __init__(self, catalog: AbilityCatalog, caps: Optional[CapRegistry] = None):
        self.catalog = catalog
        self.caps = caps if caps is not None else CapRegistry.from_catalog(catalog)

    # -------- lookups --------
    def lookup(self, character: Character, variant: str, name: str) -> Optional[AbilityDefBase]:
        if variant == "race":
            # a raceless character has no race table
            return self.catalog.race_tables.get(race_key(character.race), {}).get(name)
        return self.catalog.get(variant, name)

    def definition_for(self, character: Character, row: HeldAbility) -> Optional[AbilityDefBase]:
        return definition_for(self.catalog, character, row)

    # -------- acquisition --------
    def can_acquire(self, character: Character, variant: str, name: str) -> bool:
        return not self.reasons_blocking(character, variant, name)

    def reasons_blocking(self, character: Character, variant: str, name: str) -> List[str]:
        """Reasons `name` may not be added right now; empty when it may. Stops at the first failing rule."""
        if variant not in VARIANTS:
            return [f"Unknown ability variant '{variant}'"]

        ab = self.lookup(character, variant, name)
        if ab is None:
            offering = self.catalog.races_offering(name) if variant == "race" else []
            if not offering:
                return [f"No {variant} ability named '{name}'"]
            return [f"'{name}' belongs to {', '.join(offering)}; character race is {character.race or 'not set'}"]

        rows = character.rows_named(variant, name)
        held = sum(r.count for r in rows)
        if ab.stackable:
            if held >= ab.cap:
                return [f"'{name}' is already at its maximum of {ab.cap}"]
        elif rows:
            return [f"'{name}' is already held"]

        if ab.one_of:
            rival = self.exclusive_rival(character, ab)
            if rival:
                return [f"'{name}' cannot be combined with '{rival}' (only one '{ab.one_of}' allowed)"]

        own_id = rows[0].id if rows else None
        reasons = self.unmet_for(character, ab, exclude_id=own_id)
        if reasons:
            return reasons

        cap_reason = self.cap_reason(character, ab)
        return [cap_reason] if cap_reason else []

    def exclusive_rival(self, character: Character, ab: AbilityDefBase) -> Optional[str]:
        for r in character.abilities:
            if r.variant == ab.variant and r.name == ab.name:
                continue
            other = self.definition_for(character, r)
            if other is not None and other.one_of == ab.one_of:
                return r.name
        return None

    def unmet_for(self, character: Character, ab: AbilityDefBase, exclude_id: Optional[str] = None) -> List[str]:
        names = character.held_names(exclude_id=exclude_id)
        return unmet_clauses(ab.requirement_clauses(), names, skill_levels(self.catalog, character))

    # -------- derived caps --------
    def cap_for(self, character: Character, group: str) -> Optional[int]:
        hook = self.caps.get(character.race, group)
        if hook is None:
            return None
        return int(hook(CharacterView(self.catalog, character)))

    def group_count(self, character: Character, group: str) -> int:
        return CharacterView(self.catalog, character).held_in_group(group)

    def cap_reason(self, character: Character, ab: AbilityDefBase) -> Optional[str]:
        if not ab.group:
            return None
        cap = self.cap_for(character, ab.group)
        if cap is None:
            return None
        current = self.group_count(character, ab.group)
        if current >= cap:
            return f"{ab.group} limit reached for {character.race} ({current}/{cap})"
        return None

    # -------- held rows --------
    def is_locked(self, character: Character, row: HeldAbility) -> bool:
        return row.variant == "race" and row.name in self.catalog.auto_names(character.race)

    def locked_ids(self, character: Character) -> List[str]:
        return [r.id for r in character.abilities if self.is_locked(character, r)]

    def unmet_prerequisites(self, character: Character) -> List[Tuple[HeldAbility, List[str]]]:
        """Held rows whose predicate fails against the character's other abilities and skills."""
        out: List[Tuple[HeldAbility, List[str]]] = []
        for r in character.abilities:
            if self.is_locked(character, r):
                continue
            ab = self.definition_for(character, r)
            if ab is None:
                continue
            reasons = self.unmet_for(character, ab, exclude_id=r.id)
            if reasons:
                out.append((r, reasons))
        return out

    def dependents_of(self, character: Character, held_id: str) -> List[str]:
        """Names of held abilities that would lose a prerequisite if the row were removed."""
        without = character.model_copy(update={"abilities": [r for r in character.abilities if r.id != held_id]})
        before = {r.id for r, _ in self.unmet_prerequisites(character)}
        return [r.name for r, _ in self.unmet_prerequisites(without) if r.id not in before]

    # -------- diagnostics --------
    def audit(self, character: Character) -> List[str]:
        """Every invariant violation found in a snapshot (empty for a consistent character)."""
        problems: List[str] = []
        seen: Dict[Tuple[str, str], int] = {}
        groups: Dict[str, List[str]] = {}
        current_table = {ab.name for ab in self.catalog.race_abilities(character.race)}

        for r in character.abilities:
            key = (r.variant, r.name)
            seen[key] = seen.get(key, 0) + 1
            ab = self.definition_for(character, r)
            if ab is None:
                problems.append(f"'{r.name}' ({r.variant}) is not in the catalog")
                continue
            if r.count <= 0:
                problems.append(f"'{r.name}' has a zero count row")
            elif r.count > ab.cap:
                problems.append(f"'{r.name}' count {r.count} exceeds its maximum of {ab.cap}")
            if r.variant == "race" and r.name not in current_table:
                problems.append(f"'{r.name}' is not a {character.race or 'raceless'} ability")
            if ab.one_of:
                groups.setdefault(ab.one_of, []).append(r.name)

        for (variant, name), n in seen.items():
            if n > 1:
                problems.append(f"'{name}' ({variant}) is held in {n} rows")
        for tag, members in groups.items():
            if len(members) > 1:
                problems.append(f"Only one '{tag}' ability allowed, holding {', '.join(members)}")

        held_race = {r.name for r in character.abilities if r.variant == "race"}
        for name in sorted(self.catalog.auto_names(character.race) - held_race):
            problems.append(f"Race default '{name}' is missing")

        for r, reasons in self.unmet_prerequisites(character):
            problems.append(f"'{r.name}' no longer qualifies: {'; '.join(reasons)}")

        for group in self.caps.groups_for(character.race):
            cap = self.cap_for(character, group)
            current = self.group_count(character, group)
            if cap is not None and current > cap:
                problems.append(f"{group} limit exceeded ({current}/{cap})")

        earned = character.earned_tally()
        for sid, spent in character.tally_spent.items():
            if spent > earned.get(sid, 0):
                problems.append(f"Tally for {sid} overspent ({spent}/{earned.get(sid, 0)})")
        return problems
