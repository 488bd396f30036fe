from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple
import json
import yaml
from pydantic import TypeAdapter
from .schema_models import (
    AbilityDef, AbilityDefBase, RaceAbilityDef, SkillChoiceDef, GeneralAbilityDef,
    SkillDef, RaceDef, CapDefinition,
)

AbilityAdapter = TypeAdapter(AbilityDef)
SkillAdapter = TypeAdapter(SkillDef)
RaceAdapter = TypeAdapter(RaceDef)

def race_key(race: Optional[str]) -> str:
    return (race or "").strip().lower()

def _load_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in [".yaml", ".yml"]:
        return yaml.safe_load(text) or {}
    return json.loads(text)

def _iter_files(root: Path, exts: Tuple[str, ...] = (".json", ".yaml", ".yml")) -> Iterable[Path]:
    if not root.exists():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in exts)

def _root_file(base_dir: Path, stem: str) -> Optional[Path]:
    for ext in (".yaml", ".yml", ".json"):
        p = base_dir / f"{stem}{ext}"
        if p.is_file():
            return p
    return None

@dataclass
class AbilityCatalog:
    """Read-only lookup tables for skills, races and the three ability variants."""
    skills: Dict[str, SkillDef] = field(default_factory=dict)
    races: Dict[str, RaceDef] = field(default_factory=dict)                             # race_key -> def
    race_tables: Dict[str, Dict[str, RaceAbilityDef]] = field(default_factory=dict)    # race_key -> name -> def
    skill_choices: Dict[str, SkillChoiceDef] = field(default_factory=dict)
    general: Dict[str, GeneralAbilityDef] = field(default_factory=dict)

    @classmethod
    def from_entries(cls, skills: Iterable[SkillDef], races: Iterable[RaceDef],
                     abilities: Iterable[AbilityDefBase], origin: str = "<memory>") -> "AbilityCatalog":
        cat = cls()
        for sk in skills:
            if sk.id in cat.skills:
                raise RuntimeError(f"Duplicate skill id {sk.id} in {origin}")
            cat.skills[sk.id] = sk
        for rd in races:
            key = race_key(rd.id)
            if key in cat.races:
                raise RuntimeError(f"Duplicate race {rd.id} in {origin}")
            cat.races[key] = rd
            cat.race_tables[key] = {}
        for ab in abilities:
            cat.add(ab, origin)
        return cat

    def add(self, ab: AbilityDefBase, origin: str = "<memory>") -> None:
        if isinstance(ab, RaceAbilityDef):
            key = race_key(ab.race)
            if key not in self.race_tables:
                raise RuntimeError(f"Race ability {ab.name} names unknown race {ab.race} in {origin}")
            table = self.race_tables[key]
        elif isinstance(ab, SkillChoiceDef):
            table = self.skill_choices
        elif isinstance(ab, GeneralAbilityDef):
            table = self.general
        else:
            raise TypeError(f"Not a catalog ability: {ab!r}")
        if ab.name in table:
            raise RuntimeError(f"Duplicate {ab.variant} ability {ab.name} in {origin}")
        table[ab.name] = ab  # type: ignore[assignment]

    # --- lookups ---
    def get(self, variant: str, name: str, race: Optional[str] = None) -> Optional[AbilityDefBase]:
        if variant == "race":
            if race is not None:
                return self.race_tables.get(race_key(race), {}).get(name)
            for table in self.race_tables.values():
                if name in table:
                    return table[name]
            return None
        if variant == "skill":
            return self.skill_choices.get(name)
        if variant == "general":
            return self.general.get(name)
        return None

    def races_offering(self, name: str) -> List[str]:
        return [self.races[k].id for k, table in self.race_tables.items() if name in table]

    def race(self, race: Optional[str]) -> Optional[RaceDef]:
        return self.races.get(race_key(race))

    def race_abilities(self, race: Optional[str]) -> List[RaceAbilityDef]:
        return list(self.race_tables.get(race_key(race), {}).values())

    def auto_names(self, race: Optional[str]) -> Set[str]:
        return {ab.name for ab in self.race_abilities(race) if ab.auto}

    def choices_for(self, skill: str, level: Optional[int] = None) -> List[SkillChoiceDef]:
        return [c for c in self.skill_choices.values()
                if c.skill == skill and (level is None or c.level == level)]

    def caps_for(self, race: Optional[str]) -> List[CapDefinition]:
        rd = self.race(race)
        return list(rd.caps) if rd else []

    def entries(self) -> Iterable[AbilityDefBase]:
        for table in self.race_tables.values():
            yield from table.values()
        yield from self.skill_choices.values()
        yield from self.general.values()

    def all_names(self) -> Set[str]:
        return {ab.name for ab in self.entries()}

def load_catalog(base_dir: Path) -> AbilityCatalog:
    """
    Layout:
      skills.yaml                 {skills: [...]}
      races.yaml                  {races: [...]}
      abilities/race/*.yaml       {race: <id>, abilities: [...]}
      abilities/skill/*.yaml      {skill: <id>, choices: [...]}
      abilities/general/*.yaml    {abilities: [...]}
    """
    skills: List[SkillDef] = []
    fp = _root_file(base_dir, "skills")
    if fp:
        skills = [SkillAdapter.validate_python(raw) for raw in _load_file(fp).get("skills", [])]

    races: List[RaceDef] = []
    fp = _root_file(base_dir, "races")
    if fp:
        races = [RaceAdapter.validate_python(raw) for raw in _load_file(fp).get("races", [])]

    catalog = AbilityCatalog.from_entries(skills, races, [], origin=str(base_dir))

    for fp in _iter_files(base_dir / "abilities" / "race"):
        data = _load_file(fp)
        race = data.get("race")
        if not race:
            raise RuntimeError(f"Race ability file {fp} has no 'race' key")
        for raw in data.get("abilities", []):
            ab = AbilityAdapter.validate_python({**raw, "variant": "race", "race": race})
            catalog.add(ab, str(fp))

    for fp in _iter_files(base_dir / "abilities" / "skill"):
        data = _load_file(fp)
        skill = data.get("skill")
        if not skill:
            raise RuntimeError(f"Skill choice file {fp} has no 'skill' key")
        for raw in data.get("choices", []):
            ab = AbilityAdapter.validate_python({**raw, "variant": "skill", "skill": skill})
            catalog.add(ab, str(fp))

    for fp in _iter_files(base_dir / "abilities" / "general"):
        data = _load_file(fp)
        for raw in data.get("abilities", []):
            ab = AbilityAdapter.validate_python({**raw, "variant": "general"})
            catalog.add(ab, str(fp))

    return catalog
