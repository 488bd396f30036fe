from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional, Union
from typing_extensions import Annotated
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, model_validator

# Common aliases
Expr = Union[str, int]  # cap formulas or literal caps

Variant = Literal["race", "skill", "general"]
SkillGroup = Literal["combat", "magic", "specialized"]

VARIANTS: tuple[str, ...] = ("race", "skill", "general")

# -----------------------------
# Prerequisite clauses
# -----------------------------

class RequiresAll(BaseModel):
    kind: Literal["all"] = "all"
    names: List[str]

    def describe(self) -> str:
        return "requires all of: " + ", ".join(self.names)

class RequiresAny(BaseModel):
    kind: Literal["any"] = "any"
    names: List[str]

    def describe(self) -> str:
        return "requires one of: " + ", ".join(self.names)

class RequiresAnySkillLevel(BaseModel):
    kind: Literal["any_skill_level"] = "any_skill_level"
    min_level: int = Field(ge=1)

    def describe(self) -> str:
        return f"requires any skill at level {self.min_level}+"

class RequiresSkillLevels(BaseModel):
    kind: Literal["skill_levels"] = "skill_levels"
    levels: Dict[str, int]

    def describe(self) -> str:
        return "requires " + ", ".join(f"{k} {v}+" for k, v in self.levels.items())

class RequiresSkill(BaseModel):
    kind: Literal["skill"] = "skill"
    skill_id: str
    min_level: int = Field(ge=1)

    def describe(self) -> str:
        return f"requires {self.skill_id} {self.min_level}+"

class RequiresAnySkill(BaseModel):
    kind: Literal["any_skill"] = "any_skill"
    skill_ids: List[str]
    min_level: int = Field(ge=1)

    def describe(self) -> str:
        return f"requires one of {', '.join(self.skill_ids)} at {self.min_level}+"

class AnyOf(BaseModel):
    """Disjunction: passes when every clause of at least one branch passes."""
    kind: Literal["any_of"] = "any_of"
    branches: List[List["Clause"]]

    @model_validator(mode="after")
    def _validate(self):
        if not self.branches:
            raise ValueError("anyOf requires at least one branch")
        return self

    def describe(self) -> str:
        parts = [" and ".join(c.describe() for c in br) or "nothing" for br in self.branches]
        return "either (" + ") or (".join(parts) + ")"

Clause = Annotated[
    Union[RequiresAll, RequiresAny, RequiresAnySkillLevel, RequiresSkillLevels,
          RequiresSkill, RequiresAnySkill, AnyOf],
    Field(discriminator="kind"),
]

AnyOf.model_rebuild()

def _fold_prerequisites(data: Dict[str, Any]) -> List[Any]:
    """
    Turn the authoring keys (requiresAll, requiresSkillId, ...) of a catalog entry into
    explicit clause dicts. Consumes the keys from `data`.
    """
    clauses: List[Any] = list(data.pop("prerequisites", None) or [])
    if "requiresAll" in data:
        clauses.append({"kind": "all", "names": data.pop("requiresAll")})
    if "requiresAny" in data:
        clauses.append({"kind": "any", "names": data.pop("requiresAny")})
    if "requiresAnySkillLevel" in data:
        clauses.append({"kind": "any_skill_level", "min_level": data.pop("requiresAnySkillLevel")})
    if "requiresSkillLevels" in data:
        clauses.append({"kind": "skill_levels", "levels": data.pop("requiresSkillLevels")})

    min_level = data.pop("requiresMinLevel", None)
    skill_id = data.pop("requiresSkillId", None)
    any_ids = data.pop("requiresAnySkillIds", None)
    if (skill_id is not None or any_ids is not None) and min_level is None:
        raise ValueError("requiresSkillId/requiresAnySkillIds need requiresMinLevel")
    if min_level is not None and skill_id is None and any_ids is None:
        raise ValueError("requiresMinLevel needs requiresSkillId or requiresAnySkillIds")
    if skill_id is not None:
        clauses.append({"kind": "skill", "skill_id": skill_id, "min_level": min_level})
    if any_ids is not None:
        clauses.append({"kind": "any_skill", "skill_ids": any_ids, "min_level": min_level})

    if "anyOf" in data:
        branches = []
        for br in data.pop("anyOf") or []:
            if not isinstance(br, dict):
                raise ValueError("anyOf branches must be mappings of requires* keys")
            br = dict(br)
            folded = _fold_prerequisites(br)
            if br:
                raise ValueError(f"unknown keys in anyOf branch: {sorted(br)}")
            branches.append(folded)
        clauses.append({"kind": "any_of", "branches": branches})
    return clauses

# -----------------------------
# Catalog entries
# -----------------------------

class AbilityDefBase(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    description: str = ""
    prerequisites: List[Clause] = Field(default_factory=list)
    one_of: Optional[str] = Field(default=None, validation_alias=AliasChoices("one_of", "oneOf"))
    group: Optional[str] = None
    stackable: bool = False
    stack_max: Optional[int] = Field(default=None, validation_alias=AliasChoices("stack_max", "stackMax"))

    @model_validator(mode="before")
    @classmethod
    def _fold_authoring_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data["prerequisites"] = _fold_prerequisites(data)
        return data

    @model_validator(mode="after")
    def _validate_stacking(self):
        errs: list[str] = []
        if self.stackable:
            if self.stack_max is None or self.stack_max < 1:
                errs.append("stackable abilities need stackMax >= 1")
        elif self.stack_max is not None:
            errs.append("stackMax given on a non-stackable ability")
        if not self.name.strip():
            errs.append("ability name must not be empty")
        if errs:
            raise ValueError(f"{self.name}: " + "; ".join(errs))
        return self

    @property
    def cap(self) -> int:
        """Maximum count a single row may reach."""
        return self.stack_max if self.stackable and self.stack_max else 1

    def requirement_clauses(self) -> List[Any]:
        return list(self.prerequisites)

    def render_description(self, count: int = 1) -> str:
        return self.description.replace("{count}", str(count))

class RaceAbilityDef(AbilityDefBase):
    variant: Literal["race"] = "race"
    race: str
    auto: bool = False

class SkillChoiceDef(AbilityDefBase):
    variant: Literal["skill"] = "skill"
    skill: str
    level: int = Field(ge=1)

    def requirement_clauses(self) -> List[Any]:
        # the choice is unlocked by the skill level it hangs off
        return [RequiresSkill(skill_id=self.skill, min_level=self.level), *self.prerequisites]

class GeneralAbilityDef(AbilityDefBase):
    variant: Literal["general"] = "general"

AbilityDef = Annotated[Union[RaceAbilityDef, SkillChoiceDef, GeneralAbilityDef], Field(discriminator="variant")]

# -----------------------------
# Skills, races and caps
# -----------------------------

class SkillDef(BaseModel):
    id: str
    label: str
    group: SkillGroup
    min: int = 1
    max: int = 5

    @model_validator(mode="after")
    def _validate(self):
        if self.min > self.max:
            raise ValueError(f"skill {self.id}: min {self.min} > max {self.max}")
        return self

class CapDefinition(BaseModel):
    """A derived cap on how many abilities of `group` a member of the race may hold."""
    group: str
    formula: Expr
    description: str = ""

class RaceDef(BaseModel):
    id: str
    description: str = ""
    caps: List[CapDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_cap_groups(self):
        seen: set[str] = set()
        for cap in self.caps:
            if cap.group in seen:
                raise ValueError(f"race {self.id}: duplicate cap for group '{cap.group}'")
            seen.add(cap.group)
        return self
