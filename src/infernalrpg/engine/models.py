from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional, Set
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator
from .schema_models import Variant

class HeldAbility(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    variant: Variant
    name: str
    count: int = Field(default=1, ge=0)
    notes: Optional[str] = None
    auto: bool = False  # granted by race reconciliation

class MissionLogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mission_id: str = Field(validation_alias=AliasChoices("mission_id", "missionId"))
    completed_at: datetime = Field(validation_alias=AliasChoices("completed_at", "dateISO"))
    successes: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

class Character(BaseModel):
    """
    Snapshot of everything the rules engine reads or writes. Engines never mutate a
    snapshot they were given; they return a modified deep copy.
    Sheets exported by the web character sheet (camelCase keys) load as well.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = ""
    race: Optional[str] = None
    skills: Dict[str, int] = Field(default_factory=dict, validation_alias=AliasChoices("skills", "attributes"))
    abilities: List[HeldAbility] = Field(default_factory=list)
    tally_spent: Dict[str, int] = Field(default_factory=dict, validation_alias=AliasChoices("tally_spent", "tallySpent"))
    mission_history: List[MissionLogEntry] = Field(
        default_factory=list, validation_alias=AliasChoices("mission_history", "missionHistory"))
    current_mission: Dict[str, bool] = Field(
        default_factory=dict, validation_alias=AliasChoices("current_mission", "currentMissionSkills"))
    skill_rerolls: Dict[str, int] = Field(
        default_factory=dict, validation_alias=AliasChoices("skill_rerolls", "skillRerolls"))

    @field_validator("race", mode="before")
    @classmethod
    def _blank_race_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def find(self, held_id: str) -> Optional[HeldAbility]:
        for row in self.abilities:
            if row.id == held_id:
                return row
        return None

    def rows_named(self, variant: str, name: str) -> List[HeldAbility]:
        return [r for r in self.abilities if r.variant == variant and r.name == name]

    def held_names(self, exclude_id: Optional[str] = None) -> Set[str]:
        return {r.name for r in self.abilities if r.id != exclude_id and r.count > 0}

    def count_of(self, name: str) -> int:
        return sum(r.count for r in self.abilities if r.name == name)

    def earned_tally(self) -> Dict[str, int]:
        """Successes per skill across all committed missions."""
        totals: Dict[str, int] = {}
        for entry in self.mission_history:
            for skill_id in entry.successes:
                totals[skill_id] = totals.get(skill_id, 0) + 1
        return totals
