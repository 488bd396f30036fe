from __future__ import annotations
from typing import List, Optional


class RulesError(Exception):
    """Base class for rejected intents. The caller's snapshot is never modified."""


class IneligibleAbility(RulesError):
    def __init__(self, variant: str, name: str, reasons: List[str]):
        self.variant = variant
        self.name = name
        self.reasons = list(reasons)
        super().__init__(f"Cannot acquire {variant} ability '{name}': " + "; ".join(self.reasons))


class LockedAbility(RulesError):
    def __init__(self, held_id: str, name: str, reason: str):
        self.held_id = held_id
        self.name = name
        self.reason = reason
        super().__init__(f"'{name}' cannot be removed: {reason}")


class NotFound(RulesError):
    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"Unknown {kind}: {key}")


class UnknownSkill(NotFound):
    def __init__(self, skill_id: str):
        super().__init__("skill", skill_id)


class NonMonotonicLevelChange(RulesError):
    def __init__(self, skill_id: str, current: int, requested: int):
        self.skill_id = skill_id
        self.current = current
        self.requested = requested
        super().__init__(f"Skill '{skill_id}' can only be raised (current {current}, requested {requested})")


class LevelOutOfRange(RulesError):
    def __init__(self, skill_id: str, requested: int, lo: int, hi: Optional[int]):
        self.skill_id = skill_id
        self.requested = requested
        super().__init__(f"Skill '{skill_id}' level {requested} outside {lo}..{hi}")
