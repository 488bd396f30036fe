from __future__ import annotations
from pathlib import Path
from pydantic import BaseModel, model_validator
from typing import Optional

SETTINGS_PATH = Path.home() / ".infernalrpg" / "settings.json"

class Settings(BaseModel):
    skill_reroll_threshold: int = 3
    skill_reroll_min: int = 0
    skill_reroll_max: int = 5
    default_content_pack: Optional[str] = None  # directory; None uses the bundled content
    consolidate_on_load: bool = True
    trace_limit: Optional[int] = 500

    @model_validator(mode="after")
    def _validate(self):
        if self.skill_reroll_min > self.skill_reroll_max:
            raise ValueError("skill_reroll_min must be <= skill_reroll_max")
        return self

def load_settings(path: Path = SETTINGS_PATH) -> Settings:
    if path.exists():
        return Settings.model_validate_json(path.read_text(encoding="utf-8"))
    path.parent.mkdir(parents=True, exist_ok=True)
    s = Settings()
    path.write_text(s.model_dump_json(indent=2), encoding="utf-8")
    return s

def save_settings(s: Settings, path: Path = SETTINGS_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(s.model_dump_json(indent=2), encoding="utf-8")
