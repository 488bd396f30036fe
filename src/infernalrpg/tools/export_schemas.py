from __future__ import annotations
from pathlib import Path
import json
from pydantic import TypeAdapter
from infernalrpg.engine.models import Character
from infernalrpg.engine.schema_models import AbilityDef, RaceDef, SkillDef

def export_schemas(out_dir: Path) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    schemas = {
        "Character.schema.json": Character.model_json_schema(),
        "RaceDef.schema.json": RaceDef.model_json_schema(),
        "SkillDef.schema.json": SkillDef.model_json_schema(),
        "AbilityDef.schema.json": TypeAdapter(AbilityDef).json_schema(),
    }
    for name, schema in schemas.items():
        (out_dir / name).write_text(json.dumps(schema, indent=2), encoding="utf-8")

if __name__ == "__main__":
    root = Path(__file__).resolve().parents[3] / "docs" / "schemas"
    export_schemas(root)
    print(f"Exported schemas to {root}")
