from pathlib import Path
from typer.testing import CliRunner
from infernalrpg.engine.loader import AbilityAdapter, AbilityCatalog
from infernalrpg.engine.schema_models import RaceDef, SkillDef
from infernalrpg.tools.export_schemas import export_schemas
from infernalrpg.tools.validate import app, catalog_problems, formula_problems

CONTENT_DIR = Path(__file__).resolve().parents[1] / "src" / "infernalrpg" / "content"

def test_bundled_content_validates():
    result = CliRunner().invoke(app, ["validate-content", str(CONTENT_DIR)])
    assert result.exit_code == 0, result.output
    assert "Content validated successfully" in result.output

def test_catalog_problems_found():
    cat = AbilityCatalog.from_entries(
        [SkillDef(id="pistols", label="Pistols", group="combat")],
        [RaceDef(id="Ascended", caps=[{"group": "core_power", "formula": "1 + sparks('x')"}])],
        [AbilityAdapter.validate_python(a) for a in [
            {"variant": "general", "name": "Gun Kata", "requiresAll": ["Ambidextrous"],
             "requiresSkillLevels": {"pistols": 4, "gunplay": 2}},
            {"variant": "skill", "skill": "pistols", "level": 7, "name": "Bullet Time"},
            {"variant": "skill", "skill": "pistols", "level": 3, "name": "Quickdraw", "oneOf": "quick"},
            {"variant": "general", "name": "Fast Hands", "oneOf": "quick"},
        ]],
    )
    problems = catalog_problems(cat)
    assert "general 'Gun Kata': prerequisite names unknown ability 'Ambidextrous'" in problems
    assert "general 'Gun Kata': prerequisite names unknown skill 'gunplay'" in problems
    assert "skill 'Bullet Time': level 7 outside pistols range 1..5" in problems
    assert "oneOf 'quick' is shared across variants ['general', 'skill']" in problems
    assert any("unknown function(s): ['sparks']" in p for p in problems)
    assert "race 'Ascended' cap 'core_power': no ability carries group 'core_power'" in problems

def test_formula_problems():
    assert formula_problems(3, "x") == []
    assert formula_problems("3 + stack_count('Emerging Mutation')", "x") == []
    assert formula_problems("(3 + 1", "x")

def test_invalid_pack_exits_nonzero(tmp_path):
    (tmp_path / "skills.yaml").write_text("skills:\n  - {id: reflex, label: Reflex, group: social}\n", encoding="utf-8")
    result = CliRunner().invoke(app, ["validate-content", str(tmp_path)])
    assert result.exit_code == 1

def test_export_schemas(tmp_path):
    export_schemas(tmp_path)
    assert sorted(p.name for p in tmp_path.iterdir()) == [
        "AbilityDef.schema.json", "Character.schema.json", "RaceDef.schema.json", "SkillDef.schema.json",
    ]
