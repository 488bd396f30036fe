from __future__ import annotations
from pathlib import Path
import re
from typing import Dict, List, Set
import typer
from py_expression_eval import Parser
from pydantic import ValidationError
from infernalrpg.engine.expr import ALLOWED_FUNCTIONS
from infernalrpg.engine.loader import AbilityCatalog, load_catalog
from infernalrpg.engine.schema_models import AbilityDefBase, AnyOf, SkillChoiceDef
from infernalrpg.util.paths import content_dir as bundled_content_dir

_parser = Parser()

def _expr_functions(expr: str) -> set[str]:
    # identifiers followed by '('
    return set(re.findall(r"\b([A-Za-z_][A-Za-z0-9_]*)\s*\(", expr))

def formula_problems(expr: str | int, where: str) -> list[str]:
    if isinstance(expr, int):
        return []
    try:
        _parser.parse(expr)
    except Exception as e:
        return [f"{where}: invalid cap formula: {e}"]
    unknown = _expr_functions(expr) - ALLOWED_FUNCTIONS
    if unknown:
        return [f"{where}: unknown function(s): {sorted(unknown)}; allowed: {sorted(ALLOWED_FUNCTIONS)}"]
    return []

def _walk_clauses(clauses) -> tuple[Set[str], Set[str]]:
    """Ability names and skill ids referenced by a clause list (anyOf branches included)."""
    names: Set[str] = set()
    skills: Set[str] = set()
    for c in clauses:
        kind = c.kind
        if kind in ("all", "any"):
            names.update(c.names)
        elif kind == "skill_levels":
            skills.update(c.levels)
        elif kind == "skill":
            skills.add(c.skill_id)
        elif kind == "any_skill":
            skills.update(c.skill_ids)
        elif isinstance(c, AnyOf):
            for br in c.branches:
                n, s = _walk_clauses(br)
                names |= n
                skills |= s
    return names, skills

def catalog_problems(catalog: AbilityCatalog) -> List[str]:
    """Cross-reference checks a per-entry schema cannot catch."""
    problems: List[str] = []
    known = catalog.all_names()

    for ab in catalog.entries():
        where = f"{ab.variant} '{ab.name}'"
        names, skills = _walk_clauses(ab.requirement_clauses())
        for n in sorted(names - known):
            problems.append(f"{where}: prerequisite names unknown ability '{n}'")
        if ab.name in names:
            problems.append(f"{where}: requires itself")
        for sid in sorted(skills - set(catalog.skills)):
            problems.append(f"{where}: prerequisite names unknown skill '{sid}'")
        if isinstance(ab, SkillChoiceDef):
            sk = catalog.skills.get(ab.skill)
            if sk is not None and not sk.min <= ab.level <= sk.max:
                problems.append(f"{where}: level {ab.level} outside {sk.id} range {sk.min}..{sk.max}")

    tags: Dict[str, Set[str]] = {}
    for ab in catalog.entries():
        if ab.one_of:
            tags.setdefault(ab.one_of, set()).add(ab.variant)
    for tag, variants in sorted(tags.items()):
        if len(variants) > 1:
            problems.append(f"oneOf '{tag}' is shared across variants {sorted(variants)}")

    for rd in catalog.races.values():
        groups = {ab.group for ab in catalog.race_abilities(rd.id)} | {ab.group for ab in catalog.general.values()}
        for cap in rd.caps:
            where = f"race '{rd.id}' cap '{cap.group}'"
            problems.extend(formula_problems(cap.formula, where))
            if cap.group not in groups:
                problems.append(f"{where}: no ability carries group '{cap.group}'")
    return problems

def _uncounted_stacks(catalog: AbilityCatalog) -> List[str]:
    entries: List[AbilityDefBase] = list(catalog.entries())
    referenced: Set[str] = set()
    for ab in entries:
        referenced |= _walk_clauses(ab.requirement_clauses())[0]
    for rd in catalog.races.values():
        for cap in rd.caps:
            referenced.update(re.findall(r"stack_count\(\s*['\"]([^'\"]+)['\"]", str(cap.formula)))
    return sorted(ab.name for ab in entries if ab.stackable and ab.name not in referenced and "{count}" not in ab.description)

app = typer.Typer(add_completion=False)

@app.command("export-schemas")
def export_schemas_cmd(out: Path = typer.Option(Path("docs/schemas"), "--out")):
    from infernalrpg.tools.export_schemas import export_schemas
    export_schemas(out)
    typer.echo(f"Exported schemas to {out}")

@app.command("validate-content")
def validate_content(
    content_dir: Path = typer.Argument(None, help="Content pack directory (defaults to the bundled catalog)"),
    warn_stacks: bool = typer.Option(False, "--warn-stacks", help="Warn on stackable abilities nothing reads the count of"),
):
    base = content_dir or bundled_content_dir()
    try:
        catalog = load_catalog(base)
    except (ValidationError, RuntimeError, ValueError) as e:
        typer.echo(f"[ERROR] {base}: {e}", err=True)
        raise typer.Exit(code=1)

    problems = catalog_problems(catalog)
    for msg in problems:
        typer.echo(f"[ERROR] {msg}", err=True)
    if warn_stacks:
        for name in _uncounted_stacks(catalog):
            typer.echo(f"[WARN] Stackable '{name}' is never counted")
    if problems:
        raise typer.Exit(code=1)
    typer.echo(f"Content validated successfully ({len(list(catalog.entries()))} abilities, {len(catalog.skills)} skills).")

if __name__ == "__main__":
    app()
