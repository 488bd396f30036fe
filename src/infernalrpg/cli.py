import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from infernalrpg.engine.engine import SheetEngine
from infernalrpg.engine.settings import load_settings

app = typer.Typer()
console = Console()

def _engine(pack: Optional[Path]) -> SheetEngine:
    settings = load_settings()
    if pack is not None:
        settings = settings.model_copy(update={"default_content_pack": str(pack)})
    return SheetEngine(settings=settings)

def _load_sheet(eng: SheetEngine, sheet: Path) -> None:
    eng.load(json.loads(sheet.read_text(encoding="utf-8")))

@app.command()
def races(pack: Optional[Path] = typer.Option(None, "--pack")):
    """List races with their default abilities and caps."""
    eng = _engine(pack)
    table = Table(title="Races", show_header=True, header_style="bold")
    table.add_column("Race")
    table.add_column("Defaults")
    table.add_column("Caps")
    for rd in eng.catalog.races.values():
        caps = ", ".join(f"{c.group}: {c.formula}" for c in rd.caps)
        table.add_row(rd.id, ", ".join(sorted(eng.catalog.auto_names(rd.id))) or "-", caps or "-")
    console.print(table)

@app.command()
def abilities(variant: str = typer.Argument("general"), race: Optional[str] = None,
              pack: Optional[Path] = typer.Option(None, "--pack")):
    """List catalog entries of a variant (race entries need --race)."""
    eng = _engine(pack)
    if variant == "race":
        entries = eng.catalog.race_abilities(race)
    elif variant == "skill":
        entries = list(eng.catalog.skill_choices.values())
    else:
        entries = list(eng.catalog.general.values())
    table = Table(title=f"{variant} abilities", show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Requires")
    table.add_column("Tags")
    for ab in entries:
        reqs = "; ".join(c.describe() for c in ab.requirement_clauses())
        tags = [t for t in (ab.one_of and f"oneOf {ab.one_of}", ab.group and f"group {ab.group}",
                            ab.stackable and f"x{ab.cap}") if t]
        table.add_row(ab.name, reqs or "-", ", ".join(tags) or "-")
    console.print(table)

@app.command()
def check(sheet: Path, variant: str = typer.Argument("general"),
          pack: Optional[Path] = typer.Option(None, "--pack")):
    """Show which abilities a saved character could take right now, and why not."""
    eng = _engine(pack)
    _load_sheet(eng, sheet)
    table = Table(title=f"{eng.character.name or 'Character'} ({eng.character.race or 'no race'})",
                  show_header=True, header_style="bold")
    table.add_column("Ability")
    table.add_column("Status")
    for ab, reasons in eng.options(variant):
        table.add_row(ab.name, "[green]available[/green]" if not reasons else f"[red]{reasons[0]}[/red]")
    console.print(table)

@app.command()
def audit(sheet: Path, pack: Optional[Path] = typer.Option(None, "--pack")):
    """Report every rule a saved character breaks."""
    eng = _engine(pack)
    _load_sheet(eng, sheet)
    problems = eng.audit()
    for line in eng.trace.dump():
        if line.startswith("[Repair]"):
            typer.echo(line)
    if not problems:
        typer.echo("No problems found.")
        return
    for p in problems:
        typer.echo(f"[ERROR] {p}", err=True)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
