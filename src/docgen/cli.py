"""Exchange document generator CLI.

Usage:
    docgen scan template.docx
    docgen fill template.docx record.yaml -o filled.docx
    docgen generate <template_id> <case_id> --set Client.Name="Jane Doe"
    docgen serve --port 5000
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from docgen.config import get_settings

app = typer.Typer(name="docgen", help="Fill exchange document templates from case records")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_overrides(pairs: list[str] | None) -> dict[str, str]:
    overrides = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]Override must look like KEY=VALUE: {pair}[/red]")
            raise typer.Exit(2)
        overrides[key.strip()] = value
    return overrides


def _print_warnings(result) -> None:
    for notice in result.notices:
        console.print(f"[yellow]{notice}[/yellow]")
    if not result.warnings:
        return
    table = Table(title=f"Warnings ({len(result.warnings)})")
    table.add_column("Token", style="bold")
    table.add_column("Origin")
    table.add_column("Detail")
    colors = {"heuristic-match": "cyan", "fallback": "yellow", "unresolved": "red"}
    for w in result.warnings:
        color = colors.get(w.origin.value, "white")
        table.add_row(w.token, f"[{color}]{w.origin.value}[/{color}]", w.detail)
    console.print(table)


def _fail(err) -> NoReturn:
    console.print(f"[red]{err.kind}: {err}[/red]")
    tokens = getattr(err, "tokens", None)
    if tokens:
        for token in tokens:
            console.print(f"  [red]- {token}[/red]")
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# docgen scan
# ---------------------------------------------------------------------------

@app.command()
def scan(template: Path = typer.Argument(..., exists=True, dir_okay=False, help="Template file")):
    """List the placeholder tokens in a template."""
    from docgen.engine.generator import sniff_kind
    from docgen.engine.scanner import scan_archive, scan_text
    from docgen.models import TemplateKind

    data = template.read_bytes()
    kind = sniff_kind(data)
    if kind is TemplateKind.PDF:
        console.print("[yellow]PDF templates carry no fillable placeholders.[/yellow]")
        return
    if kind is TemplateKind.ARCHIVE:
        result = scan_archive(data)
        if not result.ok:
            console.print(f"[red]{result.error}[/red]")
            raise typer.Exit(1)
        tokens = result.tokens
    else:
        tokens = scan_text(data.decode("utf-8", errors="replace"))

    if not tokens:
        console.print("No placeholders found.")
        return

    table = Table(title=f"Placeholders: {template.name}")
    table.add_column("Key", style="bold")
    table.add_column("As written")
    table.add_column("Syntax")
    for key in sorted(tokens):
        token = tokens[key]
        table.add_row(key, token.raw_form, ", ".join(sorted(s.value for s in token.syntaxes)))
    console.print(table)
    console.print(f"\n{len(tokens)} distinct placeholders")


# ---------------------------------------------------------------------------
# docgen fill
# ---------------------------------------------------------------------------

@app.command()
def fill(
    template: Path = typer.Argument(..., exists=True, dir_okay=False, help="Template file"),
    record: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML/JSON record graph"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write the filled document"),
    required: Optional[List[str]] = typer.Option(None, "--require", "-r", help="Required placeholder"),
    overrides: Optional[List[str]] = typer.Option(None, "--set", "-s", help="KEY=VALUE override"),
):
    """Fill a template offline from a record file."""
    from docgen.engine.generator import EXTENSIONS, render_template
    from docgen.errors import DocgenError
    from docgen.models import RecordGraph

    settings = get_settings()
    with open(record) as f:
        graph = RecordGraph.model_validate(yaml.safe_load(f) or {})

    try:
        result = render_template(
            template.read_bytes(),
            graph,
            required=required or [],
            overrides=_parse_overrides(overrides),
            qi_company=settings.qi_company,
        )
    except DocgenError as e:
        _fail(e)

    target = output or template.with_name(f"{template.stem}_filled{EXTENSIONS[result.kind]}")
    target.write_bytes(result.archive_bytes)
    console.print(f"[green]Wrote {target}[/green]")
    console.print(f"  Resolved: {result.resolved_count}  Replacements: {result.replacement_count}")
    _print_warnings(result)


# ---------------------------------------------------------------------------
# docgen generate
# ---------------------------------------------------------------------------

@app.command()
def generate(
    template_id: str = typer.Argument(..., help="Template id"),
    case_ids: List[str] = typer.Argument(..., help="One or more case ids"),
    overrides: Optional[List[str]] = typer.Option(None, "--set", "-s", help="KEY=VALUE override"),
):
    """Generate and store documents for one or more cases."""
    from docgen.engine.generator import DocumentGenerator
    from docgen.errors import DocgenError

    settings = get_settings()
    if not settings.has_supabase():
        console.print("[red]SUPABASE_URL and SUPABASE_SERVICE_KEY must be set.[/red]")
        raise typer.Exit(1)

    generator = DocumentGenerator.from_settings(settings)
    extra = _parse_overrides(overrides)

    if len(case_ids) == 1:
        try:
            result = generator.generate(template_id, case_ids[0], extra)
        except DocgenError as e:
            _fail(e)
        console.print(f"[green]Generated {result.filename}[/green]")
        console.print(f"  {result.document_ref}")
        _print_warnings(result)
        return

    try:
        outcomes = generator.generate_many(template_id, case_ids, extra)
    except DocgenError as e:
        _fail(e)
    table = Table(title=f"Bulk generation: {template_id}")
    table.add_column("Case")
    table.add_column("Result")
    table.add_column("Warnings", justify="right")
    for outcome in outcomes:
        if outcome.ok:
            table.add_row(outcome.case_id, f"[green]{outcome.result.filename}[/green]",
                          str(len(outcome.result.warnings)))
        else:
            table.add_row(outcome.case_id, f"[red]{outcome.error.kind}: {outcome.error.message}[/red]", "")
    console.print(table)
    if not all(o.ok for o in outcomes):
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# docgen serve
# ---------------------------------------------------------------------------

@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(5000, help="Port"),
):
    """Run the HTTP API."""
    from docgen.web import create_app

    create_app().run(host=host, port=port)


if __name__ == "__main__":
    app()
