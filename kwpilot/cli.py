"""Typer CLI for KWPilot.

Server launcher plus offline chores: CSV imports into the
knowledge base, prompt seeding, cache cleanup and one-off course research.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from sqlmodel import Session

console = Console()
app = typer.Typer(
    name="kwpilot",
    help="KWPilot -- keyword research, CSV imports & cache maintenance.",
    add_completion=False,
    no_args_is_help=True,
)


def _open_session() -> Session:
    """Create tables if needed and return a session on the configured database."""
    from kwpilot.database import engine, init_db

    init_db()
    return Session(engine)


def _read_file(path: Path) -> bytes:
    if not path.exists():
        console.print(f"[red]✘ File not found: {path}[/red]")
        raise typer.Exit(code=1)
    return path.read_bytes()


def _print_counts(counts: dict, title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Item", style="cyan", min_width=20)
    table.add_column("Value", justify="right")
    for key, value in counts.items():
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in value.items())
        table.add_row(key.replace("_", " ").title(), str(value))
    console.print(table)


# ------------------------------------------------------------------
# imports
# ------------------------------------------------------------------
@app.command("import-performance")
def import_performance(
    file: Path = typer.Argument(..., help="Campaign report CSV from the Google Ads UI."),
    customer_id: str = typer.Option(..., "--customer-id", "-c", help="Google Ads customer id."),
    account_name: Optional[str] = typer.Option(None, "--account-name", "-n", help="Display name for the account."),
) -> None:
    """Import a campaign performance report into the knowledge base."""
    from kwpilot.importers.campaign_performance import import_campaign_performance

    content = _read_file(file)
    console.print(Panel(f"[bold cyan]Campaign Performance Import: {file.name}[/bold cyan]"))
    with _open_session() as session:
        try:
            result = import_campaign_performance(session, content, customer_id, account_name)
        except ValueError as e:
            console.print(f"[red]✘ {e}[/red]")
            raise typer.Exit(code=1)
    _print_counts(result, "Import Results")
    console.print("[green]✔[/green] Import complete.")


@app.command("import-editor")
def import_editor(
    file: Path = typer.Argument(..., help="Google Ads Editor export (UTF-16, tab-separated)."),
    customer_id: Optional[str] = typer.Option(None, "--customer-id", "-c", help="Override the Account column."),
    account_name: Optional[str] = typer.Option(None, "--account-name", "-n"),
) -> None:
    """Import account structure from a Google Ads Editor export."""
    from kwpilot.importers.editor_export import import_editor_export

    content = _read_file(file)
    console.print(Panel(f"[bold cyan]Editor Export Import: {file.name}[/bold cyan]"))
    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        progress.add_task(description="Upserting campaigns, ad groups and keywords...", total=None)
        with _open_session() as session:
            try:
                result = import_editor_export(session, content, customer_id, account_name)
            except ValueError as e:
                console.print(f"[red]✘ {e}[/red]")
                raise typer.Exit(code=1)
    _print_counts(result, "Import Results")
    console.print("[green]✔[/green] Import complete.")


# ------------------------------------------------------------------
# maintenance
# ------------------------------------------------------------------
@app.command("seed-prompts")
def seed_prompts() -> None:
    """Install the default seed and analysis prompts where none exist."""
    from kwpilot.store import prompt_store

    with _open_session() as session:
        seeded = prompt_store.seed_default_prompts(session)
    if seeded:
        console.print(f"[green]✔[/green] Seeded: {', '.join(seeded)}")
    else:
        console.print("[yellow]○[/yellow] Prompts already present, nothing seeded.")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address."),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes."),
) -> None:
    """Run the API server."""
    import uvicorn

    console.print(f"[green]✔[/green] Serving KWPilot on http://{host}:{port}")
    uvicorn.run("kwpilot.main:app", host=host, port=port, reload=reload)


@app.command("cleanup-cache")
def cleanup_cache() -> None:
    """Delete expired cache rows and old finished queue items."""
    from kwpilot.scheduler.jobs import run_cleanup

    with _open_session() as session:
        counts = run_cleanup(session)
    _print_counts(counts, "Deleted Rows")


# ------------------------------------------------------------------
# research
# ------------------------------------------------------------------
@app.command()
def research(
    course_name: str = typer.Argument(..., help="Course name."),
    course_url: str = typer.Argument(..., help="Course landing page URL."),
    vendor: Optional[str] = typer.Option(None, "--vendor", help="Certification vendor."),
    geo: str = typer.Option("india", "--geo", "-g", help="Geo target."),
    source: str = typer.Option("auto", "--source", "-s", help="auto | google | keywords_everywhere"),
    seed: Optional[List[str]] = typer.Option(None, "--seed", help="Manual seed keyword (repeatable)."),
    force: bool = typer.Option(False, "--force", "-f", help="Ignore a matching completed session."),
) -> None:
    """Run seeds → ideas → analysis for one course and save the session."""
    from kwpilot.models.keyword_models import Action, AnalyzedKeyword
    from kwpilot.research.aggregator import sort_for_action
    from kwpilot.research.pipeline import CourseInput, ResearchOptions, run_course_research
    from kwpilot.store import session_store

    console.print(Panel(f"[bold cyan]Keyword Research: {course_name}[/bold cyan]"))
    course = CourseInput(
        course_name=course_name, course_url=course_url, vendor=vendor, seed_keywords=seed or None
    )
    options = ResearchOptions(geo_target=geo, source=source, force=force)

    with _open_session() as session:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
            progress.add_task(description="Researching keywords...", total=None)
            result = asyncio.run(run_course_research(session, course, options))

        if result.status != "completed":
            console.print(f"[red]✘ Research failed: {result.error}[/red]")
            raise typer.Exit(code=1)

        row = session_store.get_session_by_id(session, result.session_id)
        analyzed = session_store.session_to_dict(row)["analyzed_keywords"]

    if result.reused:
        console.print(f"[yellow]○[/yellow] Reused session {result.session_id} (no API calls)")

    table = Table(title="Keywords to Add", show_header=True, header_style="bold magenta")
    table.add_column("Keyword", style="cyan", min_width=30)
    table.add_column("Volume", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Priority")
    table.add_column("Match")
    for kw in sort_for_action([AnalyzedKeyword(**k) for k in analyzed])[:25]:
        if kw.action != Action.ADD:
            break
        table.add_row(
            kw.keyword,
            str(kw.avg_monthly_searches),
            f"{kw.final_score:.0f}",
            kw.priority.value if kw.priority else "",
            kw.match_type.value,
        )
    console.print(table)
    if result.summary:
        _print_counts(result.summary.model_dump(), "Summary")
    console.print(f"[green]✔[/green] Session {result.session_id} saved.")


if __name__ == "__main__":
    app()
