"""
CLI commands for novascribe.

Provides the `nsc` command-line interface for checking the document store
and inspecting, auditing and deleting stored projects.
"""

import asyncio
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from config.loader import ConfigurationLoader
from core.exceptions import NovaScribeError
from core.models.entities import EntityKind
from core.models.history import HistoryScope

from . import __version__
from .logging_setup import configure_logging
from .services import NovaScribe

console = Console()


def _collection_choices():
    return [kind.collection_name for kind in EntityKind]


@click.group()
@click.version_option(version=__version__, prog_name="nsc")
@click.option('--config', 'config_file', type=click.Path(dir_okay=False), help='JSON configuration file')
@click.option('--owner', help='Act as this owner id')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.pass_context
def main(ctx: click.Context, config_file: Optional[str], owner: Optional[str], log_level: Optional[str]):
    """
    Nova Scribe CLI.

    Inspect the document store and the writing projects persisted in it.
    """
    loader = ConfigurationLoader()
    configure_logging(loader.global_settings, level=log_level or "WARNING")
    config = loader.load(config_file)
    if owner:
        config = config.model_copy(update={"owner_id": owner})
    ctx.obj = config


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except NovaScribeError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


@main.command()
@click.pass_obj
def status(config):
    """Check the document store connection."""
    _run(_status(config))


async def _status(config) -> None:
    async with NovaScribe(config) as app:
        health = await app.store.health_check()

    table = Table(title="Nova Scribe Status")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    if health["status"] == "healthy":
        table.add_row("Document Store", "[green]✅ Connected[/green]", health["target"])
        table.add_row("Collection", f"[yellow]{health['collection']}[/yellow]", f"{health['documents']} documents")
        table.add_row("Latency", f"{health['response_time_ms']:.1f} ms", "")
    else:
        table.add_row("Document Store", "[red]❌ Not available[/red]", health.get("error", ""))

    table.add_row("Owner", config.owner_id or "[dim]none[/dim]", "use --owner or NOVASCRIBE_OWNER")
    table.add_row("Auto-save", f"{config.sync.debounce_ms} ms", "quiet period")
    console.print(table)

    if health["status"] != "healthy":
        sys.exit(1)


@main.command()
@click.pass_obj
def projects(config):
    """List the owner's projects, most recently modified first."""
    if not config.owner_id:
        console.print("[yellow]⚠️  No owner configured. Use --owner.[/yellow]")
        sys.exit(1)
    _run(_projects(config))


async def _projects(config) -> None:
    async with NovaScribe(config) as app:
        summaries = await app.projects.list_projects(config.owner_id)

    table = Table(title=f"Projects of {config.owner_id}")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Last modified", style="dim")
    for summary in summaries:
        table.add_row(summary.id, summary.title or "[dim]untitled[/dim]", summary.last_modified or "-")
    console.print(table)
    console.print(f"[dim]{len(summaries)} projects[/dim]")


@main.command()
@click.argument('project_id')
@click.pass_obj
def show(config, project_id: str):
    """Show a project's metadata and entity counts."""
    _run(_show(config, project_id))


async def _show(config, project_id: str) -> None:
    async with NovaScribe(config) as app:
        project = await app.projects.load_full(project_id)

    if project is None:
        console.print(f"[yellow]Project {project_id} not found[/yellow]")
        sys.exit(1)

    active = project.active_manuscript
    lines = [
        f"[bold]{project.title or 'Untitled'}[/bold]",
        project.synopsis or "[dim]no synopsis[/dim]",
        "",
        f"Style seed: {project.style_seed or '-'}",
        f"Writing style: {project.writing_style or '-'}",
        f"Active manuscript: {active.title if active else '-'}",
        f"Last modified: {project.last_modified or '-'}",
    ]
    console.print(Panel("\n".join(lines), title=project.id))

    table = Table(title="Entities")
    table.add_column("Collection", style="cyan")
    table.add_column("Count", justify="right")
    for name, items in project.collections().items():
        table.add_row(name, str(len(items)))
    console.print(table)


@main.command()
@click.argument('project_id')
@click.option('--collection', type=click.Choice(_collection_choices()), help='Entity collection')
@click.option('--entity', 'entity_id', help='Entity id within the collection')
@click.pass_obj
def history(config, project_id: str, collection: Optional[str], entity_id: Optional[str]):
    """List versions of an entity, or of the project metadata when no entity is given."""
    if bool(collection) != bool(entity_id):
        raise click.UsageError("--collection and --entity must be given together")
    if collection:
        scope = HistoryScope.entity(project_id, collection, entity_id)
    else:
        scope = HistoryScope.metadata(project_id)
    _run(_history(config, scope))


async def _history(config, scope: HistoryScope) -> None:
    async with NovaScribe(config) as app:
        previews = await app.ledger.preview_versions(scope)

    table = Table(title=f"History of {scope}")
    table.add_column("Version", style="cyan", no_wrap=True)
    table.add_column("Timestamp", style="dim")
    table.add_column("Note")
    table.add_column("Size", justify="right")
    for preview in previews:
        size = f"{len(preview.record.content)} chars" if preview.ok else "[red]unreadable[/red]"
        table.add_row(preview.record.id, preview.record.timestamp, preview.record.note or "", size)
    console.print(table)


@main.command()
@click.argument('project_id')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_obj
def delete(config, project_id: str, yes: bool):
    """Delete a project with all of its entities and history."""
    if not config.owner_id:
        console.print("[yellow]⚠️  No owner configured. Use --owner.[/yellow]")
        sys.exit(1)
    if not yes and not click.confirm(f'Delete project {project_id} and all of its history?'):
        console.print("[yellow]Aborted.[/yellow]")
        raise click.Abort()
    _run(_delete(config, project_id))


async def _delete(config, project_id: str) -> None:
    async with NovaScribe(config) as app:
        report = await app.projects.delete_full(project_id)

    console.print(
        f"[green]🗑️  Deleted project {project_id}: {report.total_deleted} documents "
        f"in {report.batches} batches[/green]"
    )


if __name__ == "__main__":
    main()
