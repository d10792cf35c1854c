"""
BuilderGraph CLI

Serve the API, prepare the database, score a repository snapshot offline
and inspect publish operations.
"""
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from buildergraph import __version__
from buildergraph.config import get_config, reload_config
from buildergraph.errors import OperationNotFound
from buildergraph.utils import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════
# MAIN CLI GROUP
# ═══════════════════════════════════════════════════════════════════

@click.group()
@click.version_option(version=__version__)
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML configuration overlay')
def main(config_path):
    """
    BuilderGraph - verifiable developer reputation

    Profiles, projects and endorsements published as knowledge assets.
    """
    config = reload_config(config_path) if config_path else get_config()
    setup_logging(config.log_level, config.log_file)


# ═══════════════════════════════════════════════════════════════════
# SERVER
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.option('--host', default=None, help='Bind address (default from config)')
@click.option('--port', type=int, default=None, help='Port (default from config)')
@click.option('--reload', is_flag=True, help='Auto-reload on code changes')
def serve(host, port, reload):
    """Run the REST API with uvicorn"""
    import uvicorn

    config = get_config()
    host = host or config.api_host
    port = port or config.api_port
    console.print(f"\n[bold blue]BuilderGraph API[/bold blue] on http://{host}:{port}")
    uvicorn.run("buildergraph.api.main:app", host=host, port=port, reload=reload)


@main.command('init-db')
def init_db():
    """Create database tables"""
    from buildergraph.storage.db import Database

    config = get_config()
    Database(config.database_url).init_db()
    console.print(f"[green]✓[/green] Database ready: {config.database_url}")


# ═══════════════════════════════════════════════════════════════════
# SCORING
# ═══════════════════════════════════════════════════════════════════

@main.command('score')
@click.argument('snapshot_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--json', 'as_json', is_flag=True, help='Print machine-readable JSON')
def score_snapshot(snapshot_path, as_json):
    """Score a repository snapshot (JSON) without publishing it"""
    from buildergraph.scoring.analysis import (
        RepositorySnapshot,
        analysis_hash,
        determine_category,
        metrics_from_snapshot,
    )
    from buildergraph.scoring.engine import score

    snapshot = RepositorySnapshot.model_validate(json.loads(Path(snapshot_path).read_text()))
    result = score(metrics_from_snapshot(snapshot))
    digest = analysis_hash(snapshot)

    if as_json:
        click.echo(json.dumps({**result.to_dict(), "analysisHash": digest}, indent=2))
        return

    table = Table(title=f"Score: {snapshot.name or snapshot.identity or 'unnamed repository'}")
    table.add_column("Component", style="cyan")
    table.add_column("Points", style="magenta", justify="right")
    for name, points in result.breakdown.items():
        table.add_row(name, f"{points:.0f}/30")
    table.add_row("[bold]total[/bold]", f"[bold]{result.total:.0f}/100[/bold]")
    console.print(table)
    console.print(f"Category: {determine_category(snapshot)}")
    console.print(f"Analysis hash: [dim]{digest}[/dim]")


# ═══════════════════════════════════════════════════════════════════
# OPERATIONS
# ═══════════════════════════════════════════════════════════════════

def _tracker():
    from buildergraph.publishing.tracker import StatusTracker
    from buildergraph.storage.db import Database
    from buildergraph.storage.repository import RecordStore

    config = get_config()
    database = Database(config.database_url)
    database.init_db()
    return StatusTracker(RecordStore(database))


@main.command()
@click.argument('operation_id')
def status(operation_id):
    """Show the state of one publish operation"""
    try:
        view = _tracker().get_status(operation_id)
    except OperationNotFound as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise SystemExit(1)

    colour = {"completed": "green", "failed": "red"}.get(view.status.value, "yellow")
    console.print(f"\n[bold]{view.operation_id}[/bold]")
    console.print(f"  Status:   [{colour}]{view.status.value}[/{colour}]")
    console.print(f"  Entity:   {view.entity_type} #{view.entity_id}")
    console.print(f"  Attempts: {view.attempts}")
    if view.ual:
        console.print(f"  UAL:      {view.ual}")
    if view.error:
        console.print(f"  Error:    {view.error} ({view.error_kind})")
        if not view.outcome_known:
            console.print("  [yellow]Ledger outcome unknown; the asset may still appear later.[/yellow]")


@main.command('operations')
@click.option('--status', 'status_filter',
              type=click.Choice(['pending', 'publishing', 'completed', 'failed']))
@click.option('--limit', default=20, show_default=True)
def list_operations(status_filter, limit):
    """List recent publish operations"""
    from buildergraph.publishing.models import PublishStatus

    views = _tracker().list_status(
        status=PublishStatus(status_filter) if status_filter else None, limit=limit,
    )
    table = Table(title="Publish operations")
    table.add_column("Operation", style="cyan")
    table.add_column("Status")
    table.add_column("UAL / error")
    for view in views:
        table.add_row(view.operation_id, view.status.value, view.ual or view.error or "")
    console.print(table)


if __name__ == '__main__':
    main()
