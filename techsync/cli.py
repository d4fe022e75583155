#!/usr/bin/env python3
"""
TechSync CLI - Command Line Interface
Each command runs one sync operation and exits, suitable for cron
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import click
import uvicorn
from sqlalchemy.engine import make_url

from techsync.config.config_loader import load_config
from techsync.core.exceptions import SyncError
from techsync.core.logging_manager import setup_logging
from techsync.core.service import SyncService
from techsync.main import create_app


def _run(ctx: click.Context, operation: Callable[[SyncService], Awaitable[Any]]) -> Any:
    """Build the service, run one operation and release connections"""
    config = ctx.obj['config']

    async def runner():
        service = SyncService.from_config(config)
        try:
            await service.initialize()
            return await operation(service)
        finally:
            await service.close()

    try:
        return asyncio.run(runner())
    except SyncError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)


def _echo_json(data: Dict[str, Any]):
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), default=None,
              help='Path to techsync.yaml (defaults to $TECHSYNC_CONFIG or config/techsync.yaml)')
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str]):
    """TechSync Command Line Interface"""
    config = load_config(config_path)
    setup_logging(config)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command('process-queue')
@click.option('--batch-size', type=click.IntRange(min=1), default=None, help='Items to claim this run')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def process_queue(ctx: click.Context, batch_size: Optional[int], as_json: bool):
    """Deliver one batch of due queue items"""
    result = _run(ctx, lambda service: service.process_queue(batch_size))

    if as_json:
        _echo_json(result.to_dict())
        return

    click.echo(
        f"Processed {result.processed} item(s): {result.sent} sent, "
        f"{result.failed} failed, {result.dead} dead ({result.duration_ms}ms)"
    )
    if result.reclaimed:
        click.echo(f"Reclaimed {result.reclaimed} stale item(s)")
    for error in result.errors:
        click.echo(f"  - {error}")


@cli.command()
@click.option('--table', 'tables', multiple=True, help='Table to reconcile (repeatable, default: all)')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@click.pass_context
def reconcile(ctx: click.Context, tables, as_json: bool):
    """Compare source and target and queue repairs"""
    report = _run(ctx, lambda service: service.reconcile(list(tables) or None))

    if as_json:
        _echo_json(report.to_dict())
    else:
        for result in report.results:
            marker = "✓" if result.in_sync else "✗"
            click.echo(
                f"{marker} {result.table}: source={result.total_source} target={result.total_target} "
                f"missing={result.missing} orphaned={result.orphaned} queued={result.queued}"
            )
            for error in result.errors:
                click.echo(f"    ! {error}")

    if not report.success:
        ctx.exit(2)


@cli.command()
@click.option('--timeout', type=click.IntRange(min=0), default=None,
              help='Seconds an item may stay in processing (default from config)')
@click.pass_context
def reclaim(ctx: click.Context, timeout: Optional[int]):
    """Return stale processing items to the retry cycle"""
    count = _run(ctx, lambda service: service.reclaim_stale(timeout))
    click.echo(f"Reclaimed {count} stale item(s)")


@cli.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show queue item counts per status"""
    counts = _run(ctx, lambda service: service.queue_stats())

    click.echo("Sync queue:")
    click.echo("=" * 20)
    for status, count in counts.items():
        click.echo(f"{status:<12}{count:>8}")
    click.echo(f"{'total':<12}{sum(counts.values()):>8}")


@cli.command('init-db')
@click.pass_context
def init_db(ctx: click.Context):
    """Create the sync_queue table"""

    async def database_location(service: SyncService):
        return make_url(service.settings.database_url).render_as_string(hide_password=True)

    url = _run(ctx, database_location)
    click.echo(f"Queue database ready: {url}")


@cli.command()
@click.option('--host', default=None, help='Bind address (default from config)')
@click.option('--port', type=int, default=None, help='Port (default from config)')
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]):
    """Run the HTTP API"""
    config = ctx.obj['config']
    api_config = config.get('api', {})

    uvicorn.run(
        create_app(config),
        host=host or api_config.get('host', '0.0.0.0'),
        port=port or int(api_config.get('port', 8080)),
        log_level=str(config.get('logging', {}).get('level', 'info')).lower()
    )


if __name__ == '__main__':
    cli()
