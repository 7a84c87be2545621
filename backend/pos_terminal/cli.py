# backend/pos_terminal/cli.py
# Commands Legend:
# - pos-terminal status            Local cache/queue counts and connectivity
# - pos-terminal sync              One full sync cycle (fails when offline)
# - pos-terminal run               Long-running: watch connectivity, auto-sync every POS_SYNC_INTERVAL
# - pos-terminal pending [--all]   List queued sales and their sync state
# - pos-terminal logs [--limit N]  Recent sync log entries
#
# Configuration comes from POS_* environment variables (see config.py).

import asyncio
import logging

import click

from .api_client import PosApiClient
from .config import TerminalConfig
from .connectivity import ConnectivityMonitor
from .local_store import LocalStore, LocalStoreError, PRODUCTS_CACHED_AT, CUSTOMERS_CACHED_AT
from .sync_engine import OfflineError, SyncEngine


def _client(config: TerminalConfig) -> PosApiClient:
    return PosApiClient(config.api_base_url, config.api_token, timeout=config.request_timeout)


@click.group('pos-terminal')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.pass_context
def cli(ctx, verbose):
    """Offline-first POS terminal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = TerminalConfig.from_env()
    try:
        store = LocalStore(config.local_db, max_sync_attempts=config.max_sync_attempts)
    except LocalStoreError as e:
        raise click.ClickException(str(e))
    ctx.obj = {"config": config, "store": store}
    ctx.call_on_close(store.close)


@cli.command('status')
@click.pass_context
def status_cmd(ctx):
    """Show local store counts and whether the server is reachable."""
    config, store = ctx.obj["config"], ctx.obj["store"]

    async def _check():
        async with _client(config) as client:
            return await client.health()

    online = asyncio.run(_check())
    stats = store.get_stats()

    click.echo(f"Server:        {config.api_base_url} ({'online' if online else 'offline'})")
    click.echo(f"Products:      {stats['products']} (cached {store.get_setting(PRODUCTS_CACHED_AT, 'never')})")
    click.echo(f"Customers:     {stats['customers']} (cached {store.get_setting(CUSTOMERS_CACHED_AT, 'never')})")
    click.echo(f"Pending sales: {stats['pending_sales']}")
    click.echo(f"Sync logs:     {stats['sync_logs']}")
    if stats["db_size"] is not None:
        click.echo(f"DB size:       {stats['db_size']} bytes")


@cli.command('sync')
@click.pass_context
def sync_cmd(ctx):
    """Run one full sync cycle now."""
    config, store = ctx.obj["config"], ctx.obj["store"]

    async def _sync():
        async with _client(config) as client:
            online = await client.health()
            async with SyncEngine.from_config(config, store, client, online=online) as engine:
                result = await engine.manual_sync()
                return result, engine.state

    try:
        result, state = asyncio.run(_sync())
    except OfflineError as e:
        raise click.ClickException(str(e))

    if result is None:
        raise click.ClickException(f"Sync failed: {state.last_error}")
    click.echo(f"PASS Sync complete: {result['synced']} synced, {result['failed']} failed")
    click.echo(f"Pending sales: {state.pending_sales_count}")


@cli.command('run')
@click.pass_context
def run_cmd(ctx):
    """Watch connectivity and auto-sync until interrupted."""
    config, store = ctx.obj["config"], ctx.obj["store"]

    def _print_state(state):
        click.echo(
            f"[{state.connection_status.value}] status={state.status.value} "
            f"pending={state.pending_sales_count}"
            + (f" error={state.last_error}" if state.last_error else "")
        )

    async def _run():
        async with _client(config) as client:
            engine = SyncEngine.from_config(config, store, client)
            engine.subscribe(_print_state)
            async with engine:
                monitor = ConnectivityMonitor(client, engine, interval=config.health_interval)
                await monitor.run()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        click.echo("Stopped.")


@cli.command('pending')
@click.option('--all', 'show_all', is_flag=True, help='Include synced sales not yet cleaned up')
@click.pass_context
def pending_cmd(ctx, show_all):
    """List queued sales."""
    store = ctx.obj["store"]
    sales = store.get_all_pending_sales() if show_all else store.get_pending_sales()
    if not sales:
        click.echo("No pending sales.")
        return

    click.echo(f"{'ID':<5} {'Local ID':<38} {'Total':>10} {'State':<11} {'Tries':<5} {'Error'}")
    for sale in sales:
        click.echo(
            f"{sale.id:<5} {sale.local_id:<38} {sale.total_cents / 100:>10.2f} "
            f"{sale.sync_state:<11} {sale.sync_attempts:<5} {sale.sync_error or ''}"
        )


@cli.command('logs')
@click.option('--limit', type=int, default=20, show_default=True)
@click.pass_context
def logs_cmd(ctx, limit):
    """Show recent sync log entries, newest first."""
    store = ctx.obj["store"]
    for log in store.get_sync_logs(limit=limit):
        outcome = "OK  " if log.success else "FAIL"
        server = f" -> {log.server_id}" if log.server_id else ""
        error = f" ({log.error})" if log.error else ""
        click.echo(f"{log.timestamp:%Y-%m-%d %H:%M:%S} {outcome} {log.type}/{log.action} {log.local_id}{server}{error}")


def main():
    cli(prog_name="pos-terminal")


if __name__ == "__main__":
    main()
